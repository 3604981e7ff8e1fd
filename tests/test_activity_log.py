"""Tests for the dashboard activity log."""
import json
from datetime import datetime, timedelta, timezone

from reservation_exporter.activity_log import (
    ActivityLog,
    ActivityLogProcessor,
    filter_recent,
    make_entry,
)
from reservation_exporter.models import LogLevel

NOW = datetime(2026, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def stamp(minutes_ago: int) -> str:
    return (NOW - timedelta(minutes=minutes_ago)).isoformat().replace("+00:00", "Z")


class TestFilterRecent:
    """Trimming keeps only the last hour, in original order."""

    def test_keeps_order_of_retained_entries(self):
        entries = [
            {"timestamp": stamp(90), "message": "old"},
            {"timestamp": stamp(30), "message": "b"},
            {"timestamp": stamp(120), "message": "older"},
            {"timestamp": stamp(5), "message": "c"},
            {"timestamp": stamp(1), "message": "a"},
        ]

        kept = filter_recent(entries, now=NOW)

        assert [e["message"] for e in kept] == ["b", "c", "a"]

    def test_boundary_entry_dropped(self):
        kept = filter_recent([{"timestamp": stamp(60), "message": "edge"}], now=NOW)

        assert kept == []

    def test_unparseable_timestamp_dropped(self):
        kept = filter_recent([{"timestamp": "yesterday", "message": "x"}], now=NOW)

        assert kept == []


class TestActivityLog:
    """Tests for the file-backed log document."""

    def test_ensure_exists_creates_empty_document(self, tmp_path):
        log = ActivityLog(tmp_path / "data.json")

        log.ensure_exists()

        assert json.loads(log.path.read_text()) == {"logs": []}

    def test_append_and_read(self, tmp_path):
        log = ActivityLog(tmp_path / "data.json")

        log.append(make_entry(LogLevel.INFO, "hello", now=NOW))
        log.append(make_entry(LogLevel.DATA, "row", data={"id": "1"}, now=NOW))

        logs = log.read()["logs"]
        assert [entry["message"] for entry in logs] == ["hello", "row"]
        assert logs[1]["level"] == "DATA"
        assert logs[1]["data"] == {"id": "1"}
        assert logs[0]["timestamp"].endswith("Z")

    def test_trim_rewrites_file(self, tmp_path):
        log = ActivityLog(tmp_path / "data.json")
        log.path.write_text(json.dumps({"logs": [
            {"timestamp": stamp(120), "level": "INFO", "message": "old", "data": None},
            {"timestamp": stamp(10), "level": "INFO", "message": "new", "data": None},
        ]}))

        removed = log.trim(now=NOW)

        assert removed == 1
        assert [e["message"] for e in log.read()["logs"]] == ["new"]

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        log = ActivityLog(tmp_path / "data.json")
        log.path.write_text("{not json")

        assert log.read() == {"logs": []}

    def test_mtime_missing_file(self, tmp_path):
        assert ActivityLog(tmp_path / "missing.json").mtime() is None


class TestActivityLogProcessor:
    """Tests for mirroring structlog events into the log document."""

    def test_level_mapping(self, tmp_path):
        log = ActivityLog(tmp_path / "data.json")
        processor = ActivityLogProcessor(log)

        processor(None, "info", {"event": "started"})
        processor(None, "warning", {"event": "slow"})
        processor(None, "error", {"event": "failed", "error": "boom"})

        logs = log.read()["logs"]
        assert [e["level"] for e in logs] == ["INFO", "WARN", "ERROR"]
        assert logs[2]["data"] == {"error": "boom"}

    def test_data_keyword_becomes_data_level(self, tmp_path):
        log = ActivityLog(tmp_path / "data.json")
        processor = ActivityLogProcessor(log)

        processor(None, "info", {"event": "reservation_processed", "data": {"id": "R1"}})

        entry = log.read()["logs"][0]
        assert entry["level"] == "DATA"
        assert entry["data"] == {"id": "R1"}

    def test_debug_not_recorded(self, tmp_path):
        log = ActivityLog(tmp_path / "data.json")
        processor = ActivityLogProcessor(log)

        event = {"event": "settling", "wait": "page_render"}
        assert processor(None, "debug", event) is event
        assert log.read() == {"logs": []}

    def test_bookkeeping_keys_excluded(self, tmp_path):
        log = ActivityLog(tmp_path / "data.json")
        processor = ActivityLogProcessor(log)

        processor(None, "info", {"event": "x", "level": "info", "timestamp": "t", "logger": "l"})

        assert log.read()["logs"][0]["data"] is None
