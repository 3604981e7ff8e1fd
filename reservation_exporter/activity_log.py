"""JSON activity log consumed by the dashboard.

The document has the shape {"logs": [entry, ...]}. Entries are appended by
a structlog processor, served by /api/data and pushed over /stream, and
trimmed to the last hour by a periodic cleanup.
"""
import json
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import structlog

from .models import LogEntry, LogLevel

logger = structlog.get_logger()

RETENTION = timedelta(hours=1)

LEVEL_MAP = {
    "info": LogLevel.INFO,
    "warning": LogLevel.WARN,
    "warn": LogLevel.WARN,
    "error": LogLevel.ERROR,
    "critical": LogLevel.ERROR,
    "exception": LogLevel.ERROR,
}

# structlog keys that are bookkeeping, not event context
_RESERVED_KEYS = {"event", "level", "logger", "timestamp", "exc_info", "stack_info"}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ActivityLog:
    """File-backed log document with append, read and trim."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def ensure_exists(self) -> None:
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._write({"logs": []})

    def _write(self, document: dict) -> None:
        self.path.write_text(json.dumps(document, indent=2, default=str), encoding="utf-8")

    def read(self) -> dict:
        """Return the whole log document."""
        with self._lock:
            return self._read_unlocked()

    def _read_unlocked(self) -> dict:
        if not self.path.exists():
            return {"logs": []}
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {"logs": []}
        if not isinstance(document, dict) or not isinstance(document.get("logs"), list):
            return {"logs": []}
        return document

    def append(self, entry: LogEntry) -> None:
        with self._lock:
            document = self._read_unlocked()
            document["logs"].append(entry.to_dict())
            self._write(document)

    def recent(self, now: Optional[datetime] = None) -> list[dict]:
        """Entries newer than the retention window, in original order."""
        return filter_recent(self.read()["logs"], now=now)

    def trim(self, now: Optional[datetime] = None) -> int:
        """Drop entries older than the retention window.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            document = self._read_unlocked()
            kept = filter_recent(document["logs"], now=now)
            removed = len(document["logs"]) - len(kept)
            self._write({"logs": kept})
        logger.info("activity_log_trimmed", removed=removed)
        return removed

    def mtime(self) -> Optional[float]:
        try:
            return self.path.stat().st_mtime
        except FileNotFoundError:
            return None


def filter_recent(
    entries: list[dict], now: Optional[datetime] = None, retention: timedelta = RETENTION
) -> list[dict]:
    """Keep entries whose timestamp falls within the retention window."""
    cutoff = (now or _utc_now()) - retention
    kept = []
    for entry in entries:
        stamp = _parse_timestamp(entry.get("timestamp", ""))
        if stamp is not None and stamp > cutoff:
            kept.append(entry)
    return kept


def make_entry(
    level: LogLevel, message: str, data: Any = None, now: Optional[datetime] = None
) -> LogEntry:
    stamp = (now or _utc_now()).isoformat().replace("+00:00", "Z")
    return LogEntry(timestamp=stamp, level=level, message=message, data=data)


class ActivityLogProcessor:
    """structlog processor that mirrors events into an ActivityLog.

    Events at INFO and above are written; an event carrying a ``data``
    keyword is recorded at the DATA level with that payload.
    """

    def __init__(self, activity_log: ActivityLog) -> None:
        self.activity_log = activity_log

    def __call__(self, _logger: Any, method_name: str, event_dict: dict) -> dict:
        level = LEVEL_MAP.get(method_name)
        if level is None:
            return event_dict

        context = {
            key: value for key, value in event_dict.items() if key not in _RESERVED_KEYS
        }
        data = context.pop("data", None)
        if data is not None and level is LogLevel.INFO:
            level = LogLevel.DATA
        elif context:
            data = context

        message = str(event_dict.get("event", ""))
        try:
            self.activity_log.append(make_entry(level, message, data))
        except OSError as e:
            print(f"Error writing to activity log: {e}")
        return event_dict
