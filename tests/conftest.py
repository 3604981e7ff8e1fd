"""Shared fixtures: fake pacing and a scriptable fake portal."""
import pytest

from reservation_exporter.models import ScraperConfig
from reservation_exporter.waits import Pacing


class RecordingSleep:
    """Async sleep stand-in that records requested durations."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def pacing(fake_sleep):
    return Pacing({"extraction_retry": 1000, "page_render": 5000}, sleep=fake_sleep)


@pytest.fixture
def scraper_config(tmp_path):
    return ScraperConfig(input_file=tmp_path / "input.xlsx", output_dir=tmp_path / "out")
