"""
Pytest configuration and shared fixtures.
"""

import json

import pytest
from fastapi.testclient import TestClient

from batterylens.config import PipelineSettings, reset_settings
from batterylens.dashboard.dependencies import configure_session, get_session
from batterylens.dashboard.main import app
from batterylens.models import ChartInfo, ExtractionResult, ImageJob
from batterylens.session import SessionState

HOUR_MS = 60 * 60 * 1000
MINUTE_MS = 60 * 1000

# 2024-01-15T00:00:00Z
BASE_TS = 1705276800000

CSRF_HEADERS = {"X-Requested-With": "XMLHttpRequest"}


@pytest.fixture(autouse=True)
def clean_env_for_tests(monkeypatch):
    """Clean environment variables for test isolation.

    Ensures tests never reach a real extraction service and always start
    from default pipeline settings.

    This fixture is applied automatically to all tests (autouse=True).
    """
    monkeypatch.delenv("BATTERYLENS_EXTRACTION_URL", raising=False)
    monkeypatch.delenv("BATTERYLENS_CHART_INFO_URL", raising=False)
    monkeypatch.delenv("BATTERYLENS_DUPLICATE_POLICY", raising=False)
    monkeypatch.delenv("BATTERYLENS_DEV_MODE", raising=False)
    monkeypatch.delenv("BATTERYLENS_LOG_LEVEL", raising=False)
    reset_settings()
    yield
    reset_settings()


class FakeExtractor:
    """Extractor returning canned readings per file name.

    ``replies`` maps a file name to either an ExtractionResult, an
    exception to raise, or a dict of readings for battery ``default_battery``.
    """

    def __init__(self, replies=None, default_battery="BAT-1", delay=0.0):
        self.replies = replies or {}
        self.default_battery = default_battery
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, job: ImageJob) -> ExtractionResult:
        import asyncio

        self.calls.append(job.name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            reply = self.replies.get(job.name, {"soc": 50, "voltage": 52.1})
            if isinstance(reply, Exception):
                raise reply
            if isinstance(reply, ExtractionResult):
                return reply
            return ExtractionResult(
                success=True,
                battery_id=self.default_battery,
                extracted_data=json.dumps(reply),
                file_name=job.name,
            )
        finally:
            self.in_flight -= 1


class FakeChartInfoProvider:
    """Chart-info provider that records calls and can be told to fail."""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def __call__(self, metrics, time_range, insights):
        self.calls.append((metrics, time_range, insights))
        if self.fail:
            raise RuntimeError("chart-info service unavailable")
        return ChartInfo(title=f"Trend of {', '.join(metrics)}", description=insights[:40])


def make_job(name: str, timestamp: int = BASE_TS, data: bytes = b"\x89PNG") -> ImageJob:
    """Create a plain upload job."""
    return ImageJob(id=f"{name}:{timestamp}", name=name, timestamp=timestamp, data=data)


@pytest.fixture
def settings():
    """Default pipeline settings."""
    return PipelineSettings()


@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
def chart_info_provider():
    return FakeChartInfoProvider()


@pytest.fixture
def session(settings, fake_extractor, chart_info_provider):
    """Fresh in-memory session wired to fake collaborators."""
    return SessionState(settings=settings, extractor=fake_extractor, chart_info_provider=chart_info_provider)


@pytest.fixture
def test_client(session):
    """Create a test client serving the ``session`` fixture."""
    app.dependency_overrides[get_session] = lambda: session
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
    configure_session(None)


@pytest.fixture
def job_factory():
    """Factory for plain upload jobs."""
    return make_job


@pytest.fixture
def extractor_factory():
    """Factory for fake extractors with custom replies."""
    return FakeExtractor
