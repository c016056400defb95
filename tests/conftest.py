"""
Test configuration and fixtures for the Web Analyzer API.

The environment is pinned before any `webanalyzer` import so that the
settings singleton, the SQL engine and the app all pick it up: in-memory
store and queue, notifications off, logs in a temp directory, and a
throwaway SQLite file for the SQL store tests.
"""

import os
import tempfile
from typing import Generator

import pytest
from dotenv import load_dotenv

load_dotenv()

_tmp_dir = tempfile.mkdtemp(prefix="webanalyzer-tests-")
os.environ["ENVIRONMENT"] = "test"
os.environ["SKIP_DB"] = "true"
os.environ["QUEUE_BACKEND"] = "memory"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ["RUN_EMBEDDED_WORKER"] = "false"
os.environ["LOG_DIR"] = os.path.join(_tmp_dir, "logs")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_tmp_dir, 'test.db')}"

from fastapi.testclient import TestClient  # noqa: E402

from webanalyzer.features.analysis.services.analysis_store import InMemoryAnalysisStore  # noqa: E402
from webanalyzer.features.analysis.services.browser_pool import BrowserPool  # noqa: E402
from webanalyzer.features.analysis.services.capabilities import build_registry  # noqa: E402
from webanalyzer.features.analysis.services.job_queue import InMemoryJobQueue  # noqa: E402
from webanalyzer.features.analysis.services.notifications import RecordingNotificationPublisher  # noqa: E402
from webanalyzer.platform.utils.url_validator import HostValidator  # noqa: E402

from helpers import FakeDriver, StubCapability, make_resolver  # noqa: E402


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def store() -> InMemoryAnalysisStore:
    return InMemoryAnalysisStore()


@pytest.fixture
def queue() -> InMemoryJobQueue:
    return InMemoryJobQueue(max_attempts=3, backoff_base=0)


@pytest.fixture
def publisher() -> RecordingNotificationPublisher:
    return RecordingNotificationPublisher()


@pytest.fixture
def fake_driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def browser_pool(fake_driver) -> BrowserPool:
    return BrowserPool(size=1, driver_factory=lambda: fake_driver)


@pytest.fixture
def stub_registry():
    return build_registry([
        StubCapability("tech", needs_page=True, result={"technologies": [{"name": "React", "confidence": 90}], "count": 1}),
        StubCapability("seo", needs_page=True, result={"title": "Example Domain", "hasH1": True}),
        StubCapability("performance", result={"score": 88}),
        StubCapability("accessibility", needs_page=True, result={"violations": []}),
        StubCapability("security", result={"securityScore": 70}),
    ])


@pytest.fixture
def validator() -> HostValidator:
    return HostValidator(resolver=make_resolver(), enabled=True)


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from webanalyzer.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Test client with a fresh in-memory pipeline per test and DNS answered
    by the fake resolver.
    """
    with TestClient(test_app) as test_client:
        test_app.state.components.service.validator = HostValidator(resolver=make_resolver(), enabled=True)
        yield test_client
