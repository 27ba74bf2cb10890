from datetime import datetime, timezone

import pytest

from enricher.core.backoff import BackoffExecutor, RetryConfig
from enricher.core.config import Config
from enricher.core.errors import GenerationError
from models.content import NarrativeContent

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class SleepRecorder:
    """Stands in for asyncio.sleep so retry tests do not wait."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class ScriptedGenerator:
    """Fails a set number of times per record, or forever for ``permanent`` ids."""

    def __init__(self, failures=None, permanent=()):
        self.failures = dict(failures or {})
        self.permanent = set(permanent)
        self.calls = []

    async def generate(self, record):
        self.calls.append(record.id)
        if record.id in self.permanent:
            raise GenerationError(f"provider down for {record.id}")
        remaining = self.failures.get(record.id, 0)
        if remaining > 0:
            self.failures[record.id] = remaining - 1
            raise GenerationError(f"transient failure for {record.id}")
        return NarrativeContent(origin_story=f"Story of {record.label}", current_status="Still in business.")


@pytest.fixture
def now():
    return T0


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def executor(sleeps):
    return BackoffExecutor(RetryConfig(max_attempts=3, base_delay=1.0, max_jitter=0.5), sleep=sleeps)


@pytest.fixture
def scripted_generator():
    return ScriptedGenerator


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch, tmp_path):
    """Fresh settings per test with run state written under tmp_path."""
    from enricher.core.settings import get_settings

    for var in (
        "REFRESH_COOLDOWN_SECONDS",
        "ENRICH_BATCH_LIMIT",
        "ENRICH_OUTCOME_CAP",
        "ENRICH_MAX_ATTEMPTS",
        "ENRICH_BASE_DELAY_SECONDS",
        "REFRESH_TIMEOUT_SECONDS",
        "CRON_SECRET",
        "MONGO_URI",
        "MONGODB_URI",
        "TAVILY_API_KEY",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("REFRESH_STATE_DIR", str(tmp_path / "state"))
    Config.reset()
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
