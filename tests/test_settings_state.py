from datetime import timedelta

import pytest

from enricher.core.config import Config
from enricher.core.errors import ConfigError
from enricher.core.settings import RefreshSettings
from enricher.core.state import LAST_RUN_FILENAME, load_last_run, write_last_run


def test_defaults_come_from_settings_yaml():
    settings = RefreshSettings()

    assert settings.cooldown == timedelta(hours=1)
    assert settings.batch_limit == Config.get("refresh", "batch_limit")
    assert settings.outcome_cap == 20
    assert settings.retry.max_attempts == 3
    assert settings.retry.base_delay == 1.0
    assert settings.retry.max_jitter == 0.5
    assert settings.cron_secret is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("REFRESH_COOLDOWN_SECONDS", "120")
    monkeypatch.setenv("ENRICH_BATCH_LIMIT", "7")
    monkeypatch.setenv("ENRICH_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("MONGODB_URI", "mongodb://db:27017")

    settings = RefreshSettings()

    assert settings.cooldown == timedelta(minutes=2)
    assert settings.batch_limit == 7
    assert settings.retry.max_attempts == 5
    assert settings.mongo_uri == "mongodb://db:27017"
    assert settings.missing_provider_keys() == ["TAVILY_API_KEY", "OPENAI_API_KEY"]


def test_non_numeric_override_is_a_config_error(monkeypatch):
    monkeypatch.setenv("ENRICH_BATCH_LIMIT", "twenty")

    with pytest.raises(ConfigError) as exc_info:
        RefreshSettings()
    assert exc_info.value.key == "ENRICH_BATCH_LIMIT"


@pytest.mark.parametrize(
    "var, value",
    [
        ("REFRESH_COOLDOWN_SECONDS", "-1"),
        ("ENRICH_BATCH_LIMIT", "0"),
        ("REFRESH_TIMEOUT_SECONDS", "0"),
        ("ENRICH_MAX_ATTEMPTS", "0"),
    ],
)
def test_validate_rejects_out_of_range_values(monkeypatch, var, value):
    monkeypatch.setenv(var, value)

    with pytest.raises(ConfigError):
        RefreshSettings().validate()


def test_last_run_state_round_trip(tmp_path):
    assert load_last_run(tmp_path) is None

    stored = write_last_run({"run_id": "refresh-1", "status": "running"}, tmp_path)

    assert "updated_at" in stored
    assert load_last_run(tmp_path)["status"] == "running"
    assert [path.name for path in tmp_path.iterdir()] == [LAST_RUN_FILENAME]


def test_corrupt_state_file_reads_as_missing(tmp_path):
    (tmp_path / LAST_RUN_FILENAME).write_text("{not json", encoding="utf-8")
    assert load_last_run(tmp_path) is None
