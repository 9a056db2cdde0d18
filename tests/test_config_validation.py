from app.scraper import config
from app.scraper.config_validation import validate_runtime_config
import pytest


def test_recording_fixtures_forbidden_during_replay(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "RECORD_REPLAY_FIXTURES", True)
    with pytest.raises(ValueError):
        validate_runtime_config("replay", command="replay")


def test_recording_fixtures_allowed_for_live_crawl(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "RECORD_REPLAY_FIXTURES", True)
    validate_runtime_config("cli", command="crawl")


def test_negative_geocode_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "GEOCODE_DELAY_SECONDS", -0.1)
    with pytest.raises(ValueError):
        validate_runtime_config("cli")


def test_empty_state_suffix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "STATE_SUFFIX", "  ")
    with pytest.raises(ValueError):
        validate_runtime_config("cli")


@pytest.mark.parametrize(
    "field",
    ["CRAWL_TIMEOUT_SECONDS", "NAV_TIMEOUT_SECONDS", "PAGE_BATCH_TIMEOUT_SECONDS", "GEOCODE_TIMEOUT_SECONDS"],
)
def test_invalid_timeout(monkeypatch: pytest.MonkeyPatch, field: str) -> None:
    monkeypatch.setattr(config, field, 0)
    with pytest.raises(ValueError):
        validate_runtime_config("cli")


def test_batch_knobs_clamped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "BATCH_QUEUE_MAX", 0)
    monkeypatch.setattr(config, "BATCH_POLL_SECONDS", 0)

    validate_runtime_config("tests")

    assert config.BATCH_QUEUE_MAX == 1
    assert config.BATCH_POLL_SECONDS == 0.25
