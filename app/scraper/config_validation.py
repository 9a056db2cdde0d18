from __future__ import annotations

from typing import Literal

from . import config
from .logging_utils import _scraper_event
from .utils import log_line

Entrypoint = Literal["cli", "replay", "tests"]


def _raise_config_error(
    message: str, *, entrypoint: Entrypoint, error: str, command: str | None
) -> None:
    _scraper_event(
        "error",
        phase="config",
        context="runtime_validation",
        error=error,
        entrypoint=entrypoint,
        command=command,
    )
    command_fragment = f", command={command}" if command else ""
    log_line(f"[CONFIG] {message} (entrypoint={entrypoint}{command_fragment})")
    raise ValueError(message)


def _clamp(field: str, value: float, adjusted: float, *, entrypoint: Entrypoint, command: str | None) -> None:
    _scraper_event(
        "state",
        phase="config",
        context="runtime_validation",
        kind="config_adjustment",
        field=field,
        value=value,
        adjusted=adjusted,
        entrypoint=entrypoint,
        command=command,
    )
    log_line(f"[CONFIG] {field}={value!r} is out of range; clamping to {adjusted!r}.")
    setattr(config, field, adjusted)


def validate_runtime_config(entrypoint: Entrypoint, *, command: str | None = None) -> None:
    """Validate runtime configuration for the given entrypoint.

    Raises ``ValueError`` when a blocking misconfiguration is detected.
    Non-fatal adjustments (e.g., clamping queue knobs) are logged but do not
    raise.
    """

    if config.RECORD_REPLAY_FIXTURES and entrypoint == "replay":
        _raise_config_error(
            "RECORD_REPLAY_FIXTURES must not be enabled while replaying fixtures.",
            entrypoint=entrypoint,
            error="record_during_replay",
            command=command,
        )

    if config.BATCH_QUEUE_MAX < 1:
        _clamp("BATCH_QUEUE_MAX", config.BATCH_QUEUE_MAX, 1, entrypoint=entrypoint, command=command)

    if config.BATCH_POLL_SECONDS <= 0:
        _clamp("BATCH_POLL_SECONDS", config.BATCH_POLL_SECONDS, 0.25, entrypoint=entrypoint, command=command)

    if config.GEOCODE_DELAY_SECONDS < 0:
        _raise_config_error(
            "GEOCODE_DELAY_SECONDS must be non-negative.",
            entrypoint=entrypoint,
            error="geocode_delay_invalid",
            command=command,
        )

    if not config.STATE_SUFFIX.strip():
        _raise_config_error(
            "STATE_SUFFIX must not be empty.",
            entrypoint=entrypoint,
            error="state_suffix_missing",
            command=command,
        )

    timeout_fields = [
        ("CRAWL_TIMEOUT_SECONDS", config.CRAWL_TIMEOUT_SECONDS),
        ("NAV_TIMEOUT_SECONDS", config.NAV_TIMEOUT_SECONDS),
        ("PAGE_BATCH_TIMEOUT_SECONDS", config.PAGE_BATCH_TIMEOUT_SECONDS),
        ("GEOCODE_TIMEOUT_SECONDS", config.GEOCODE_TIMEOUT_SECONDS),
    ]

    for field_name, value in timeout_fields:
        if value <= 0:
            _raise_config_error(
                f"{field_name} must be greater than zero.",
                entrypoint=entrypoint,
                error="invalid_timeout",
                command=command,
            )


__all__ = ["validate_runtime_config", "Entrypoint"]
