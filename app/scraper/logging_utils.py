from __future__ import annotations

from pathlib import Path
from typing import Any

from .utils import log_line

MAX_FIELD_CHARS = 300


def _render(value: Any) -> str:
    if isinstance(value, Path):
        value = str(value)
    text = repr(value)
    if len(text) > MAX_FIELD_CHARS:
        # Viewer bodies and Playwright errors can run to kilobytes.
        text = f"{text[:MAX_FIELD_CHARS]}...(+{len(text) - MAX_FIELD_CHARS} chars)"
    return text


def _scraper_event(label: str = "", *, phase: str | None = None, **fields: Any) -> None:
    """Emit a structured ``[SCRAPER][LABEL] key=value`` log line.

    ``phase`` doubles as the label when no label is given; otherwise it is
    logged as a regular field.
    """

    try:
        event_label = label or (phase or "")
        if phase and label:
            fields.setdefault("phase", phase)
        payload = ", ".join(f"{key}={_render(value)}" for key, value in sorted(fields.items()))
        log_line(f"[SCRAPER][{event_label.upper()}] {payload}")
    except Exception:  # noqa: BLE001
        return


__all__ = ["_scraper_event"]
