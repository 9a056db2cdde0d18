"""Run telemetry and summary helpers."""

from __future__ import annotations

import time
import uuid
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import config
from .utils import save_json_file


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S")


class RunTelemetry:
    """Collect per-run counts and geocode outcomes for the summary file."""

    def __init__(self, command: str) -> None:
        self.run_id = f"{_ts()}_{uuid.uuid4().hex[:8]}"
        self.command = command
        self.started_at = time.time()
        self.entries: List[Dict[str, Any]] = []
        self.summary: Dict[str, Any] = defaultdict(int)
        self.status = "running"
        self.error_code: Optional[str] = None
        self.error: Optional[str] = None

    def add(self, status: str, reason: str, meta: Dict[str, Any]) -> None:
        self.entries.append(
            {
                "status": status,
                "reason": reason,
                **meta,
            }
        )
        self.summary[f"count_{status}"] += 1

    def set(self, key: str, value: Any) -> None:
        self.summary[key] = value

    def fail(self, error_code: str, error: str) -> None:
        self.status = "failed"
        self.error_code = error_code
        self.error = error

    def finalize(self, path: Optional[Path] = None, extra: Optional[Dict[str, Any]] = None) -> Path:
        if self.status == "running":
            self.status = "ok"
        payload = {
            "run_id": self.run_id,
            "command": self.command,
            "status": self.status,
            "error_code": self.error_code,
            "error": self.error,
            "started_at": self.started_at,
            "ended_at": time.time(),
            "summary": dict(self.summary),
            "entries": self.entries,
            **(extra or {}),
        }
        target = Path(path) if path is not None else config.SUMMARY_FILE
        save_json_file(target, payload)
        return target


__all__ = ["RunTelemetry"]
