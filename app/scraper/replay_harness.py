"""Offline replay of recorded report responses.

Fixtures are the JSONL files written by the response listener when
``ASBESTOS_RECORD_REPLAY_FIXTURES=1``: one ``{"url", "status", "body"}`` object
per intercepted data response, in arrival order. Replaying runs every body
through the same parser as a live crawl and writes the raw dataset, so parser
changes can be checked against real traffic without a browser.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from . import config
from .config_validation import validate_runtime_config
from .logging_utils import _scraper_event
from .models import RawRecord
from .parser import parse_disp_response
from .utils import load_json_lines, log_line, save_json_file


@dataclass
class ReplayConfig:
    fixtures_path: Path
    output_path: Optional[Path] = None


def load_response_fixtures(fixtures_path: Path) -> Iterable[Dict[str, Any]]:
    for item in load_json_lines(fixtures_path):
        if not isinstance(item, dict):
            continue
        if not isinstance(item.get("body"), str):
            continue
        yield item


def run_replay(config_obj: ReplayConfig) -> Dict[str, Any]:
    validate_runtime_config("replay", command="replay")
    fixtures = list(load_response_fixtures(config_obj.fixtures_path))
    output_path = Path(config_obj.output_path or config.RAW_OUTPUT_FILE)
    summary: Dict[str, Any] = {
        "fixtures": len(fixtures),
        "batches": 0,
        "records": 0,
    }

    _scraper_event("replay", phase="start", fixtures=str(config_obj.fixtures_path))

    records: List[RawRecord] = []
    for item in fixtures:
        log_line(f"[REPLAY] Replaying response from {str(item.get('url', ''))[:80]}")
        batch = parse_disp_response(item["body"])
        if batch:
            summary["batches"] += 1
            records.extend(batch)

    save_json_file(output_path, [record.to_dict() for record in records])
    summary["records"] = len(records)
    summary["output"] = str(output_path)

    _scraper_event("replay", phase="end", **summary)
    return summary


__all__ = ["ReplayConfig", "load_response_fixtures", "run_replay"]
