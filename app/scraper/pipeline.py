"""Crawl → geocode pipeline and its command-line entry point.

Stages:

- ``run_crawl``: drive the report viewer under a single global deadline and
  write the raw dataset (also checkpointed after every page).
- ``run_geocode``: read the raw dataset, geocode each record sequentially
  with a fixed delay between calls, save the cache and write the enriched
  dataset. Records that fail to geocode are kept without coordinates.
- ``run_pipeline``: both, in order.

``main`` returns the process exit status: 0 on success, 1 when the crawl
deadline is exceeded, the browser cannot open the report, the raw input is
missing, or configuration is invalid.
"""

from __future__ import annotations

import argparse
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from . import config
from .browser import PlaywrightReportSession, ReportSession, ReportSessionError
from .config_validation import validate_runtime_config
from .crawler import PaginationCrawler
from .deadline import Clock, CrawlDeadlineExceeded, Deadline
from .error_codes import ErrorCode
from .geocode_cache import GeocodeCache
from .geocoder import GeocodingClient, format_address
from .logging_utils import _scraper_event
from .models import EnrichedRecord, RawRecord
from .replay_harness import ReplayConfig, run_replay
from .telemetry import RunTelemetry
from .utils import ensure_dirs, load_json_file, log_line, save_json_file, setup_run_logger


class MissingInputError(Exception):
    error_code = ErrorCode.MISSING_INPUT


def _fixture_path() -> Optional[Path]:
    if not config.RECORD_REPLAY_FIXTURES:
        return None
    return config.REPLAY_FIXTURES_DIR / f"responses_{time.strftime('%Y%m%d_%H%M%S')}.jsonl"


def run_crawl(
    *,
    session: Optional[ReportSession] = None,
    report_url: Optional[str] = None,
    raw_output: Optional[Path] = None,
    timeout_seconds: Optional[float] = None,
    page_timeout_seconds: Optional[float] = None,
    settle_seconds: Optional[float] = None,
    clock: Clock = time.monotonic,
    telemetry: Optional[RunTelemetry] = None,
) -> List[RawRecord]:
    """Crawl the whole report and persist the raw dataset.

    Raises ``CrawlDeadlineExceeded`` when the global deadline fires and
    ``ReportSessionError`` when the browser cannot open the report; the last
    page checkpoint stays on disk and the browser is closed either way.
    """

    raw_output = Path(raw_output or config.RAW_OUTPUT_FILE)
    deadline = Deadline(
        timeout_seconds if timeout_seconds is not None else config.CRAWL_TIMEOUT_SECONDS,
        clock=clock,
    )
    session = session if session is not None else PlaywrightReportSession()
    crawler = PaginationCrawler(
        session,
        report_url=report_url,
        checkpoint_path=raw_output,
        deadline=deadline,
        page_timeout_seconds=page_timeout_seconds,
        settle_seconds=settle_seconds,
        fixture_path=_fixture_path(),
        clock=clock,
    )

    log_line("Crawling...")
    try:
        records = crawler.crawl()
    except (CrawlDeadlineExceeded, ReportSessionError) as exc:
        _scraper_event(
            "error",
            phase="crawl",
            error_code=exc.error_code,
            pages=crawler.pages,
            rows=len(crawler.records),
            checkpoint=str(raw_output),
            error=str(exc),
        )
        if telemetry is not None:
            telemetry.set("crawl_pages", crawler.pages)
            telemetry.set("crawl_rows_checkpointed", len(crawler.records))
        raise
    finally:
        session.close()

    log_line(f"Found {len(records)} total results.")
    save_json_file(raw_output, [record.to_dict() for record in records])
    log_line(f"Saved results to {raw_output}")

    if telemetry is not None:
        telemetry.set("crawl_pages", crawler.pages)
        telemetry.set("crawl_rows", len(records))
        telemetry.set("crawl_stop_reason", crawler.stop_reason)
        telemetry.set("crawl_batches_dropped", crawler.channel.dropped)
    return records


def load_raw_records(raw_input: Path) -> List[RawRecord]:
    """Read the raw dataset written by the crawl stage."""

    raw_input = Path(raw_input)
    if not raw_input.exists():
        raise MissingInputError(f"No raw output found at {raw_input}. Run the crawl first.")

    data = load_json_file(raw_input)
    if not isinstance(data, list):
        raise MissingInputError(f"Raw output at {raw_input} is not a JSON array.")
    return [RawRecord.from_dict(item) for item in data if isinstance(item, dict)]


def enrich_records(
    records: Sequence[RawRecord],
    client: GeocodingClient,
    *,
    delay_seconds: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
    telemetry: Optional[RunTelemetry] = None,
) -> List[EnrichedRecord]:
    """Geocode ``records`` one at a time, pausing between successive calls."""

    delay = config.GEOCODE_DELAY_SECONDS if delay_seconds is None else delay_seconds
    enriched: List[EnrichedRecord] = []

    log_line(f"Geocoding {len(records)} items...")
    for position, record in enumerate(records):
        if position and delay > 0:
            sleep(delay)
        address = format_address(record)
        coords = client.geocode(address)
        enriched.append(EnrichedRecord.from_raw(record, coords))
        if telemetry is not None:
            telemetry.add(
                "geocoded" if coords is not None else "not_geocoded",
                "ok" if coords is not None else ErrorCode.NO_MATCH,
                {"address": address},
            )
    return enriched


def run_geocode(
    *,
    raw_input: Optional[Path] = None,
    output: Optional[Path] = None,
    cache_path: Optional[Path] = None,
    client: Optional[GeocodingClient] = None,
    delay_seconds: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
    telemetry: Optional[RunTelemetry] = None,
) -> List[EnrichedRecord]:
    """Enrich the raw dataset with coordinates and write the output dataset."""

    records = load_raw_records(Path(raw_input or config.RAW_OUTPUT_FILE))
    output = Path(output or config.OUTPUT_FILE)
    if client is None:
        client = GeocodingClient(GeocodeCache.load(cache_path))

    try:
        enriched = enrich_records(
            records,
            client,
            delay_seconds=delay_seconds,
            sleep=sleep,
            telemetry=telemetry,
        )
    finally:
        client.cache.save()

    save_json_file(output, [item.to_dict() for item in enriched])
    geocoded = sum(1 for item in enriched if item.geocoded)
    log_line(f"Saved {len(enriched)} items to {output} ({geocoded} geocoded).")

    if telemetry is not None:
        telemetry.set("geocode_records", len(enriched))
        telemetry.set("geocode_succeeded", geocoded)
        telemetry.set("geocode_failed", len(enriched) - geocoded)
        telemetry.set("geocode_cache_hits", client.cache_hits)
        telemetry.set("geocode_network_calls", client.network_calls)
    return enriched


def run_pipeline(
    *,
    session: Optional[ReportSession] = None,
    client: Optional[GeocodingClient] = None,
    telemetry: Optional[RunTelemetry] = None,
) -> List[EnrichedRecord]:
    run_crawl(session=session, telemetry=telemetry)
    return run_geocode(client=client, telemetry=telemetry)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Scrape the Active Asbestos Projects report and geocode it.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    crawl = subparsers.add_parser("crawl", help="Crawl the report into the raw dataset.")
    crawl.add_argument("--report-url", default=None)
    crawl.add_argument("--raw-output", type=Path, default=None)

    geocode = subparsers.add_parser("geocode", help="Geocode the raw dataset.")
    geocode.add_argument("--raw-input", type=Path, default=None)
    geocode.add_argument("--output", type=Path, default=None)
    geocode.add_argument("--cache", type=Path, default=None)

    subparsers.add_parser("all", help="Crawl, then geocode.")

    replay = subparsers.add_parser("replay", help="Parse recorded responses offline.")
    replay.add_argument("fixtures", type=Path, help="Path to a responses_*.jsonl file")
    replay.add_argument("--raw-output", type=Path, default=None)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the pipeline CLI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    ensure_dirs()
    setup_run_logger()
    telemetry = RunTelemetry(args.command)

    try:
        validate_runtime_config("replay" if args.command == "replay" else "cli", command=args.command)
    except ValueError as exc:
        telemetry.fail("config_invalid", str(exc))
        telemetry.finalize()
        return 1

    try:
        if args.command == "crawl":
            run_crawl(report_url=args.report_url, raw_output=args.raw_output, telemetry=telemetry)
        elif args.command == "geocode":
            run_geocode(
                raw_input=args.raw_input,
                output=args.output,
                cache_path=args.cache,
                telemetry=telemetry,
            )
        elif args.command == "all":
            run_pipeline(telemetry=telemetry)
        elif args.command == "replay":
            summary = run_replay(ReplayConfig(fixtures_path=args.fixtures, output_path=args.raw_output))
            telemetry.set("replay_records", summary["records"])
    except (CrawlDeadlineExceeded, ReportSessionError) as exc:
        log_line(f"Error during crawl: {exc}")
        telemetry.fail(exc.error_code, str(exc))
        return 1
    except MissingInputError as exc:
        log_line(str(exc))
        telemetry.fail(exc.error_code, str(exc))
        return 1
    finally:
        try:
            telemetry.finalize()
        except OSError as exc:
            log_line(f"[RUN][WARN] Unable to write summary: {exc}")
    return 0


__all__ = [
    "MissingInputError",
    "run_crawl",
    "load_raw_records",
    "enrich_records",
    "run_geocode",
    "run_pipeline",
    "main",
]


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
