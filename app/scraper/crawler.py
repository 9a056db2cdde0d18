"""Pagination crawler for the Active Asbestos Projects report.

Workflow:

- Open the report viewer with a response listener attached.
- The viewer fetches each page of rows from ``.../v1/disp`` as a script
  fragment calling ``addContextData``; the listener parses those into batches
  and publishes them on a ``BatchChannel``.
- Wait for the first batch, then loop: drain queued batches, checkpoint,
  let the viewer settle, find the "Page down" control in whichever frame holds
  it, click it and wait for the next batch or the per-page timeout.
- Stop when the control is missing, rendered disabled (``*_dis`` image), the
  click produces no data, or the control cannot be actuated.

Only the global deadline, or a browser that cannot open the report at all,
aborts a crawl; everything else ends it with the rows collected so far.
"""

from __future__ import annotations

import enum
import time
from pathlib import Path
from typing import Callable, List, Optional

from . import config
from .batch_channel import Batch, BatchChannel
from .browser import InterceptedResponse, NavigationTimeout, ReportControl, ReportSession
from .deadline import Clock, CrawlDeadlineExceeded, Deadline
from .error_codes import ErrorCode
from .logging_utils import _scraper_event
from .models import RawRecord
from .parser import parse_disp_response
from .utils import append_json_line, log_line, save_json_file

_DATA_CONTENT_TYPES = ("json", "javascript", "text/")


class CrawlState(enum.Enum):
    AWAITING_FIRST_BATCH = "awaiting_first_batch"
    PROCESSING_PAGE = "processing_page"
    AWAITING_NEXT_BATCH = "awaiting_next_batch"
    DONE = "done"


class ResponseListener:
    """Turns qualifying report responses into batches on a channel."""

    def __init__(
        self,
        channel: BatchChannel,
        *,
        endpoint_marker: str = config.DATA_ENDPOINT_MARKER,
        body_marker: str = config.DATA_BODY_MARKER,
        parse: Callable[[str], List[RawRecord]] = parse_disp_response,
        fixture_path: Optional[Path] = None,
    ) -> None:
        self.channel = channel
        self.endpoint_marker = endpoint_marker
        self.body_marker = body_marker
        self.parse = parse
        self.fixture_path = fixture_path
        self.intercepted = 0

    def _is_candidate(self, response: InterceptedResponse) -> bool:
        if self.endpoint_marker not in response.url or response.status != 200:
            return False
        content_type = (response.header_value("content-type") or "").lower()
        return not content_type or any(kind in content_type for kind in _DATA_CONTENT_TYPES)

    def __call__(self, response: InterceptedResponse) -> None:
        # Runs inside browser event dispatch: never raise from here.
        try:
            if not self._is_candidate(response):
                return
            url = response.url
            body = response.text()
        except Exception as exc:  # noqa: BLE001
            log_line(f"[INTERCEPT] Error reading response: {exc}")
            return

        if self.body_marker not in body:
            return

        self.intercepted += 1
        log_line("[INTERCEPT] Intercepted data response.")
        if self.fixture_path is not None:
            try:
                append_json_line(self.fixture_path, {"url": url, "status": 200, "body": body})
            except OSError as exc:
                log_line(f"[INTERCEPT][WARN] Unable to record fixture: {exc}")

        try:
            batch = self.parse(body)
        except Exception as exc:  # noqa: BLE001
            _scraper_event(
                "error",
                phase="intercept",
                error_code=ErrorCode.MALFORMED_RESPONSE,
                error=str(exc),
            )
            return

        if batch:
            log_line(f"[INTERCEPT] Parsed {len(batch)} rows.")
            self.channel.publish(batch)


class PaginationCrawler:
    """Drives one report session from the first page to the last."""

    def __init__(
        self,
        session: ReportSession,
        *,
        report_url: Optional[str] = None,
        checkpoint_path: Optional[Path] = None,
        channel: Optional[BatchChannel] = None,
        deadline: Optional[Deadline] = None,
        page_timeout_seconds: Optional[float] = None,
        settle_seconds: Optional[float] = None,
        fixture_path: Optional[Path] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.session = session
        self.report_url = report_url or config.REPORT_URL
        self.checkpoint_path = checkpoint_path
        self.channel = channel or BatchChannel(clock=clock)
        self.deadline = deadline or Deadline(None, clock=clock)
        self.page_timeout_seconds = (
            page_timeout_seconds
            if page_timeout_seconds is not None
            else config.PAGE_BATCH_TIMEOUT_SECONDS
        )
        self.settle_seconds = settle_seconds if settle_seconds is not None else config.PAGE_SETTLE_SECONDS
        self.listener = ResponseListener(self.channel, fixture_path=fixture_path)

        self.state = CrawlState.AWAITING_FIRST_BATCH
        self.records: List[RawRecord] = []
        self.pages = 0
        self.stop_reason: Optional[str] = None

    # ------------------------------------------------------------------
    # Suspension points
    # ------------------------------------------------------------------

    def _idle(self, seconds: float) -> None:
        self.session.wait(seconds)

    def _wait(self, seconds: float) -> None:
        self.deadline.check()
        self.session.wait(self.deadline.clamp(seconds))
        self.deadline.check()

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    def _extend(self, batch: Batch) -> None:
        self.records.extend(batch)

    def _finish(self, reason: str, *, error_code: Optional[str] = None) -> None:
        self.stop_reason = reason
        self.state = CrawlState.DONE
        _scraper_event(
            "crawl",
            phase="done",
            reason=reason,
            error_code=error_code,
            pages=self.pages,
            rows=len(self.records),
        )

    def _abandon(self, phase: str, exc: Exception) -> None:
        _scraper_event(
            "error",
            phase=phase,
            error_code=ErrorCode.NAVIGATION,
            page=self.pages,
            error=str(exc),
        )
        self._finish("navigation_error", error_code=ErrorCode.NAVIGATION)

    def _receive(self, timeout: Optional[float], phase: str) -> Optional[Batch]:
        """Wait for a batch. A failing session ends the crawl (state DONE)."""

        try:
            return self.channel.receive(timeout, idle=self._idle, deadline=self.deadline)
        except CrawlDeadlineExceeded:
            raise
        except Exception as exc:  # noqa: BLE001
            self._abandon(phase, exc)
            return None

    def _checkpoint(self) -> None:
        if self.checkpoint_path is None:
            return
        try:
            save_json_file(self.checkpoint_path, [record.to_dict() for record in self.records])
        except OSError as exc:
            log_line(f"[CRAWL][WARN] Unable to write checkpoint {self.checkpoint_path}: {exc}")

    def _log_frame_diagnostics(self) -> None:
        try:
            frames = self.session.describe_frames(config.NEXT_PAGE_LABEL)
        except Exception as exc:  # noqa: BLE001
            log_line(f"[CRAWL] Unable to summarise frames: {exc}")
            return
        for frame in frames:
            log_line(
                f"- Frame {frame.get('name')!r} ({str(frame.get('url', ''))[:30]}): "
                f"html len {frame.get('html_length', 'n/a')}"
            )
            if frame.get("contains_marker"):
                log_line(f"  [!] Frame contains {config.NEXT_PAGE_LABEL!r} text")

    def _await_first_batch(self) -> None:
        log_line("Waiting for initial data...")
        batch = self._receive(None, "first_batch")
        if self.state is CrawlState.DONE:
            return
        if batch is not None:
            self._extend(batch)
        self.state = CrawlState.PROCESSING_PAGE

    def _find_next_control(self) -> Optional[ReportControl]:
        control = self.session.find_control(config.NEXT_PAGE_SELECTOR)
        if control is None:
            log_line(f"{config.NEXT_PAGE_LABEL} button not found in any frame.")
            self._log_frame_diagnostics()
        return control

    def _process_page(self) -> None:
        for batch in self.channel.drain():
            self._extend(batch)
        self.pages += 1
        log_line(f"Page {self.pages} processed. Total rows: {len(self.records)}")
        self._checkpoint()

        try:
            log_line(f"Waiting for UI to render navigation ({self.settle_seconds:g}s)...")
            self._wait(self.settle_seconds)

            control = self._find_next_control()
            if control is None:
                self._finish("next_control_missing", error_code=ErrorCode.SITE_STRUCTURE)
                return

            src = control.get_attribute("src")
            if src and config.DISABLED_SRC_MARKER in src:
                log_line(f"{config.NEXT_PAGE_LABEL} disabled (image src contains "
                         f"{config.DISABLED_SRC_MARKER}). End of report.")
                self._finish("next_control_disabled")
                return

            log_line(f"Clicking {config.NEXT_PAGE_LABEL}...")
            control.click()
        except CrawlDeadlineExceeded:
            raise
        except Exception as exc:  # noqa: BLE001
            self._abandon("navigation", exc)
            return

        self.state = CrawlState.AWAITING_NEXT_BATCH

    def _await_next_batch(self) -> None:
        log_line("Waiting for next data batch...")
        batch = self._receive(self.page_timeout_seconds, "next_batch")
        if self.state is CrawlState.DONE:
            return
        if batch is None:
            log_line("No new data received after click. Assuming end.")
            self._finish("page_timeout")
            return
        self._extend(batch)
        self.state = CrawlState.PROCESSING_PAGE

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def crawl(self) -> List[RawRecord]:
        """Collect every row of the report, in page order.

        Raises ``CrawlDeadlineExceeded`` when the global deadline fires and
        ``ReportSessionError`` when the browser cannot open the report at all.
        """

        log_line("Navigating...")
        try:
            self.session.open(self.report_url, self.listener)
        except NavigationTimeout as exc:
            # The viewer often keeps loading past a goto timeout; the first
            # batch wait (bounded by the deadline) decides.
            _scraper_event(
                "error",
                phase="nav",
                error_code=exc.error_code,
                url=self.report_url,
                error=str(exc),
            )
        self.state = CrawlState.AWAITING_FIRST_BATCH

        handlers = {
            CrawlState.AWAITING_FIRST_BATCH: self._await_first_batch,
            CrawlState.PROCESSING_PAGE: self._process_page,
            CrawlState.AWAITING_NEXT_BATCH: self._await_next_batch,
        }
        while self.state is not CrawlState.DONE:
            handlers[self.state]()

        return list(self.records)


__all__ = ["CrawlState", "ResponseListener", "PaginationCrawler"]
