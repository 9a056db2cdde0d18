"""Browser automation seam for the report crawler.

The crawler only needs a handful of capabilities from the browser: open the
report while forwarding every network response, let time pass so events can
be delivered, and look up a control across all frames. ``ReportSession``
captures that surface so the pagination logic can run against a fake in
tests; ``PlaywrightReportSession`` is the real implementation.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Protocol

from playwright.sync_api import (
    Browser,
    BrowserContext,
    Error as PWError,
    Locator,
    Page,
    Playwright,
    TimeoutError as PWTimeoutError,
    sync_playwright,
)

from . import config
from .error_codes import ErrorCode
from .logging_utils import _scraper_event
from .utils import log_line

UA = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class ReportSessionError(Exception):
    """The browser did not start, or the report page is gone."""

    error_code = ErrorCode.SESSION_UNAVAILABLE


class NavigationTimeout(Exception):
    """Opening the report timed out; the page may still finish loading."""

    error_code = ErrorCode.NAVIGATION


class InterceptedResponse(Protocol):
    """The parts of a network response the listener reads.

    Playwright's sync ``Response`` satisfies this directly.
    """

    @property
    def url(self) -> str: ...

    @property
    def status(self) -> int: ...

    def header_value(self, name: str) -> Optional[str]: ...

    def text(self) -> str: ...


ResponseHandler = Callable[[InterceptedResponse], None]


class ReportControl(Protocol):
    def get_attribute(self, name: str) -> Optional[str]: ...

    def click(self) -> None: ...


class ReportSession(Protocol):
    """``open`` raises ``NavigationTimeout`` for a slow first load; ``open`` and
    ``wait`` raise ``ReportSessionError`` once the browser is unusable."""

    def open(self, url: str, on_response: ResponseHandler) -> None: ...

    def wait(self, seconds: float) -> None: ...

    def find_control(self, selector: str) -> Optional[ReportControl]: ...

    def describe_frames(self, marker: str) -> List[Dict[str, Any]]: ...

    def close(self) -> None: ...


def _is_target_closed_error(exc: Exception) -> bool:
    """Return ``True`` if *exc* indicates the Playwright target is gone."""

    message = str(exc)
    return any(
        marker in message
        for marker in (
            "Target closed",
            "Target crashed",
            "has been closed",
            "Execution context was destroyed",
        )
    )


class PlaywrightControl:
    def __init__(self, locator: Locator, frame_url: str) -> None:
        self._locator = locator
        self.frame_url = frame_url

    def get_attribute(self, name: str) -> Optional[str]:
        return self._locator.get_attribute(name)

    def click(self) -> None:
        self._locator.click()


class PlaywrightReportSession:
    """Headless Chromium session driven through the Playwright sync API."""

    def __init__(self, *, headless: Optional[bool] = None, nav_timeout_seconds: Optional[float] = None) -> None:
        self.headless = config.HEADLESS if headless is None else headless
        self.nav_timeout_seconds = (
            nav_timeout_seconds if nav_timeout_seconds is not None else config.NAV_TIMEOUT_SECONDS
        )
        self._pw: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    def _start(self) -> Page:
        if self._page is not None:
            return self._page

        log_line("Launching browser...")
        try:
            self._pw = sync_playwright().start()
            self._browser = self._pw.chromium.launch(headless=self.headless, args=config.BROWSER_ARGS)
            self._context = self._browser.new_context(user_agent=UA, locale="en-US")
            self._page = self._context.new_page()
        except Exception as exc:  # noqa: BLE001
            self.close()
            raise ReportSessionError(f"Unable to launch Chromium: {exc}") from exc
        return self._page

    def open(self, url: str, on_response: ResponseHandler) -> None:
        """Navigate to ``url`` with ``on_response`` receiving every response.

        Raises ``NavigationTimeout`` when ``goto`` times out and
        ``ReportSessionError`` when the browser cannot be used at all.
        """

        page = self._start()
        page.on("response", on_response)
        _scraper_event("nav", step="goto", url=url)
        try:
            page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.nav_timeout_seconds * 1000,
            )
        except PWTimeoutError as exc:
            raise NavigationTimeout(str(exc)) from exc
        except PWError as exc:
            raise ReportSessionError(f"Navigation to report failed: {exc}") from exc

    def wait(self, seconds: float) -> None:
        """Let ``seconds`` pass inside Playwright so response events are delivered.

        Raises ``ReportSessionError`` when there is no live page to wait on.
        """

        if seconds is None or seconds <= 0:
            return
        page = self._page
        if page is None or page.is_closed():
            raise ReportSessionError("Report page is not open")
        try:
            page.wait_for_timeout(max(1, int(seconds * 1000)))
        except PWError as exc:
            if _is_target_closed_error(exc):
                raise ReportSessionError(f"Report page closed: {exc}") from exc
            raise

    def find_control(self, selector: str) -> Optional[ReportControl]:
        """Return the first visible match for ``selector`` across all frames."""

        if self._page is None:
            return None

        frames = self._page.frames
        log_line(f"Checking {len(frames)} frames for {selector!r}...")
        for frame in frames:
            frame_url = frame.url
            log_line(f'- Frame "{frame.name}" URL: {frame_url[:60]}...')
            try:
                locator = frame.locator(selector).first
                if locator.count() > 0 and locator.is_visible():
                    log_line(f"Found control in frame: {frame_url[:50]}...")
                    return PlaywrightControl(locator, frame_url)
            except PWError as exc:
                # Frames detach while the report re-renders; keep looking.
                if not _is_target_closed_error(exc):
                    log_line(f"[BROWSER] Frame lookup failed in {frame_url[:50]}: {exc}")
                continue
        return None

    def describe_frames(self, marker: str) -> List[Dict[str, Any]]:
        if self._page is None:
            return []

        summary: List[Dict[str, Any]] = []
        for frame in self._page.frames:
            try:
                html = frame.content()
            except PWError as exc:
                summary.append({"name": frame.name, "url": frame.url, "error": str(exc)})
                continue
            summary.append(
                {
                    "name": frame.name,
                    "url": frame.url,
                    "html_length": len(html),
                    "contains_marker": marker in html,
                }
            )
        return summary

    def close(self) -> None:
        for label, closer in (
            ("context", self._context.close if self._context else None),
            ("browser", self._browser.close if self._browser else None),
            ("playwright", self._pw.stop if self._pw else None),
        ):
            if closer is None:
                continue
            try:
                closer()
            except Exception as exc:  # noqa: BLE001
                log_line(f"[BROWSER][WARN] Error closing {label}: {exc}")
        self._page = None
        self._context = None
        self._browser = None
        self._pw = None

    def __enter__(self) -> "PlaywrightReportSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()


__all__ = [
    "ReportSessionError",
    "NavigationTimeout",
    "InterceptedResponse",
    "ResponseHandler",
    "ReportControl",
    "ReportSession",
    "PlaywrightControl",
    "PlaywrightReportSession",
]
