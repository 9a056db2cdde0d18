from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from app.scraper import crawler
from app.scraper.batch_channel import BatchChannel
from app.scraper.browser import NavigationTimeout, ReportSessionError
from app.scraper.crawler import CrawlState, PaginationCrawler, ResponseListener
from app.scraper.deadline import CrawlDeadlineExceeded, Deadline
from app.scraper.models import RawRecord
from tests.test_parser import _disp_body, _row

DISP_URL = "https://biservices.example.gov/bi/v1/disp/rds/pagedReport"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(
        self,
        body: str,
        *,
        url: str = DISP_URL,
        status: int = 200,
        content_type: Optional[str] = "text/javascript; charset=UTF-8",
    ) -> None:
        self.url = url
        self.status = status
        self._body = body
        self._content_type = content_type

    def header_value(self, name: str) -> Optional[str]:
        return self._content_type if name.lower() == "content-type" else None

    def text(self) -> str:
        return self._body


@dataclass
class PageScript:
    """What ``find_control`` returns for one page and what its click delivers."""

    src: Optional[str] = "/bi/images/page_down.gif"
    on_click: List[FakeResponse] = field(default_factory=list)
    missing: bool = False
    click_error: Optional[Exception] = None


class FakeControl:
    def __init__(self, session: "FakeSession", script: PageScript) -> None:
        self.session = session
        self.script = script

    def get_attribute(self, name: str) -> Optional[str]:
        return self.script.src if name == "src" else None

    def click(self) -> None:
        self.session.clicks += 1
        if self.script.click_error is not None:
            raise self.script.click_error
        # Responses land asynchronously, on the next wait.
        self.session.pending.extend(self.script.on_click)


class FakeSession:
    """Scripted report session: responses are delivered only while waiting."""

    def __init__(self, clock: FakeClock, initial: List[FakeResponse], pages: List[PageScript]) -> None:
        self.clock = clock
        self.pending: List[FakeResponse] = list(initial)
        self.pages = pages
        self.handler = None
        self.opened_url: Optional[str] = None
        self.lookups = 0
        self.clicks = 0
        self.waited = 0.0
        self.described = 0
        self.closed = False

    def open(self, url: str, on_response) -> None:  # noqa: ANN001
        self.opened_url = url
        self.handler = on_response

    def wait(self, seconds: float) -> None:
        self.clock.advance(seconds)
        self.waited += seconds
        delivered, self.pending = self.pending, []
        for response in delivered:
            self.handler(response)

    def find_control(self, selector: str) -> Optional[FakeControl]:
        index = self.lookups
        self.lookups += 1
        if index >= len(self.pages) or self.pages[index].missing:
            return None
        return FakeControl(self, self.pages[index])

    def describe_frames(self, marker: str) -> List[Dict[str, Any]]:
        self.described += 1
        return [{"name": "", "url": "https://example.gov/", "html_length": 10, "contains_marker": False}]

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch: pytest.MonkeyPatch) -> List[tuple]:
    events: List[tuple] = []
    monkeypatch.setattr(crawler, "log_line", lambda msg: None)
    monkeypatch.setattr(crawler, "_scraper_event", lambda *args, **kwargs: events.append((args, kwargs)))
    return events


def _response(*contractors: str, start: int = 100) -> FakeResponse:
    return FakeResponse(_disp_body([_row(name) for name in contractors], start=start))


def _crawler(session: FakeSession, clock: FakeClock, **kwargs: Any) -> PaginationCrawler:
    kwargs.setdefault("page_timeout_seconds", 30)
    kwargs.setdefault("settle_seconds", 10)
    return PaginationCrawler(session, report_url="https://example.gov/report", clock=clock, **kwargs)


def test_two_batches_then_disabled_control(tmp_path: Path) -> None:
    clock = FakeClock()
    session = FakeSession(
        clock,
        initial=[_response("A1", "A2")],
        pages=[
            PageScript(on_click=[_response("B1", "B2", start=500)]),
            PageScript(src="/bi/images/page_down_dis.gif"),
        ],
    )
    crawl = _crawler(session, clock, checkpoint_path=tmp_path / "raw_output.json")

    records = crawl.crawl()

    assert [record.contractor for record in records] == ["A1", "A2", "B1", "B2"]
    assert len(set(records)) == len(records)
    assert crawl.state is CrawlState.DONE
    assert crawl.stop_reason == "next_control_disabled"
    assert crawl.pages == 2
    assert session.clicks == 1
    assert session.opened_url == "https://example.gov/report"


def test_click_without_batch_ends_at_page_timeout(tmp_path: Path) -> None:
    clock = FakeClock()
    session = FakeSession(clock, initial=[_response("A1")], pages=[PageScript(on_click=[])])
    crawl = _crawler(session, clock, page_timeout_seconds=30, settle_seconds=10)

    records = crawl.crawl()

    assert [record.contractor for record in records] == ["A1"]
    assert crawl.stop_reason == "page_timeout"
    assert session.clicks == 1
    # First-batch poll + settle + the full per-page timeout.
    assert clock.now >= 40


def test_missing_control_ends_crawl_and_logs_frames(quiet_logs: List[tuple]) -> None:
    clock = FakeClock()
    session = FakeSession(clock, initial=[_response("A1")], pages=[PageScript(missing=True)])
    crawl = _crawler(session, clock)

    records = crawl.crawl()

    assert [record.contractor for record in records] == ["A1"]
    assert crawl.stop_reason == "next_control_missing"
    assert session.described == 1
    assert session.clicks == 0
    assert any(kwargs.get("error_code") == "site_structure_changed" for _, kwargs in quiet_logs)


def test_click_error_is_treated_as_end_of_crawl(quiet_logs: List[tuple]) -> None:
    clock = FakeClock()
    session = FakeSession(
        clock,
        initial=[_response("A1")],
        pages=[PageScript(click_error=RuntimeError("Frame was detached"))],
    )
    crawl = _crawler(session, clock)

    records = crawl.crawl()

    assert [record.contractor for record in records] == ["A1"]
    assert crawl.stop_reason == "navigation_error"
    assert any(kwargs.get("error_code") == "navigation_error" for _, kwargs in quiet_logs)


def test_browser_crash_while_waiting_for_next_batch_keeps_rows(quiet_logs: List[tuple]) -> None:
    clock = FakeClock()

    class CrashingSession(FakeSession):
        def wait(self, seconds: float) -> None:
            if self.clicks > 0:
                raise RuntimeError("Target page, context or browser has been closed")
            super().wait(seconds)

    session = CrashingSession(clock, initial=[_response("A1")], pages=[PageScript(on_click=[])])
    crawl = _crawler(session, clock)

    records = crawl.crawl()

    assert [record.contractor for record in records] == ["A1"]
    assert crawl.state is CrawlState.DONE
    assert crawl.stop_reason == "navigation_error"
    assert any(
        kwargs.get("phase") == "next_batch" and kwargs.get("error_code") == "navigation_error"
        for _, kwargs in quiet_logs
    )


def test_page_lost_before_first_batch_ends_crawl_empty() -> None:
    clock = FakeClock()

    class ClosedPageSession(FakeSession):
        def wait(self, seconds: float) -> None:
            raise ReportSessionError("Report page is not open")

    session = ClosedPageSession(clock, initial=[_response("A1")], pages=[])
    crawl = _crawler(session, clock, deadline=Deadline(120, clock=clock))

    assert crawl.crawl() == []
    assert crawl.stop_reason == "navigation_error"
    assert clock.now == 0


def test_browser_that_cannot_launch_fails_fast() -> None:
    clock = FakeClock()

    class NoBrowserSession(FakeSession):
        def open(self, url: str, on_response) -> None:  # noqa: ANN001
            raise ReportSessionError("Unable to launch Chromium: Executable doesn't exist")

    session = NoBrowserSession(clock, initial=[_response("A1")], pages=[])
    crawl = _crawler(session, clock, deadline=Deadline(1800, clock=clock))

    with pytest.raises(ReportSessionError):
        crawl.crawl()

    assert session.waited == 0
    assert clock.now == 0


def test_checkpoint_written_after_every_page(tmp_path: Path) -> None:
    clock = FakeClock()
    checkpoint = tmp_path / "raw_output.json"
    snapshots: List[List[str]] = []

    class SnapshottingSession(FakeSession):
        def find_control(self, selector: str):  # noqa: ANN201
            data = json.loads(checkpoint.read_text(encoding="utf-8"))
            snapshots.append([item["contractor"] for item in data])
            return super().find_control(selector)

    session = SnapshottingSession(
        clock,
        initial=[_response("A1")],
        pages=[PageScript(on_click=[_response("B1", start=900)]), PageScript(missing=True)],
    )

    _crawler(session, clock, checkpoint_path=checkpoint).crawl()

    assert snapshots == [["A1"], ["A1", "B1"]]


def test_batches_arriving_together_are_drained_in_order() -> None:
    clock = FakeClock()
    session = FakeSession(
        clock,
        initial=[_response("A1"), _response("A2", start=300), _response("A3", start=600)],
        pages=[PageScript(src="/bi/images/page_down_dis.gif")],
    )
    crawl = _crawler(session, clock)

    records = crawl.crawl()

    assert [record.contractor for record in records] == ["A1", "A2", "A3"]
    assert crawl.pages == 1


def test_no_first_batch_blocks_until_deadline() -> None:
    clock = FakeClock()
    session = FakeSession(clock, initial=[], pages=[])
    crawl = _crawler(session, clock, deadline=Deadline(120, clock=clock))

    with pytest.raises(CrawlDeadlineExceeded):
        crawl.crawl()

    assert crawl.state is CrawlState.AWAITING_FIRST_BATCH
    assert clock.now == pytest.approx(120)


def test_deadline_during_settle_propagates() -> None:
    clock = FakeClock()
    session = FakeSession(clock, initial=[_response("A1")], pages=[PageScript()])
    crawl = _crawler(session, clock, settle_seconds=10, deadline=Deadline(5, clock=clock))

    with pytest.raises(CrawlDeadlineExceeded):
        crawl.crawl()

    assert [record.contractor for record in crawl.records] == ["A1"]
    assert session.clicks == 0


def test_open_failure_still_waits_for_data() -> None:
    clock = FakeClock()

    class SlowSession(FakeSession):
        def open(self, url: str, on_response) -> None:  # noqa: ANN001
            super().open(url, on_response)
            raise NavigationTimeout("Timeout 60000ms exceeded")

    session = SlowSession(clock, initial=[_response("A1")], pages=[PageScript(missing=True)])

    records = _crawler(session, clock).crawl()

    assert [record.contractor for record in records] == ["A1"]


def test_listener_filters_responses() -> None:
    channel = BatchChannel(maxsize=10)
    listener = ResponseListener(channel)
    body = _disp_body([_row("ACME")])

    listener(FakeResponse(body, url="https://example.gov/bi/v1/other"))
    listener(FakeResponse(body, status=500))
    listener(FakeResponse(body, content_type="image/gif"))
    listener(FakeResponse("window.x.somethingElse({});"))
    listener(FakeResponse("window.oCVSC_x.addContextData({\"1\": {\"r\": 1, \"u\": \"layout\"}});"))
    assert channel.pending == 0

    listener(FakeResponse(body, content_type=None))
    listener(FakeResponse(body, content_type="application/json"))

    assert [batch[0].contractor for batch in channel.drain()] == ["ACME", "ACME"]
    assert listener.intercepted == 3


def test_listener_swallows_body_errors() -> None:
    channel = BatchChannel(maxsize=10)
    listener = ResponseListener(channel)

    class BrokenResponse(FakeResponse):
        def text(self) -> str:
            raise RuntimeError("Response body is unavailable for redirect responses")

    listener(BrokenResponse(""))

    assert channel.pending == 0


def test_listener_records_fixtures(tmp_path: Path) -> None:
    channel = BatchChannel(maxsize=10)
    fixtures = tmp_path / "responses.jsonl"
    listener = ResponseListener(channel, fixture_path=fixtures)
    body = _disp_body([_row("ACME")])

    listener(FakeResponse(body))

    lines = fixtures.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["body"] for line in lines] == [body]
    assert channel.drain() == [[RawRecord.from_dict(_row("ACME"))]]
