"""Configuration constants for the asbestos projects scraper and geocoder."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("ASBESTOS_DATA_DIR", "data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
RAW_OUTPUT_FILE: Path = DATA_DIR / "raw_output.json"
OUTPUT_FILE: Path = DATA_DIR / "output.json"
GEOCODE_CACHE_FILE: Path = DATA_DIR / "geocode_cache.json"
SUMMARY_FILE: Path = DATA_DIR / "last_summary.json"
REPLAY_FIXTURES_DIR: Path = DATA_DIR / "replay_fixtures"

REPORT_URL: str = os.getenv(
    "ASBESTOS_REPORT_URL",
    "https://biservices.labor.ny.gov/Reports/bi/?perspective=classicviewer"
    "&pathRef=.public_folders%2FWPS%2BReports%2FActive%2BAsbestos%2BProjects"
    "&id=i54BC6F1D21F74795A7CA53A0D31798A5&ui_appbar=false&ui_navbar=false"
    "&objRef=i54BC6F1D21F74795A7CA53A0D31798A5&action=run&format=HTML"
    "&cmPropStr=%7B%22id%22%3A%22i54BC6F1D21F74795A7CA53A0D31798A5%22%2C%22type%22"
    "%3A%22report%22%2C%22defaultName%22%3A%22Active%20Asbestos%20Projects%22%2C"
    "%22permissions%22%3A%5B%22execute%22%2C%22read%22%2C%22traverse%22%5D%7D",
)

# Data-bearing responses are recognised by URL path fragment plus body marker.
DATA_ENDPOINT_MARKER: str = "v1/disp"
DATA_BODY_MARKER: str = "addContextData"

# "Page down" control lookup; the disabled variant swaps its image for *_dis.
NEXT_PAGE_SELECTOR: str = (
    "a[title*='Page down'], img[alt*='Page down'], "
    "img[title*='Page down'], a:has-text('Page down')"
)
NEXT_PAGE_LABEL: str = "Page down"
DISABLED_SRC_MARKER: str = "_dis"

GEOCODER_URL: str = os.getenv(
    "ASBESTOS_GEOCODER_URL",
    "https://geocoding.geo.census.gov/geocoder/locations/onelineaddress",
)
GEOCODER_BENCHMARK: str = os.getenv("ASBESTOS_GEOCODER_BENCHMARK", "Public_AR_Current")
STATE_SUFFIX: str = os.getenv("ASBESTOS_STATE_SUFFIX", "NY")


def _parse_timeout_seconds(env_var: str, default: float, *, minimum: float = 0.0) -> float:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = float(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


# Hard cap over the whole crawl stage.
CRAWL_TIMEOUT_SECONDS: float = _parse_timeout_seconds("ASBESTOS_CRAWL_TIMEOUT_SECONDS", 1800)
# Navigation timeout for page.goto calls.
NAV_TIMEOUT_SECONDS: float = _parse_timeout_seconds("ASBESTOS_NAV_TIMEOUT_SECONDS", 60)
# How long a "Page down" click may take to produce a new data batch.
PAGE_BATCH_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "ASBESTOS_PAGE_BATCH_TIMEOUT_SECONDS", 30
)
# The control's enabled/disabled image is rendered after the batch lands.
PAGE_SETTLE_SECONDS: float = _parse_timeout_seconds("ASBESTOS_PAGE_SETTLE_SECONDS", 10)
# Granularity of event pumping while waiting on the batch channel.
BATCH_POLL_SECONDS: float = _parse_timeout_seconds("ASBESTOS_BATCH_POLL_SECONDS", 0.25)
BATCH_QUEUE_MAX: int = int(os.getenv("ASBESTOS_BATCH_QUEUE_MAX", "64"))

GEOCODE_TIMEOUT_SECONDS: float = _parse_timeout_seconds("ASBESTOS_GEOCODE_TIMEOUT_SECONDS", 30)
GEOCODE_DELAY_SECONDS: float = float(os.getenv("ASBESTOS_GEOCODE_DELAY_SECONDS", "0.1"))

HEADLESS: bool = os.getenv("ASBESTOS_HEADLESS", "true").strip().lower() not in {"0", "false"}
RECORD_REPLAY_FIXTURES: bool = os.getenv(
    "ASBESTOS_RECORD_REPLAY_FIXTURES", "0"
).strip().lower() not in {"0", "false"}

BROWSER_ARGS: list[str] = ["--no-sandbox", "--disable-setuid-sandbox"]

COMMON_HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json, */*",
    "Accept-Language": "en-US,en;q=0.9",
}
