from __future__ import annotations

from typing import Any, Optional

import requests

from . import config
from .error_codes import ErrorCode, classify_http_status
from .geocode_cache import GeocodeCache
from .logging_utils import _scraper_event
from .models import Coordinates, RawRecord
from .utils import log_line


class GeocodeError(Exception):
    def __init__(self, error_code: str, message: str, *, http_status: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.http_status = http_status


def format_address(record: RawRecord, state_suffix: Optional[str] = None) -> str:
    """Return the one-line address sent to the geocoder for ``record``."""

    return record.address(state_suffix or config.STATE_SUFFIX)


def _first_match_coordinates(payload: Any) -> Coordinates:
    if not isinstance(payload, dict):
        raise GeocodeError(ErrorCode.MALFORMED_RESPONSE, "Geocoder payload is not an object")

    result = payload.get("result")
    matches = result.get("addressMatches") if isinstance(result, dict) else None
    if not isinstance(matches, list) or not matches:
        raise GeocodeError(ErrorCode.NO_MATCH, "No address matches")

    first = matches[0] if isinstance(matches[0], dict) else {}
    coords = first.get("coordinates")
    if not isinstance(coords, dict):
        raise GeocodeError(ErrorCode.MALFORMED_RESPONSE, "First match has no coordinates")
    try:
        # The Census geocoder reports x=longitude, y=latitude.
        return Coordinates(lat=float(coords["y"]), lng=float(coords["x"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise GeocodeError(ErrorCode.MALFORMED_RESPONSE, f"Bad coordinates: {coords!r}") from exc


class GeocodingClient:
    """Cache-first wrapper around the Census one-line address geocoder.

    Failed lookups return ``None`` and are not cached, so a later run can
    retry them. Pacing between calls is the caller's responsibility.
    """

    def __init__(
        self,
        cache: GeocodeCache,
        *,
        session: Optional[requests.Session] = None,
        url: Optional[str] = None,
        benchmark: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.cache = cache
        self.session = session or requests.Session()
        self.url = url or config.GEOCODER_URL
        self.benchmark = benchmark or config.GEOCODER_BENCHMARK
        self.timeout = timeout if timeout is not None else config.GEOCODE_TIMEOUT_SECONDS
        self.network_calls = 0
        self.cache_hits = 0

    def _request(self, address: str) -> Coordinates:
        self.network_calls += 1
        try:
            response = self.session.get(
                self.url,
                params={"address": address, "benchmark": self.benchmark, "format": "json"},
                headers=config.COMMON_HEADERS,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GeocodeError(ErrorCode.NETWORK, str(exc)) from exc

        status = response.status_code
        if not 200 <= status < 300:
            raise GeocodeError(classify_http_status(status), f"HTTP {status}", http_status=status)

        try:
            payload = response.json()
        except ValueError as exc:
            raise GeocodeError(
                ErrorCode.MALFORMED_RESPONSE, f"Invalid JSON: {exc}", http_status=status
            ) from exc
        return _first_match_coordinates(payload)

    def geocode(self, address: str) -> Optional[Coordinates]:
        cached = self.cache.get(address)
        if cached is not None:
            self.cache_hits += 1
            return cached

        try:
            coords = self._request(address)
        except GeocodeError as exc:
            _scraper_event(
                "geocode",
                phase="lookup",
                status="failed",
                address=address,
                error_code=exc.error_code,
                http_status=exc.http_status,
                error=str(exc),
            )
            log_line(f"[GEOCODE] Failed to geocode: {address} ({exc.error_code})")
            return None

        self.cache.put(address, coords)
        log_line(f"[GEOCODE] Geocoded: {address} -> {coords.lat}, {coords.lng}")
        return coords


__all__ = ["GeocodeError", "GeocodingClient", "format_address"]
