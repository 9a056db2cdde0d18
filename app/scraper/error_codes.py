from __future__ import annotations

"""Centralised error code taxonomy for crawl and geocoding failures.

Codes are included in structured log events and in the run summary so a
partial run can be explained after the fact. Network, HTTP, no-match and
navigation codes mean "no data for this unit" and never abort a run;
malformed responses and a missing "Page down" control end the crawl with the
rows collected so far; deadline, missing input and an unusable browser
session end the run with a non-zero exit.
"""


class ErrorCode:
    NETWORK = "network_error"
    HTTP_4XX = "http_4xx"
    HTTP_5XX = "http_5xx"
    NO_MATCH = "no_match"
    NAVIGATION = "navigation_error"
    MALFORMED_RESPONSE = "malformed_response"
    SITE_STRUCTURE = "site_structure_changed"
    DEADLINE = "deadline_exceeded"
    MISSING_INPUT = "missing_input"
    SESSION_UNAVAILABLE = "session_unavailable"
    INTERNAL = "internal_error"


def classify_http_status(status: int | None) -> str:
    """Map an HTTP status to its error code."""

    if status is None:
        return ErrorCode.INTERNAL
    if 400 <= status < 500:
        return ErrorCode.HTTP_4XX
    if status >= 500:
        return ErrorCode.HTTP_5XX
    return ErrorCode.INTERNAL


__all__ = ["ErrorCode", "classify_http_status"]
