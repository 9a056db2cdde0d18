import pytest

from app.scraper.error_codes import ErrorCode, classify_http_status


@pytest.mark.parametrize(
    "status, expected",
    [
        (400, ErrorCode.HTTP_4XX),
        (404, ErrorCode.HTTP_4XX),
        (429, ErrorCode.HTTP_4XX),
        (500, ErrorCode.HTTP_5XX),
        (504, ErrorCode.HTTP_5XX),
        (302, ErrorCode.INTERNAL),
        (None, ErrorCode.INTERNAL),
    ],
)
def test_classify_http_status(status, expected) -> None:
    assert classify_http_status(status) == expected
