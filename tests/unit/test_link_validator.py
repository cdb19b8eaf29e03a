from __future__ import annotations

import threading
import time

import httpx

from services.link_validator import LinkStatus, LinkValidator, extract_urls


def _validator(handler, **kwargs) -> LinkValidator:
    return LinkValidator(http_client=httpx.Client(transport=httpx.MockTransport(handler)), **kwargs)


def test_success_response_is_valid() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.method)
        return httpx.Response(200, request=request)

    result = _validator(handler).check("https://example.com/page")

    assert result.status is LinkStatus.VALID
    assert result.is_valid
    assert result.status_code == 200
    assert result.error is None
    assert seen == ["HEAD"]


def test_error_status_is_invalid_with_reason() -> None:
    result = _validator(lambda request: httpx.Response(404, request=request)).check(
        "https://example.com/missing"
    )

    assert result.status is LinkStatus.INVALID
    assert result.status_code == 404
    assert result.error == "HTTP 404: Not Found"


def test_timeout_is_reported_separately() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    result = _validator(handler).check("https://slow.example.com")

    assert result.status is LinkStatus.TIMEOUT
    assert result.error == "Request timeout"
    assert result.status_code is None


def test_connection_error_is_invalid() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("name resolution failed", request=request)

    result = _validator(handler).check("https://nowhere.example.com")

    assert result.status is LinkStatus.INVALID
    assert "name resolution failed" in (result.error or "")


def test_malformed_urls_are_rejected_without_a_request() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, request=request)

    validator = _validator(handler)
    results = validator.validate(["not a url", "ftp://example.com/file"])

    assert [result.status for result in results] == [LinkStatus.INVALID, LinkStatus.INVALID]
    assert all(result.error == "Invalid URL" for result in results)
    assert calls == []


def test_redirects_are_followed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(301, headers={"Location": "https://example.com/new"}, request=request)
        return httpx.Response(200, request=request)

    result = _validator(handler).check("https://example.com/old")

    assert result.is_valid
    assert result.final_url == "https://example.com/new"


def test_validate_dedupes_and_keeps_first_seen_order() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        status = 404 if request.url.host == "b.example.com" else 200
        return httpx.Response(status, request=request)

    results = _validator(handler).validate(
        [
            "https://c.example.com",
            "https://b.example.com",
            " https://c.example.com ",
            "",
            "https://a.example.com",
        ]
    )

    assert [result.url for result in results] == [
        "https://c.example.com",
        "https://b.example.com",
        "https://a.example.com",
    ]
    assert [result.is_valid for result in results] == [True, False, True]


def test_validate_mixed_batch_reports_each_outcome_in_order() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "bad.invalid":
            raise httpx.ConnectError("Name or service not known", request=request)
        if request.url.path == "/404":
            return httpx.Response(404, request=request)
        return httpx.Response(200, request=request)

    results = _validator(handler).validate(
        ["https://example.com/ok", "https://example.com/404", "https://bad.invalid"]
    )

    assert [result.url for result in results] == [
        "https://example.com/ok",
        "https://example.com/404",
        "https://bad.invalid",
    ]
    assert [result.status for result in results] == [LinkStatus.VALID, LinkStatus.INVALID, LinkStatus.INVALID]
    assert results[1].status_code == 404
    assert results[2].status_code is None
    assert results[2].error and not results[2].error.startswith("HTTP")


def test_validate_respects_concurrency_limit() -> None:
    lock = threading.Lock()
    active = 0
    peak = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.02)
        with lock:
            active -= 1
        return httpx.Response(200, request=request)

    urls = [f"https://host{index}.example.com" for index in range(7)]
    results = _validator(handler, concurrency=2).validate(urls)

    assert len(results) == 7
    assert peak <= 2


def test_empty_input_returns_empty_list() -> None:
    assert _validator(lambda request: httpx.Response(200, request=request)).validate([]) == []


def test_to_dict_serializes_status_value() -> None:
    result = _validator(lambda request: httpx.Response(200, request=request)).check("https://example.com")
    payload = result.to_dict()
    assert payload["status"] == "valid"
    assert payload["url"] == "https://example.com"


def test_extract_urls_strips_trailing_punctuation_and_dedupes() -> None:
    text = (
        "See https://example.com/a. Also (https://example.com/b) and "
        "[docs](https://docs.example.com/x?y=1), then https://example.com/a again."
    )

    assert extract_urls(text) == [
        "https://example.com/a",
        "https://example.com/b",
        "https://docs.example.com/x?y=1",
    ]
    assert extract_urls("") == []
