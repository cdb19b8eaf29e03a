"""Reachability checks for URLs cited in generated research output."""

from __future__ import annotations

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Iterable

import httpx

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"https?://[^\s\]\[<>\"'`()]+", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?*"
_DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; rfpflow-link-validator/1.0)"


class LinkStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class LinkValidationResult:
    url: str
    status: LinkStatus
    status_code: int | None = None
    error: str | None = None
    latency_ms: int = 0
    final_url: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.status is LinkStatus.VALID

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        return payload


class LinkValidator:
    """Probe URLs with HEAD requests in fixed-size concurrent batches."""

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        concurrency: int = 5,
        user_agent: str = _DEFAULT_USER_AGENT,
        http_client: httpx.Client | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._timeout = timeout
        self._concurrency = concurrency
        self._client = http_client or httpx.Client(
            timeout=timeout,
            headers={"User-Agent": user_agent},
        )
        self._owns_client = http_client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "LinkValidator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def validate(self, urls: Iterable[str]) -> list[LinkValidationResult]:
        unique = list(dict.fromkeys(url.strip() for url in urls if url and url.strip()))
        if not unique:
            return []
        results: list[LinkValidationResult] = []
        with ThreadPoolExecutor(max_workers=self._concurrency) as pool:
            for offset in range(0, len(unique), self._concurrency):
                batch = unique[offset : offset + self._concurrency]
                results.extend(pool.map(self.check, batch))
        invalid = sum(1 for result in results if not result.is_valid)
        if invalid:
            logger.info("Link validation: %d/%d URLs unreachable", invalid, len(results))
        return results

    def check(self, url: str) -> LinkValidationResult:
        if not _is_well_formed(url):
            return LinkValidationResult(url=url, status=LinkStatus.INVALID, error="Invalid URL")

        started = time.perf_counter()
        try:
            response = self._client.head(url, follow_redirects=True, timeout=self._timeout)
        except httpx.TimeoutException:
            return LinkValidationResult(
                url=url,
                status=LinkStatus.TIMEOUT,
                error="Request timeout",
                latency_ms=_elapsed_ms(started),
            )
        except httpx.HTTPError as exc:
            return LinkValidationResult(
                url=url,
                status=LinkStatus.INVALID,
                error=str(exc) or exc.__class__.__name__,
                latency_ms=_elapsed_ms(started),
            )

        latency_ms = _elapsed_ms(started)
        final_url = str(response.url)
        if response.is_success:
            return LinkValidationResult(
                url=url,
                status=LinkStatus.VALID,
                status_code=response.status_code,
                latency_ms=latency_ms,
                final_url=final_url,
            )
        return LinkValidationResult(
            url=url,
            status=LinkStatus.INVALID,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}: {response.reason_phrase}",
            latency_ms=latency_ms,
            final_url=final_url,
        )


def extract_urls(text: str) -> list[str]:
    """Return URL-shaped substrings in first-seen order without duplicates."""
    found: list[str] = []
    for match in _URL_RE.finditer(text or ""):
        url = match.group(0).rstrip(_TRAILING_PUNCTUATION)
        if url and url not in found:
            found.append(url)
    return found


def _is_well_formed(url: str) -> bool:
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError, ValueError):
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.host)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


__all__ = ["LinkStatus", "LinkValidationResult", "LinkValidator", "extract_urls"]
