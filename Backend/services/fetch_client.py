"""
HTTP fetch client for source endpoints.

``fetch_with_retry`` issues a GET with a fixed identity, a per-attempt timeout
and a short retry schedule; ``classify_payload`` decides once per response
whether the body holds articles or nested source declarations.
"""

from __future__ import annotations

from asyncio import sleep
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Union

import httpx

from app.core.logging import get_logger
from services.seed_errors import FetchFailure

logger = get_logger()

USER_AGENT = "news-seed/1.0"
MAX_ATTEMPTS = 3
RETRY_DELAYS_MS = (0, 1000, 3000)


@dataclass(frozen=True)
class ArticlesPayload:
    items: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class SourcesPayload:
    entries: List[Any] = field(default_factory=list)


Payload = Union[ArticlesPayload, SourcesPayload]


@dataclass(frozen=True)
class FetchResponse:
    status_code: int
    payload: Payload


def classify_payload(data: Any) -> Payload:
    """
    Tag the decoded body:
      {"sources": [...]}   → SourcesPayload
      [...]                → ArticlesPayload
      {"articles": [...]}  → ArticlesPayload
      anything else        → empty ArticlesPayload
    """
    if isinstance(data, Mapping) and isinstance(data.get("sources"), list):
        return SourcesPayload(entries=list(data["sources"]))
    if isinstance(data, list):
        return ArticlesPayload(items=list(data))
    if isinstance(data, Mapping) and isinstance(data.get("articles"), list):
        return ArticlesPayload(items=list(data["articles"]))
    return ArticlesPayload()


def build_headers(extra: Optional[Mapping[str, str]] = None) -> httpx.Headers:
    headers = httpx.Headers({"Accept": "application/json"})
    for key, value in (extra or {}).items():
        headers[key] = value
    # Callers may override Accept, never the identity header.
    headers["User-Agent"] = USER_AGENT
    return headers


def retry_delay_ms(attempt: int) -> int:
    return RETRY_DELAYS_MS[min(attempt, len(RETRY_DELAYS_MS) - 1)]


def _status_of(exc: Exception) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None


def _describe(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return f"Timeout ({type(exc).__name__})"
    return str(exc) or type(exc).__name__


def _decode(response: httpx.Response, url: str) -> Any:
    try:
        return response.json()
    except ValueError:
        logger.warning(
            "seed_fetch_non_json_payload",
            url=url,
            status=response.status_code,
            content_type=response.headers.get("content-type"),
        )
        return None


async def fetch_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout_ms: int,
    headers: Optional[Mapping[str, str]] = None,
) -> FetchResponse:
    """
    GET ``url`` up to ``MAX_ATTEMPTS`` times.

    Raises ``FetchFailure`` with the last error and its HTTP status, if any.
    A malformed URL fails on the first attempt.
    """
    request_headers = build_headers(headers)
    timeout = httpx.Timeout(timeout_ms / 1000)
    last_error: Optional[Exception] = None

    for attempt in range(MAX_ATTEMPTS):
        try:
            response = await client.get(url, headers=request_headers, timeout=timeout)
            response.raise_for_status()
            return FetchResponse(
                status_code=response.status_code,
                payload=classify_payload(_decode(response, url)),
            )
        except httpx.HTTPError as exc:
            last_error = exc
            logger.warning(
                "seed_fetch_attempt_failed",
                url=url,
                attempt=attempt + 1,
                max_attempts=MAX_ATTEMPTS,
                status=_status_of(exc),
                error=_describe(exc),
            )
            if attempt >= MAX_ATTEMPTS - 1:
                break
            await sleep(retry_delay_ms(attempt) / 1000)
        except httpx.InvalidURL as exc:
            logger.warning("seed_fetch_invalid_url", url=url, error=str(exc))
            raise FetchFailure(str(exc), url=url, status_code=None, attempts=attempt + 1) from exc

    assert last_error is not None
    raise FetchFailure(
        _describe(last_error),
        url=url,
        status_code=_status_of(last_error),
        attempts=MAX_ATTEMPTS,
    ) from last_error
