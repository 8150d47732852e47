from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

import httpx

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

SNIPPET_LIMIT = 400

_client: httpx.AsyncClient | None = None
_client_lock = asyncio.Lock()


async def get_http_client() -> httpx.AsyncClient:
    global _client

    if _client is None:
        async with _client_lock:
            if _client is None:
                settings = get_settings()
                limits = httpx.Limits(
                    max_connections=settings.http_max_connections,
                    max_keepalive_connections=settings.http_max_keepalive,
                )
                _client = httpx.AsyncClient(
                    timeout=settings.http_timeout,
                    limits=limits,
                    headers={"User-Agent": settings.http_user_agent},
                    follow_redirects=True,
                )
    return _client


async def shutdown_http_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


class ExpectedContent(str, Enum):
    HTML = "html"
    FEED = "feed"


_ACCEPT: dict[ExpectedContent, str] = {
    ExpectedContent.HTML: "text/html,application/xhtml+xml",
    ExpectedContent.FEED: (
        "application/rss+xml, application/atom+xml, "
        "application/xml;q=0.9, text/xml;q=0.8"
    ),
}

_HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


class RetrievalError(Exception):
    """A document could not be retrieved, or the response was not usable."""

    def __init__(
        self,
        message: str,
        *,
        url: str,
        status_code: int | None = None,
        snippet: str | None = None,
    ) -> None:
        detail = f"{message}: {snippet}" if snippet else message
        super().__init__(detail)
        self.url = url
        self.status_code = status_code
        self.snippet = snippet


@dataclass(frozen=True, slots=True)
class AttemptOutcome:
    attempt: int
    timeout: float
    text: str | None = None
    error: RetrievalError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def retry_schedule(settings: Settings) -> list[tuple[float, float]]:
    """Return ``(timeout, backoff)`` per attempt.

    Both grow geometrically; the last attempt has no backoff since nothing
    follows it.
    """
    attempts = settings.http_retry_attempts
    schedule: list[tuple[float, float]] = []
    for index in range(attempts):
        timeout = settings.http_timeout * settings.http_timeout_growth**index
        backoff = (
            settings.http_backoff * settings.http_backoff_growth**index
            if index < attempts - 1
            else 0.0
        )
        schedule.append((timeout, backoff))
    return schedule


def request_headers(settings: Settings, expected: ExpectedContent) -> dict[str, str]:
    referer = (
        settings.http_referer
        if expected is ExpectedContent.HTML
        else f"{settings.origin}/"
    )
    return {
        "User-Agent": settings.http_user_agent,
        "Accept": _ACCEPT[expected],
        "Accept-Language": settings.http_accept_language,
        "Referer": referer,
    }


def _transport_error(url: str, exc: BaseException) -> RetrievalError:
    error = RetrievalError(f"{type(exc).__name__}: {exc}", url=url)
    error.__cause__ = exc
    return error


def check_response(
    response: httpx.Response, url: str, expected: ExpectedContent
) -> RetrievalError | None:
    if not response.is_success:
        return RetrievalError(
            f"Fetch failed {response.status_code} {response.reason_phrase}",
            url=url,
            status_code=response.status_code,
            snippet=response.text[:SNIPPET_LIMIT],
        )
    if expected is ExpectedContent.HTML:
        content_type = response.headers.get("content-type", "")
        if not any(kind in content_type for kind in _HTML_CONTENT_TYPES):
            return RetrievalError(
                f"Not HTML (content-type={content_type or 'missing'})",
                url=url,
                status_code=response.status_code,
                snippet=response.text[:SNIPPET_LIMIT],
            )
    return None


async def attempt_fetch(
    client: httpx.AsyncClient,
    url: str,
    expected: ExpectedContent,
    *,
    attempt: int,
    timeout: float,
    headers: dict[str, str],
) -> AttemptOutcome:
    """Run a single GET bounded by ``timeout``; never raises."""
    try:
        response = await asyncio.wait_for(
            client.get(
                url, headers=headers, timeout=timeout, follow_redirects=True
            ),
            timeout,
        )
    except asyncio.TimeoutError as exc:
        error = RetrievalError(f"Timed out after {timeout:.1f}s", url=url)
        error.__cause__ = exc
        return AttemptOutcome(attempt=attempt, timeout=timeout, error=error)
    except httpx.HTTPError as exc:
        return AttemptOutcome(
            attempt=attempt, timeout=timeout, error=_transport_error(url, exc)
        )

    error = check_response(response, url, expected)
    if error is not None:
        return AttemptOutcome(attempt=attempt, timeout=timeout, error=error)
    return AttemptOutcome(attempt=attempt, timeout=timeout, text=response.text)


@dataclass(slots=True)
class DocumentFetcher:
    settings: Settings | None = None
    client: httpx.AsyncClient | None = None
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = get_settings()

    async def fetch(self, url: str, expected: ExpectedContent) -> str:
        """GET ``url`` with bounded retries.

        Raises the last attempt's :class:`RetrievalError` once every attempt
        has failed.
        """
        settings = self.settings or get_settings()
        client = self.client or await get_http_client()
        headers = request_headers(settings, expected)
        schedule = retry_schedule(settings)

        last_error = RetrievalError("No attempts configured", url=url)
        for number, (timeout, backoff) in enumerate(schedule, start=1):
            outcome = await attempt_fetch(
                client,
                url,
                expected,
                attempt=number,
                timeout=timeout,
                headers=headers,
            )
            if outcome.error is None:
                if number > 1:
                    logger.info("Fetched %s on attempt %d", url, number)
                return outcome.text or ""
            last_error = outcome.error
            logger.warning(
                "Attempt %d/%d for %s failed: %s",
                number,
                len(schedule),
                url,
                last_error,
            )
            if number < len(schedule):
                await self.sleep(backoff)

        raise last_error
