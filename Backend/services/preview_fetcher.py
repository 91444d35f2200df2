from __future__ import annotations

import asyncio
import errno
import json
import socket
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional

import httpx
from bs4 import BeautifulSoup

from app.core.logging import get_logger
from services.preview_errors import ErrorKind, PreviewError
from services.ssrf_guard import SSRFGuard

logger = get_logger(module="preview_fetcher")

Sleep = Callable[[float], Awaitable[None]]

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


@dataclass(frozen=True)
class HeaderProfile:
    name: str
    headers: Mapping[str, str]

    @property
    def user_agent(self) -> str:
        return self.headers.get("User-Agent", "")


BROWSER_PROFILE = HeaderProfile(
    name="browser",
    headers={
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate",
        "DNT": "1",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Cache-Control": "max-age=0",
    },
)


def bot_profile(user_agent: str) -> HeaderProfile:
    """Self-identifying profile used for the single fallback attempt."""
    return HeaderProfile(
        name="bot",
        headers={
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        },
    )


BOT_PROFILE = bot_profile("Mozilla/5.0 (compatible; WishlistPreviewBot/1.0; +https://wishlist-preview.example)")


@dataclass(frozen=True)
class PlannedAttempt:
    number: int
    delay_s: float
    timeout_s: float
    profile: HeaderProfile


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attempt schedule for one fetch.

    Primary attempt n waits min(backoff_base * 2^(n-2), backoff_cap) before
    running (nothing before the first) and gets base_timeout + step * (n-1)
    seconds. When every primary attempt fails, one fallback attempt runs with
    the fallback profile and its own timeout.
    """

    max_attempts: int = 3
    base_timeout_s: float = 10.0
    timeout_step_s: float = 2.0
    backoff_base_s: float = 1.0
    backoff_cap_s: float = 5.0
    fallback_timeout_s: float = 15.0
    primary_profile: HeaderProfile = BROWSER_PROFILE
    fallback_profile: Optional[HeaderProfile] = BOT_PROFILE

    def timeout_for(self, attempt: int) -> float:
        return self.base_timeout_s + self.timeout_step_s * (attempt - 1)

    def delay_before(self, attempt: int) -> float:
        if attempt <= 1:
            return 0.0
        return min(self.backoff_base_s * 2 ** (attempt - 2), self.backoff_cap_s)

    def schedule(self) -> Iterator[PlannedAttempt]:
        for n in range(1, self.max_attempts + 1):
            yield PlannedAttempt(n, self.delay_before(n), self.timeout_for(n), self.primary_profile)
        if self.fallback_profile is not None:
            yield PlannedAttempt(self.max_attempts + 1, 0.0, self.fallback_timeout_s, self.fallback_profile)

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        return cls(
            max_attempts=settings.PREVIEW_MAX_ATTEMPTS,
            base_timeout_s=settings.PREVIEW_BASE_TIMEOUT_S,
            timeout_step_s=settings.PREVIEW_TIMEOUT_STEP_S,
            backoff_base_s=settings.PREVIEW_BACKOFF_BASE_S,
            backoff_cap_s=settings.PREVIEW_BACKOFF_CAP_S,
            fallback_timeout_s=settings.PREVIEW_FALLBACK_TIMEOUT_S,
            fallback_profile=bot_profile(settings.PREVIEW_BOT_USER_AGENT),
        )


@dataclass
class FetchAttempt:
    number: int
    timeout_s: float
    profile: str
    outcome: str = "pending"
    error: Optional[PreviewError] = None


@dataclass
class FetchResult:
    url: str
    html: Optional[str] = None
    error: Optional[PreviewError] = None
    attempts: List[FetchAttempt] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.html is not None and self.error is None

    @property
    def fallback_used(self) -> bool:
        return any(a.profile != self.attempts[0].profile for a in self.attempts) if self.attempts else False


# -------- Error classification -----------------------------------------------

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated",
)


def _iter_chain(exc: Optional[BaseException]) -> Iterator[BaseException]:
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__ or exc.__context__


def _classify_connect_error(exc: httpx.ConnectError) -> PreviewError:
    for cause in _iter_chain(exc):
        if isinstance(cause, socket.gaierror):
            return PreviewError(ErrorKind.DOMAIN_NOT_FOUND)
        if isinstance(cause, ConnectionRefusedError):
            return PreviewError(ErrorKind.CONNECTION_REFUSED)
        if isinstance(cause, OSError) and cause.errno in (errno.ENETUNREACH, errno.EHOSTUNREACH):
            return PreviewError(ErrorKind.NETWORK_UNREACHABLE)

    text = " ".join(str(c) for c in _iter_chain(exc)).lower()
    if any(marker in text for marker in _DNS_MARKERS):
        return PreviewError(ErrorKind.DOMAIN_NOT_FOUND)
    if "connection refused" in text:
        return PreviewError(ErrorKind.CONNECTION_REFUSED)
    if "network is unreachable" in text or "no route to host" in text:
        return PreviewError(ErrorKind.NETWORK_UNREACHABLE)
    return _fetch_failed(exc)


def _fetch_failed(exc: BaseException) -> PreviewError:
    detail = str(exc) or exc.__class__.__name__
    return PreviewError(ErrorKind.FETCH_FAILED, f"Failed to fetch URL after all attempts: {detail}")


def classify_exception(exc: BaseException) -> PreviewError:
    """Map a transport/HTTP failure onto the preview error vocabulary."""
    if isinstance(exc, PreviewError):
        return exc
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return PreviewError(ErrorKind.TIMEOUT)
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 403:
            return PreviewError(ErrorKind.FORBIDDEN)
        if status == 429:
            return PreviewError(ErrorKind.RATE_LIMITED)
        if status >= 500:
            return PreviewError(ErrorKind.UPSTREAM_SERVER_ERROR)
        return PreviewError(ErrorKind.FETCH_FAILED, f"Failed to fetch URL after all attempts: HTTP {status}")
    if isinstance(exc, httpx.ConnectError):
        return _classify_connect_error(exc)
    if isinstance(exc, httpx.NetworkError):
        return PreviewError(ErrorKind.NETWORK_UNREACHABLE)
    return _fetch_failed(exc)


def is_html_content_type(content_type: Optional[str]) -> bool:
    value = (content_type or "").lower()
    return any(ct in value for ct in HTML_CONTENT_TYPES)


def parse_oembed_body(text: str, content_type: str = "") -> Dict[str, Any]:
    """JSON oEmbed document, or the flat XML variant (<oembed><title>...)."""
    if "xml" in content_type.lower() or text.lstrip().startswith("<"):
        soup = BeautifulSoup(text, "html.parser")
        root = soup.find("oembed")
        if root is None:
            raise ValueError("oEmbed XML without <oembed> root")
        return {child.name: child.get_text(strip=True) for child in root.find_all(recursive=False)}

    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("oEmbed JSON is not an object")
    return data


# -------- Fetcher ------------------------------------------------------------

class PreviewFetcher:
    """
    Retrieves page HTML for previews.

    Owns one httpx.AsyncClient for its lifetime (use as an async context
    manager). Every request the client sends, redirect hops included, goes
    through the SSRF guard in a request event hook first.
    """

    def __init__(
        self,
        *,
        guard: SSRFGuard,
        policy: Optional[RetryPolicy] = None,
        oembed_timeout_s: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.guard = guard
        self.policy = policy or RetryPolicy()
        self.oembed_timeout_s = oembed_timeout_s
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "PreviewFetcher":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def open(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            timeout=self.policy.base_timeout_s,
            headers={"User-Agent": self.policy.primary_profile.user_agent},
            follow_redirects=True,
            event_hooks={"request": [self._guard_request]},
            transport=self._transport,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(f"{self.__class__.__name__} HTTP client not initialized")
        return self._client

    async def _guard_request(self, request: httpx.Request) -> None:
        await self.guard.check(str(request.url))

    async def _attempt(self, url: str, profile: HeaderProfile, timeout_s: float) -> str:
        client = self._require_client()
        async with client.stream("GET", url, headers=dict(profile.headers), timeout=timeout_s) as response:
            response.raise_for_status()
            content_type = response.headers.get("content-type", "")
            # Checked before the body is read; non-HTML bodies are never downloaded.
            if not is_html_content_type(content_type):
                raise PreviewError(
                    ErrorKind.INVALID_CONTENT_TYPE,
                    f"Invalid content type: {content_type or 'none'}. Expected HTML content.",
                )
            await response.aread()
            return response.text

    async def fetch(self, url: str) -> FetchResult:
        """
        Run the retry policy against `url`.

        Never raises for fetch failures; the returned FetchResult carries
        either the HTML or the classified error of the last attempt.
        """
        self._require_client()
        result = FetchResult(url=url)

        for planned in self.policy.schedule():
            if planned.delay_s > 0:
                logger.info("fetch_retry_wait", url=url, attempt=planned.number, delay_s=planned.delay_s)
                await self._sleep(planned.delay_s)

            attempt = FetchAttempt(number=planned.number, timeout_s=planned.timeout_s, profile=planned.profile.name)
            result.attempts.append(attempt)
            try:
                html = await asyncio.wait_for(
                    self._attempt(url, planned.profile, planned.timeout_s),
                    timeout=planned.timeout_s,
                )
            except Exception as exc:
                error = classify_exception(exc)
                attempt.outcome = error.kind.value
                attempt.error = error
                result.error = error
                logger.warning(
                    "fetch_attempt_failed",
                    url=url,
                    attempt=planned.number,
                    profile=planned.profile.name,
                    timeout_s=planned.timeout_s,
                    kind=error.kind.value,
                    error=str(exc),
                )
                if error.is_terminal:
                    break
                continue

            attempt.outcome = "ok"
            result.html = html
            result.error = None
            logger.info("fetch_succeeded", url=url, attempt=planned.number, profile=planned.profile.name)
            return result

        if result.error is not None and result.error.kind is ErrorKind.RESOLUTION_FAILED:
            # The last attempt could not resolve the host.
            result.error = PreviewError(ErrorKind.DOMAIN_NOT_FOUND)

        logger.warning(
            "fetch_exhausted",
            url=url,
            attempts=len(result.attempts),
            kind=result.error.kind.value if result.error else None,
        )
        return result

    async def fetch_html(self, url: str) -> str:
        """Fetch `url` and return its HTML, raising the classified PreviewError on failure."""
        result = await self.fetch(url)
        if not result.ok:
            raise result.error or PreviewError(ErrorKind.FETCH_FAILED)
        return result.html

    async def fetch_oembed(self, url: str) -> Dict[str, Any]:
        client = self._require_client()
        headers = {
            "User-Agent": self.policy.primary_profile.user_agent,
            "Accept": "application/json, text/xml;q=0.9",
        }
        response = await asyncio.wait_for(
            client.get(url, headers=headers, timeout=self.oembed_timeout_s),
            timeout=self.oembed_timeout_s,
        )
        response.raise_for_status()
        return parse_oembed_body(response.text, response.headers.get("content-type", ""))
