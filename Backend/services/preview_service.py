# Backend/services/preview_service.py
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Optional

import httpx

from app.core.logging import get_logger
from app.models.preview import PreviewRecord
from services.metadata_extractor import extract_preview
from services.preview_errors import ErrorKind, PreviewError
from services.preview_fetcher import PreviewFetcher, RetryPolicy
from services.ssrf_guard import Resolver, SSRFGuard
from services.url_canonicalizer import is_valid_url

logger = get_logger(module="preview_service")


class PreviewState(str, Enum):
    VALIDATING = "validating"
    GUARDING = "guarding"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    DONE = "done"
    FAILED = "failed"


class PreviewService:
    """
    Straight-line preview pipeline: validate -> guard -> fetch -> extract.

    Owns the fetcher (and with it the pooled HTTP client): open it once with
    `start()` at process start and `close()` it at shutdown. The service adds
    no retries of its own; a fetch failure is final.
    """

    def __init__(
        self,
        *,
        guard: SSRFGuard,
        fetcher: PreviewFetcher,
        deadline_s: Optional[float] = 75.0,
    ) -> None:
        self.guard = guard
        self.fetcher = fetcher
        self.deadline_s = deadline_s

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        *,
        resolver: Optional[Resolver] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "PreviewService":
        guard = SSRFGuard(resolver=resolver, timeout_s=settings.PREVIEW_DNS_TIMEOUT_S)
        fetcher = PreviewFetcher(
            guard=guard,
            policy=RetryPolicy.from_settings(settings),
            oembed_timeout_s=settings.PREVIEW_OEMBED_TIMEOUT_S,
            transport=transport,
        )
        return cls(guard=guard, fetcher=fetcher, deadline_s=settings.PREVIEW_DEADLINE_S)

    async def start(self) -> None:
        await self.fetcher.open()

    async def close(self) -> None:
        await self.fetcher.aclose()

    async def __aenter__(self) -> "PreviewService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def generate_preview(self, url: Optional[str], raw_html: Optional[str] = None) -> PreviewRecord:
        """
        Build the PreviewRecord for `url`, or raise PreviewError.

        With a non-empty `raw_html` the fetch step is skipped; the destination is still
        guarded. When the deadline expires the whole pipeline is cancelled and
        a Timeout error is raised; no partial record is ever returned.
        """
        if not self.deadline_s:
            return await self._run(url, raw_html)
        try:
            return await asyncio.wait_for(self._run(url, raw_html), timeout=self.deadline_s)
        except asyncio.TimeoutError as exc:
            logger.warning("preview_deadline_exceeded", url=url, deadline_s=self.deadline_s)
            error = PreviewError(ErrorKind.TIMEOUT, "Preview timed out before the page could be processed.")
            error.state = PreviewState.FAILED.value
            raise error from exc

    async def _run(self, url: Optional[str], raw_html: Optional[str]) -> PreviewRecord:
        state = PreviewState.VALIDATING
        try:
            target = (url or "").strip()
            if not is_valid_url(target):
                raise PreviewError(ErrorKind.INVALID_URL)

            state = PreviewState.GUARDING
            await self.guard.check(target)

            if not raw_html:
                state = PreviewState.FETCHING
                html = await self.fetcher.fetch_html(target)
            else:
                html = raw_html

            state = PreviewState.EXTRACTING
            record = await extract_preview(html, target, fetch_oembed=self.fetcher.fetch_oembed)
            # sourceUrl echoes the request exactly as submitted
            record = record.model_copy(update={"source_url": url})
        except PreviewError as exc:
            exc.state = state.value
            logger.info("preview_failed", url=url, state=state.value, kind=exc.kind.value, error=exc.message)
            raise

        logger.info("preview_done", url=url, state=PreviewState.DONE.value, bypass=bool(raw_html), site_name=record.site_name)
        return record
