# Backend/app/deps/rate_limiting.py
"""
FastAPI dependencies for rate limiting.

The scope is the client_id when the caller sends one, otherwise the IP address.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException
from starlette.requests import Request

from app.core.client_id import get_client_id
from app.core.rate_limiting import rate_limiter


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP address.

    Checks X-Forwarded-For first (proxies/load balancers), then the direct peer.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        ip = forwarded_for.split(",")[0].strip()
        if ip:
            return ip

    if request.client:
        return request.client.host

    return "unknown"


def require_rate_limit_factory(action: str, limit: Optional[int] = None, window_seconds: Optional[int] = None):
    """
    Return a dependency that enforces the rate limit for `action`.

    Usage:
        @router.post("/preview")
        async def preview(
            _rate_limit: None = Depends(require_rate_limit_factory("preview")),
        ):
            ...
    """
    async def _rate_limit_check(
        request: Request,
        client_id: Optional[str] = Depends(get_client_id),
    ) -> None:
        key = f"client:{client_id}" if client_id else f"ip:{get_client_ip(request)}"
        if not rate_limiter.check_and_increment(key, action, limit, window_seconds):
            raise HTTPException(
                status_code=429,
                detail="Too many requests. Please try again later.",
                headers={"Retry-After": str(rate_limiter.retry_after(key, action))},
            )

    return _rate_limit_check
