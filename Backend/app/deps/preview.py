# Backend/app/deps/preview.py
from __future__ import annotations

from starlette.requests import Request

from services.preview_service import PreviewService


def get_preview_service(request: Request) -> PreviewService:
    """The PreviewService opened at startup and stored on app.state."""
    service = getattr(request.app.state, "preview_service", None)
    if service is None:
        raise RuntimeError("PreviewService not started")
    return service
