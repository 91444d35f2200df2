# Backend/api/routers/preview.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.core.logging import logger
from app.deps.preview import get_preview_service
from app.deps.rate_limiting import require_rate_limit_factory
from app.models.preview import ErrorResponse, PreviewRecord, PreviewRequest
from services.preview_errors import PreviewError
from services.preview_service import PreviewService

router = APIRouter(tags=["preview"])


def _error(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content=ErrorResponse(error=message).model_dump())


@router.post(
    "/preview",
    response_model=PreviewRecord,
    responses={400: {"model": ErrorResponse}, 429: {"description": "Rate limit exceeded"}},
)
async def create_preview(
    payload: PreviewRequest,
    service: PreviewService = Depends(get_preview_service),
    _rate_limit: None = Depends(require_rate_limit_factory("preview")),
):
    """Fetch a product page and return its normalized preview."""
    if not payload.url:
        return _error("URL parameter is required")

    logger.info("preview_requested", url=payload.url, bypass=bool(payload.raw_html))
    try:
        return await service.generate_preview(payload.url, payload.raw_html)
    except PreviewError as exc:
        logger.info("preview_rejected", url=payload.url, kind=exc.kind.value, state=exc.state)
        return _error(exc.message)
