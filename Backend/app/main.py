# Backend/app/main.py
from __future__ import annotations

# --- ensure Backend/ is on sys.path so `api.*`, `app.*` and `services.*` import ---
import sys
from pathlib import Path
THIS_FILE = Path(__file__).resolve()
BACKEND_ROOT = THIS_FILE.parents[1]  # .../Backend
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
# -------------------------------------------------------------------------

from fastapi import FastAPI, HTTPException, Response
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from app.config import settings
from app.core.logging import configure_logging, logger
from app.core.request_id import clear_request_id, new_id, set_request_id
from services.preview_service import PreviewService

from api.routers.preview import router as preview_router

configure_logging(service_name="api", level=settings.LOG_LEVEL)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)


def build_preview_service() -> PreviewService:
    return PreviewService.from_settings(settings)


@app.on_event("startup")
async def _startup_preview_service() -> None:
    service = build_preview_service()
    await service.start()
    app.state.preview_service = service
    logger.info("preview_service_started")


@app.on_event("shutdown")
async def _shutdown_preview_service() -> None:
    service = getattr(app.state, "preview_service", None)
    if service is not None:
        await service.close()
        app.state.preview_service = None
    logger.info("preview_service_stopped")


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get("x-request-id") or new_id()
        set_request_id(req_id)

        logger.info("request_started", method=request.method, path=str(request.url.path))
        try:
            response: StarletteResponse = await call_next(request)
        except Exception as exc:
            logger.error("request_exception", error=str(exc.__class__.__name__))
            clear_request_id()
            raise
        logger.info("request_ended", status_code=response.status_code)
        response.headers["X-Request-Id"] = req_id
        clear_request_id()
        return response


# --- CORS ---
# Added first so it is the outermost middleware and decorates every response.
_wildcard = "*" in settings.ALLOWED_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=not _wildcard,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Client-Id", "X-Request-Id"],
    expose_headers=["X-Request-Id", "Retry-After"],
)

app.add_middleware(RequestIdMiddleware)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=dict(exc.headers or {}))


def _preview_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if any(err.get("type") == "missing" and tuple(err.get("loc", ())) == ("body",) for err in errors):
        return "URL parameter is required"
    if any("url" in tuple(err.get("loc", ())) for err in errors):
        return "Invalid URL"
    return "Invalid request body"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # /preview answers every client error with 400 {"error": ...}; other routes keep FastAPI's 422.
    if request.url.path != "/preview":
        return await request_validation_exception_handler(request, exc)
    message = _preview_validation_message(exc)
    logger.info("preview_request_invalid", error=message, errors=len(exc.errors()))
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# --- Health endpoints ---
@app.get("/health")
async def health():
    return {"ok": True}


@app.head("/health")
async def health_head():
    return Response(status_code=200)


app.include_router(preview_router)

logger.info("routers_registered", routers=["preview"])
