# Backend/app/core/request_id.py
from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

_request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
_run_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("run_id", default=None)


def new_id() -> str:
    return uuid.uuid4().hex


# -------- Request ID (API) ---------------------------------------------------

def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


def clear_request_id() -> None:
    _request_id_ctx.set(None)


# -------- Run ID (CLI) -------------------------------------------------------

def get_run_id() -> Optional[str]:
    return _run_id_ctx.get()


@contextmanager
def with_run_id(run_id: Optional[str] = None) -> Iterator[str]:
    """
    Tag every log line emitted inside the block with one run id:

        with with_run_id():
            await service.generate_preview(url)
    """
    token = _run_id_ctx.set(run_id or new_id())
    try:
        yield _run_id_ctx.get()
    finally:
        _run_id_ctx.reset(token)
