# Backend/app/core/logging.py
from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Union

import structlog

from app.core.request_id import get_request_id, get_run_id


# -------- Processors ---------------------------------------------------------

def _add_ts(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # ISO 8601 UTC, short & sortable
    event_dict.setdefault("ts", datetime.now(timezone.utc).isoformat(timespec="milliseconds"))
    return event_dict


def _add_level(_: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # The filtering bound logger passes the method name ("info", "warning", ...)
    event_dict.setdefault("level", "error" if method_name == "exception" else method_name)
    event_dict["level"] = str(event_dict["level"]).lower()
    return event_dict


def _add_service(service_name: str):
    def _inner(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict
    return _inner


def _add_request_or_run_ids(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    rid = get_request_id()
    if rid:
        event_dict.setdefault("request_id", rid)
    run = get_run_id()
    if run:
        event_dict.setdefault("run_id", run)
    return event_dict


# Key-based redactor. Page bodies are dropped too; they are large and may echo user data.
_PII_KEYS = {
    "email", "phone", "authorization", "cookie", "set-cookie",
    "token", "access_token", "api_key", "apikey", "password", "secret",
    "raw_html", "html",
}


def _pii_guard(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for k in list(event_dict.keys()):
        if str(k).lower() in _PII_KEYS:
            event_dict[k] = "***redacted***"
    return event_dict


# -------- Public API ---------------------------------------------------------

_configured = False


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(service_name: str = "api", *, level: Union[int, str] = logging.INFO) -> None:
    """
    Configure one global structlog stack (JSON lines on stderr) for the API and CLI.
    """
    global _configured
    numeric_level = _coerce_level(level)

    logging.basicConfig(
        level=numeric_level,
        format="%(message)s",
        stream=sys.stderr,
        force=True,
    )

    processors = [
        _add_ts,
        _add_level,
        _add_service(service_name),
        _add_request_or_run_ids,
        _pii_guard,
        structlog.processors.EventRenamer("event"),
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        # proxies re-read the config on every call
        cache_logger_on_first_use=False,
    )

    _configured = True


def get_logger(**initial_values: Any) -> structlog.BoundLogger:
    """
    Lazy logger proxy; `initial_values` are bound on first use, after
    configure_logging() has set the level. Safe to call at import time.
    """
    if not _configured:
        configure_logging("api")
    return structlog.get_logger(**initial_values)


logger = get_logger()
