# Backend/services/preview_errors.py
from __future__ import annotations

from enum import Enum
from typing import Dict, Optional


class ErrorKind(str, Enum):
    INVALID_URL = "InvalidUrl"
    BLOCKED_DESTINATION = "BlockedDestination"
    RESOLUTION_FAILED = "ResolutionFailed"
    DOMAIN_NOT_FOUND = "DomainNotFound"
    CONNECTION_REFUSED = "ConnectionRefused"
    TIMEOUT = "Timeout"
    FORBIDDEN = "Forbidden"
    RATE_LIMITED = "RateLimited"
    UPSTREAM_SERVER_ERROR = "UpstreamServerError"
    NETWORK_UNREACHABLE = "NetworkUnreachable"
    FETCH_FAILED = "FetchFailed"
    INVALID_CONTENT_TYPE = "InvalidContentType"


DEFAULT_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.INVALID_URL: "Invalid URL",
    ErrorKind.BLOCKED_DESTINATION: "Blocked private/loopback IP (SSRF guard)",
    ErrorKind.RESOLUTION_FAILED: "DNS lookup failed",
    ErrorKind.DOMAIN_NOT_FOUND: "Domain not found. Please check the URL.",
    ErrorKind.CONNECTION_REFUSED: "Connection refused. The server may be down or blocking requests.",
    ErrorKind.TIMEOUT: "Request timed out. The server may be slow or blocking requests.",
    ErrorKind.FORBIDDEN: "Access forbidden. This site may be blocking automated requests.",
    ErrorKind.RATE_LIMITED: "Too many requests. Please try again later.",
    ErrorKind.UPSTREAM_SERVER_ERROR: "Server error. The target site may be experiencing issues.",
    ErrorKind.NETWORK_UNREACHABLE: (
        "Network request failed. This site may be blocking automated access "
        "or experiencing connectivity issues."
    ),
    ErrorKind.FETCH_FAILED: "Failed to fetch URL after all attempts",
    ErrorKind.INVALID_CONTENT_TYPE: "Invalid content type. Expected HTML content.",
}

# Retrying the same URL cannot change these verdicts.
TERMINAL_KINDS = frozenset({ErrorKind.INVALID_URL, ErrorKind.BLOCKED_DESTINATION})


class PreviewError(Exception):
    """
    Single exception type for the preview pipeline.

    `kind` is the stable vocabulary clients can branch on; `message` is the
    human-readable text returned in the API error body.
    """

    def __init__(self, kind: ErrorKind, message: Optional[str] = None) -> None:
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        # Set by the orchestrator to the pipeline state the error surfaced in.
        self.state: Optional[str] = None
        super().__init__(self.message)

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    def __repr__(self) -> str:
        return f"PreviewError({self.kind.value!r}, {self.message!r})"
