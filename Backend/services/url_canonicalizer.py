# Backend/services/url_canonicalizer.py
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import SplitResult, unquote_plus, urlsplit, urlunsplit

TRACKING_PARAMS = frozenset({
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "gclid",
    "fbclid",
    "msclkid",
    "ref",
    "tag",
    "_ga",
    "mc_cid",
    "mc_eid",
})

_WWW_PREFIX = re.compile(r"^www\.", re.IGNORECASE)


def _split_absolute(url: str) -> Optional[SplitResult]:
    """Parse `url`, returning None unless it has both a scheme and a host."""
    try:
        parts = urlsplit(url)
        # .port raises on a non-numeric or out-of-range port
        parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None
    return parts


def _strip_tracking(query: str) -> str:
    # Pairs are compared on their decoded key but kept in their original encoding.
    kept = []
    for pair in query.split("&"):
        if not pair:
            continue
        key = unquote_plus(pair.split("=", 1)[0])
        if key in TRACKING_PARAMS:
            continue
        kept.append(pair)
    return "&".join(kept)


def _lower_host(netloc: str) -> str:
    userinfo, sep, hostport = netloc.rpartition("@")
    return f"{userinfo}{sep}{hostport.lower()}"


def canonicalize(url: str) -> str:
    """
    Map a URL to the identity string used for wishlist deduplication.

    Drops tracking parameters and the fragment, lowercases the hostname only
    and turns a bare "/" path into an empty one. Input that does not parse as
    an absolute URL comes back lowercased instead of raising.
    """
    parts = _split_absolute(url)
    if parts is None:
        return url.lower()

    path = "" if parts.path == "/" else parts.path
    return urlunsplit((
        parts.scheme,
        _lower_host(parts.netloc),
        path,
        _strip_tracking(parts.query),
        "",
    ))


def is_same_item(a: str, b: str) -> bool:
    return canonicalize(a) == canonicalize(b)


def is_valid_url(url: str) -> bool:
    """Absolute http(s) URL with a host."""
    if not url or not url.strip():
        return False
    parts = _split_absolute(url.strip())
    return parts is not None and parts.scheme in ("http", "https")


def clean_url(text: str) -> str:
    """Trim user input and add https:// when the scheme was left out."""
    trimmed = (text or "").strip()
    if not trimmed:
        return ""
    if is_valid_url(trimmed):
        return trimmed
    if not trimmed.startswith(("http://", "https://")):
        with_https = f"https://{trimmed}"
        if is_valid_url(with_https):
            return with_https
    return trimmed


def display_domain(url: str) -> str:
    """Hostname without a leading www., or the input itself when it has no host."""
    parts = _split_absolute(url)
    if parts is None:
        return url
    return _WWW_PREFIX.sub("", parts.hostname or "")
