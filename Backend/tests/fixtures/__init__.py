# Backend/tests/fixtures/__init__.py
"""
Test fixtures for the preview pipeline.

Factory functions:
- make_product_html()
- make_resolver()
- RecordingSleep
"""

from __future__ import annotations

import socket
from typing import Dict, List, Optional


PUBLIC_IP = "93.184.216.34"


def make_product_html(
    *,
    og_title: Optional[str] = None,
    og_image: Optional[str] = None,
    og_site_name: Optional[str] = None,
    og_price: Optional[str] = None,
    og_currency: Optional[str] = None,
    twitter_title: Optional[str] = None,
    twitter_image: Optional[str] = None,
    title: Optional[str] = None,
    oembed_href: Optional[str] = None,
    oembed_type: str = "application/json+oembed",
    body: str = "",
) -> str:
    """Factory function to create a product page with the given metadata."""
    head: List[str] = []
    if og_title is not None:
        head.append(f'<meta property="og:title" content="{og_title}">')
    if og_image is not None:
        head.append(f'<meta property="og:image" content="{og_image}">')
    if og_site_name is not None:
        head.append(f'<meta property="og:site_name" content="{og_site_name}">')
    if og_price is not None:
        head.append(f'<meta property="og:price:amount" content="{og_price}">')
    if og_currency is not None:
        head.append(f'<meta property="og:price:currency" content="{og_currency}">')
    if twitter_title is not None:
        head.append(f'<meta name="twitter:title" content="{twitter_title}">')
    if twitter_image is not None:
        head.append(f'<meta name="twitter:image" content="{twitter_image}">')
    if title is not None:
        head.append(f"<title>{title}</title>")
    if oembed_href is not None:
        head.append(f'<link rel="alternate" type="{oembed_type}" href="{oembed_href}">')
    return "<!doctype html><html><head>{}</head><body>{}</body></html>".format("".join(head), body)


def make_resolver(mapping: Optional[Dict[str, List[str]]] = None, calls: Optional[List[str]] = None):
    """Fake DNS resolver; unknown hosts fail like getaddrinfo does."""
    table = {"example.com": [PUBLIC_IP], "www.example.com": [PUBLIC_IP]}
    table.update(mapping or {})

    async def _resolve(host: str) -> List[str]:
        if calls is not None:
            calls.append(host)
        if host not in table:
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        return table[host]

    return _resolve


class RecordingSleep:
    """Stands in for asyncio.sleep; records requested delays without waiting."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
