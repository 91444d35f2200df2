# Backend/services/metadata_extractor.py
"""
Preview metadata extraction.

Every field of a PreviewRecord is chosen from an ordered list of small,
pure extractor functions `(PageDocument) -> Optional[str]`; the first
non-empty value wins. Supporting a new metadata source means inserting one
function at the right position of the relevant list.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from app.core.logging import get_logger
from app.models.preview import PreviewRecord
from services.url_canonicalizer import display_domain

logger = get_logger(module="metadata_extractor")

OembedFetcher = Callable[[str], Awaitable[Dict[str, Any]]]

DEFAULT_TITLE = "Untitled"
DEFAULT_CURRENCY = "USD"
OEMBED_LINK_TYPES = ("application/json+oembed", "text/xml+oembed")

# First currency-symbol-prefixed number anywhere in the raw HTML.
PRICE_PATTERN = re.compile(r"(\$|₹|€|£)\s?([0-9]+[.,]?[0-9]*)")
_WHITESPACE = re.compile(r"\s+")


@dataclass
class PageDocument:
    url: str
    html: str
    soup: BeautifulSoup
    oembed: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(cls, html: str, url: str) -> "PageDocument":
        return cls(url=url, html=html, soup=BeautifulSoup(html or "", "html.parser"))


Extractor = Callable[[PageDocument], Optional[str]]


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = _WHITESPACE.sub(" ", str(value)).strip()
    return text or None


def meta_content(doc: PageDocument, key: str) -> Optional[str]:
    """Content of <meta property=key> or <meta name=key>, whichever comes first."""
    tag = doc.soup.find("meta", attrs={"property": key}) or doc.soup.find("meta", attrs={"name": key})
    if tag is None:
        return None
    return _clean(tag.get("content"))


def _absolute(doc: PageDocument, value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return urljoin(doc.url, value)
    except ValueError:
        return value


# -------- Title --------------------------------------------------------------

def og_title(doc: PageDocument) -> Optional[str]:
    return meta_content(doc, "og:title")


def twitter_title(doc: PageDocument) -> Optional[str]:
    return meta_content(doc, "twitter:title")


def oembed_title(doc: PageDocument) -> Optional[str]:
    return _clean(doc.oembed.get("title"))


def document_title(doc: PageDocument) -> Optional[str]:
    tag = doc.soup.find("title")
    return _clean(tag.get_text()) if tag else None


# -------- Image --------------------------------------------------------------

def og_image(doc: PageDocument) -> Optional[str]:
    return _absolute(doc, meta_content(doc, "og:image"))


def twitter_image(doc: PageDocument) -> Optional[str]:
    return _absolute(doc, meta_content(doc, "twitter:image"))


def oembed_image(doc: PageDocument) -> Optional[str]:
    value = _clean(doc.oembed.get("thumbnail_url")) or _clean(doc.oembed.get("image"))
    return _absolute(doc, value)


def first_img_src(doc: PageDocument) -> Optional[str]:
    # Only the first <img> counts, even when its src is empty.
    tag = doc.soup.find("img")
    if tag is None:
        return None
    return _absolute(doc, _clean(tag.get("src")))


# -------- Site name ----------------------------------------------------------

def og_site_name(doc: PageDocument) -> Optional[str]:
    return meta_content(doc, "og:site_name")


def hostname_site_name(doc: PageDocument) -> Optional[str]:
    return display_domain(doc.url) or None


TITLE_EXTRACTORS: Sequence[Extractor] = (og_title, twitter_title, oembed_title, document_title)
IMAGE_EXTRACTORS: Sequence[Extractor] = (og_image, twitter_image, oembed_image, first_img_src)
SITE_NAME_EXTRACTORS: Sequence[Extractor] = (og_site_name, hostname_site_name)


def first_value(extractors: Sequence[Extractor], doc: PageDocument) -> Optional[str]:
    for extractor in extractors:
        value = extractor(doc)
        if value:
            return value
    return None


def extract_price(doc: PageDocument) -> Tuple[Optional[str], Optional[str]]:
    """(price, currency) from og:price:*, else the raw-HTML regex, else (None, None)."""
    amount = meta_content(doc, "og:price:amount")
    if amount:
        return amount, meta_content(doc, "og:price:currency") or DEFAULT_CURRENCY

    match = PRICE_PATTERN.search(doc.html or "")
    if match:
        return match.group(2), match.group(1)
    return None, None


def find_oembed_endpoint(doc: PageDocument) -> Optional[str]:
    """Absolute oEmbed endpoint advertised by a <link>, JSON preferred over XML."""
    for link_type in OEMBED_LINK_TYPES:
        tag = doc.soup.find("link", attrs={"type": link_type})
        if tag is None:
            continue
        href = _clean(tag.get("href"))
        if href:
            return urljoin(doc.url, href)
    return None


def build_preview(doc: PageDocument) -> PreviewRecord:
    price, currency = extract_price(doc)
    return PreviewRecord(
        title=first_value(TITLE_EXTRACTORS, doc) or DEFAULT_TITLE,
        image=first_value(IMAGE_EXTRACTORS, doc),
        price=price,
        currency=currency,
        site_name=first_value(SITE_NAME_EXTRACTORS, doc) or "",
        source_url=doc.url,
    )


async def load_oembed(doc: PageDocument, fetch_oembed: Optional[OembedFetcher]) -> None:
    """Best-effort oEmbed enrichment; any failure leaves `doc.oembed` empty."""
    if fetch_oembed is None:
        return
    endpoint = find_oembed_endpoint(doc)
    if not endpoint:
        return
    try:
        data = await fetch_oembed(endpoint)
    except Exception as e:
        logger.debug("oembed_fetch_failed", url=doc.url, endpoint=endpoint, error=str(e))
        return
    if isinstance(data, dict):
        doc.oembed = data


async def extract_preview(
    html: str,
    url: str,
    *,
    fetch_oembed: Optional[OembedFetcher] = None,
) -> PreviewRecord:
    doc = PageDocument.parse(html, url)
    await load_oembed(doc, fetch_oembed)
    record = build_preview(doc)
    logger.debug(
        "preview_extracted",
        url=url,
        has_image=record.image is not None,
        has_price=record.price is not None,
        oembed=bool(doc.oembed),
    )
    return record
