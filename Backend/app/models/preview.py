from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PreviewRequest(BaseModel):
    url: Optional[str] = None
    # Test/bypass path: extract from this HTML instead of fetching the URL.
    raw_html: Optional[str] = None


class PreviewRecord(BaseModel):
    """
    Normalized link preview for one wishlist item.

    Built fresh for every request and never persisted. `source_url` is always
    the URL the caller asked for, never a value read from the page.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    image: Optional[str] = None
    price: Optional[str] = None
    currency: Optional[str] = None
    site_name: str = Field(alias="siteName")
    source_url: str = Field(alias="sourceUrl")


class ErrorResponse(BaseModel):
    error: str
