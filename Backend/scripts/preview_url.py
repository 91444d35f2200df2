#!/usr/bin/env python3
"""
CLI script to run one link preview and print it as JSON.

Usage:
    python scripts/preview_url.py https://example.com/product
    python scripts/preview_url.py https://example.com/product --html-file page.html
    python scripts/preview_url.py "https://Shop.com/item?utm_source=ig" --canonical
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

# Add Backend to path
THIS_FILE = Path(__file__).resolve()
BACKEND_DIR = THIS_FILE.parent.parent

if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.config import settings
from app.core.logging import configure_logging
from app.core.request_id import with_run_id
from services.preview_errors import PreviewError
from services.preview_service import PreviewService
from services.url_canonicalizer import canonicalize, clean_url


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch a product page and print its preview record.")
    parser.add_argument("url", help="Product URL (https:// is added when missing)")
    parser.add_argument("--html-file", type=Path, help="Extract from this file instead of fetching the URL")
    parser.add_argument("--canonical", action="store_true", help="Only print the canonical form of the URL")
    parser.add_argument("--log-level", default="WARNING", help="Log level for stderr JSON logs")
    return parser.parse_args(argv)


async def run(url: str, raw_html: Optional[str]) -> int:
    async with PreviewService.from_settings(settings) as service:
        try:
            record = await service.generate_preview(url, raw_html)
        except PreviewError as exc:
            print(json.dumps({"error": exc.message, "kind": exc.kind.value}), file=sys.stderr)
            return 1
    print(json.dumps(record.model_dump(by_alias=True), indent=2, ensure_ascii=False))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(service_name="cli", level=args.log_level)
    url = clean_url(args.url)

    if args.canonical:
        print(canonicalize(url))
        return 0

    raw_html = args.html_file.read_text(encoding="utf-8") if args.html_file else None
    with with_run_id():
        return asyncio.run(run(url, raw_html))


if __name__ == "__main__":
    sys.exit(main())
