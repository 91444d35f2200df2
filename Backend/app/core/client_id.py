# Backend/app/core/client_id.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import Request


async def get_client_id(request: Request) -> Optional[str]:
    """
    Extract and validate client_id from the X-Client-Id header.
    Returns None if the header is missing or not a UUID.
    """
    client_id = request.headers.get("X-Client-Id")
    if not client_id:
        return None

    try:
        UUID(client_id)
        return client_id
    except ValueError:
        return None
