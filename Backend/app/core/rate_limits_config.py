# Backend/app/core/rate_limits_config.py
"""
Rate limiting configuration per action type.

All limits are per key (client_id or IP address).
"""

from typing import Dict, Tuple

from app.config import settings

# (limit, window_seconds)
RATE_LIMITS: Dict[str, Tuple[int, int]] = {
    "preview": (settings.PREVIEW_RATE_LIMIT, settings.PREVIEW_RATE_WINDOW_S),
}


def get_rate_limit(action: str) -> Tuple[int, int]:
    """
    Get rate limit configuration for an action.

    Raises:
        ValueError: If action is not configured
    """
    if action not in RATE_LIMITS:
        raise ValueError(f"Rate limit not configured for action: {action}")
    return RATE_LIMITS[action]
