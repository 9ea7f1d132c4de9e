from __future__ import annotations

"""Daily message limits counted from stored ownership and activity rows.

Counts are read, never held: concurrent requests may both pass the check
right at the limit. The limit is advisory.
"""

import os
from typing import Optional

from fastapi import Request

from ..errors import StudioError
from ..infrastructure.ownership_store import OwnershipStore
from ..observability.metrics import RATE_LIMITED
from .auth import AuthUser
from .entitlements import entitlements_for, tier_of

WINDOW_HOURS = 24


class RateLimitExceeded(StudioError):
    def __init__(self, tier: str, limit: int) -> None:
        super().__init__("rate_limit:chat", cause=f"{tier} limit {limit}/day")
        self.tier = tier
        self.limit = limit


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def enforce_daily_limit(store: OwnershipStore, user: Optional[AuthUser], ip_address: str) -> None:
    """Raise RateLimitExceeded when the caller used up today's messages."""

    if _rate_limiting_disabled():
        return

    limit = entitlements_for(user).max_messages_per_day
    if user is not None:
        used = await store.count_chats_by_user(user.id, WINDOW_HOURS)
    else:
        used = await store.count_chats_by_ip(ip_address, WINDOW_HOURS)

    if used >= limit:
        tier = tier_of(user)
        RATE_LIMITED.labels(tier=tier).inc()
        raise RateLimitExceeded(tier, limit)


def _rate_limiting_disabled() -> bool:
    flag = os.getenv("STUDIO_RATE_LIMIT_DISABLED")
    return bool(flag and flag.lower() in {"1", "true", "yes", "on"})
