from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from .auth import AuthUser


@dataclass(frozen=True)
class Entitlements:
    max_messages_per_day: int


ENTITLEMENTS_BY_USER_TYPE: Dict[str, Entitlements] = {
    # accounts created with a guest- email
    "guest": Entitlements(max_messages_per_day=5),
    "regular": Entitlements(max_messages_per_day=50),
}

# callers without a session
ANONYMOUS_ENTITLEMENTS = Entitlements(max_messages_per_day=3)


def entitlements_for(user: Optional[AuthUser]) -> Entitlements:
    if user is None:
        return ANONYMOUS_ENTITLEMENTS
    return ENTITLEMENTS_BY_USER_TYPE.get(user.type, ENTITLEMENTS_BY_USER_TYPE["regular"])


def tier_of(user: Optional[AuthUser]) -> str:
    return "anonymous" if user is None else user.type
