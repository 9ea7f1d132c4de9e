from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from threading import RLock
from typing import Callable, Dict, List, Optional, Protocol
import logging
import os

from ..domain.chat_models import AnonymousChatLog, OwnershipRecord

logger = logging.getLogger("studio.ownership")


# --- v1.0 update ---
class OwnershipStore(Protocol):
    """Storage backend for ownership rows and anonymous activity.

    Backends raise ``StorageUnavailable`` when the store cannot be reached.
    """

    async def ensure_user(self, user_id: str, email: str) -> None: ...

    async def create_ownership(self, v0_chat_id: str, user_id: str) -> None: ...

    async def get_ownership(self, v0_chat_id: str) -> Optional[OwnershipRecord]: ...

    async def list_chat_ids(self, user_id: str) -> List[str]: ...

    async def delete_ownership(self, v0_chat_id: str) -> None: ...

    async def count_chats_by_user(self, user_id: str, hours: int) -> int: ...

    async def create_anonymous_log(self, ip_address: str, v0_chat_id: str) -> None: ...

    async def count_chats_by_ip(self, ip_address: str, hours: int) -> int: ...


@dataclass
class _Ownership:
    v0_chat_id: str
    user_id: str
    created_at: datetime


@dataclass
class _AnonymousLog:
    ip_address: str
    v0_chat_id: str
    created_at: datetime


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryOwnershipStore:
    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._users: Dict[str, str] = {}
        self._ownerships: Dict[str, _Ownership] = {}
        self._anonymous: List[_AnonymousLog] = []
        self._lock = RLock()

    def _record(self, row: _Ownership) -> OwnershipRecord:
        return OwnershipRecord(**row.__dict__)

    async def ensure_user(self, user_id: str, email: str) -> None:
        with self._lock:
            self._users.setdefault(user_id, email)

    async def create_ownership(self, v0_chat_id: str, user_id: str) -> None:
        with self._lock:
            if v0_chat_id in self._ownerships:
                # unique on the external chat id: repeats are absorbed
                return
            self._ownerships[v0_chat_id] = _Ownership(v0_chat_id, user_id, self._clock())

    async def get_ownership(self, v0_chat_id: str) -> Optional[OwnershipRecord]:
        with self._lock:
            row = self._ownerships.get(v0_chat_id)
            return self._record(row) if row else None

    async def list_chat_ids(self, user_id: str) -> List[str]:
        with self._lock:
            rows = [r for r in self._ownerships.values() if r.user_id == user_id]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return [r.v0_chat_id for r in rows]

    async def delete_ownership(self, v0_chat_id: str) -> None:
        with self._lock:
            self._ownerships.pop(v0_chat_id, None)

    async def count_chats_by_user(self, user_id: str, hours: int) -> int:
        cutoff = self._clock() - timedelta(hours=hours)
        with self._lock:
            return sum(1 for r in self._ownerships.values() if r.user_id == user_id and r.created_at >= cutoff)

    async def create_anonymous_log(self, ip_address: str, v0_chat_id: str) -> None:
        with self._lock:
            self._anonymous.append(_AnonymousLog(ip_address, v0_chat_id, self._clock()))

    async def count_chats_by_ip(self, ip_address: str, hours: int) -> int:
        cutoff = self._clock() - timedelta(hours=hours)
        with self._lock:
            return sum(1 for r in self._anonymous if r.ip_address == ip_address and r.created_at >= cutoff)

    def anonymous_logs(self) -> List[AnonymousChatLog]:
        with self._lock:
            return [AnonymousChatLog(**row.__dict__) for row in self._anonymous]


_store: OwnershipStore | None = None


def get_ownership_store() -> OwnershipStore:
    global _store
    if _store is not None:
        return _store
    impl = os.getenv("STUDIO_OWNERSHIP_STORE_IMPL", "memory").lower()
    if impl == "mongo":
        from .ownership_store_mongo import MongoOwnershipStore

        _store = MongoOwnershipStore()
        logger.info("Using MongoDB ownership store")
        return _store
    _store = InMemoryOwnershipStore()
    return _store


def reset_ownership_store() -> None:
    """Drop the cached store (useful for tests)."""
    global _store
    _store = None
