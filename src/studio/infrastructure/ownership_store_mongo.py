# --- v1.0 update ---
from __future__ import annotations

# --- v1.0 update ---
from datetime import UTC, datetime, timedelta
import logging
import os
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..domain.chat_models import OwnershipRecord
from ..errors import StorageUnavailable

logger = logging.getLogger("studio.ownership")


# --- v1.0 update ---
class MongoOwnershipStore:
    """Ownership rows in MongoDB; failures surface as StorageUnavailable."""

    def __init__(self, client: Optional[AsyncIOMotorClient] = None) -> None:
        mongo_url = os.getenv("MONGO_URL", "mongodb://localhost:27017")
        mongo_db = os.getenv("MONGO_DB", "studio")
        self._client = client or AsyncIOMotorClient(mongo_url, serverSelectionTimeoutMS=500)
        db = self._client[mongo_db]
        self._users = db["users"]
        self._ownerships = db["chat_ownerships"]
        self._anonymous = db["anonymous_chat_logs"]
        self._indexed = False

    def _now(self) -> datetime:
        return datetime.now(UTC)

    async def _ensure_indexes(self) -> None:
        if self._indexed:
            return
        await self._ownerships.create_index("v0_chat_id", unique=True)
        await self._ownerships.create_index([("user_id", 1), ("created_at", -1)])
        await self._anonymous.create_index([("ip_address", 1), ("created_at", -1)])
        self._indexed = True

    def _to_record(self, doc: Dict[str, Any]) -> OwnershipRecord:
        return OwnershipRecord(
            v0_chat_id=doc["v0_chat_id"],
            user_id=doc["user_id"],
            created_at=doc["created_at"],
        )

    # --- v1.0 update ---
    async def ensure_user(self, user_id: str, email: str) -> None:
        try:
            await self._users.update_one(
                {"_id": user_id},
                {"$setOnInsert": {"email": email, "created_at": self._now()}},
                upsert=True,
            )
        except PyMongoError as exc:
            logger.exception("Failed to ensure user exists in database")
            raise StorageUnavailable(str(exc)) from exc

    # --- v1.0 update ---
    async def create_ownership(self, v0_chat_id: str, user_id: str) -> None:
        try:
            await self._ensure_indexes()
            await self._ownerships.insert_one(
                {"v0_chat_id": v0_chat_id, "user_id": user_id, "created_at": self._now()}
            )
        except DuplicateKeyError:
            return
        except PyMongoError as exc:
            logger.exception("Failed to create chat ownership in database")
            raise StorageUnavailable(str(exc)) from exc

    async def get_ownership(self, v0_chat_id: str) -> Optional[OwnershipRecord]:
        try:
            doc = await self._ownerships.find_one({"v0_chat_id": v0_chat_id})
        except PyMongoError as exc:
            logger.exception("Failed to get chat ownership from database")
            raise StorageUnavailable(str(exc)) from exc
        return self._to_record(doc) if doc else None

    async def list_chat_ids(self, user_id: str) -> List[str]:
        try:
            cursor = self._ownerships.find({"user_id": user_id}).sort("created_at", -1)
            docs = await cursor.to_list(length=1000)
        except PyMongoError as exc:
            logger.exception("Failed to get chat IDs by user from database")
            raise StorageUnavailable(str(exc)) from exc
        return [doc["v0_chat_id"] for doc in docs]

    async def delete_ownership(self, v0_chat_id: str) -> None:
        try:
            await self._ownerships.delete_one({"v0_chat_id": v0_chat_id})
        except PyMongoError as exc:
            logger.exception("Failed to delete chat ownership from database")
            raise StorageUnavailable(str(exc)) from exc

    # --- v1.0 update ---
    async def count_chats_by_user(self, user_id: str, hours: int) -> int:
        cutoff = self._now() - timedelta(hours=hours)
        try:
            return int(await self._ownerships.count_documents({"user_id": user_id, "created_at": {"$gte": cutoff}}))
        except PyMongoError as exc:
            logger.exception("Failed to get chat count by user from database")
            raise StorageUnavailable(str(exc)) from exc

    async def create_anonymous_log(self, ip_address: str, v0_chat_id: str) -> None:
        try:
            await self._anonymous.insert_one(
                {"ip_address": ip_address, "v0_chat_id": v0_chat_id, "created_at": self._now()}
            )
        except PyMongoError as exc:
            logger.exception("Failed to create anonymous chat log in database")
            raise StorageUnavailable(str(exc)) from exc

    async def count_chats_by_ip(self, ip_address: str, hours: int) -> int:
        cutoff = self._now() - timedelta(hours=hours)
        try:
            return int(await self._anonymous.count_documents({"ip_address": ip_address, "created_at": {"$gte": cutoff}}))
        except PyMongoError as exc:
            logger.exception("Failed to get chat count by IP from database")
            raise StorageUnavailable(str(exc)) from exc
