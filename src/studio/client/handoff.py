from __future__ import annotations

"""Transfer slot that carries an in-flight reply across a client-side navigation.

The composer publishes the slot right before navigating to the chat's own
view; that view claims it while mounting. Claiming checks and clears the
slot in one step, so only one view can ever take the stream.
"""

from dataclasses import dataclass
import logging
from threading import Lock
from typing import Optional

from ..services.streaming import ByteStream

logger = logging.getLogger("studio.client")


@dataclass(frozen=True)
class HandoffSlot:
    conversation_id: str
    pending_user_message: str
    stream: ByteStream


class HandoffRelay:
    def __init__(self) -> None:
        self._slot: Optional[HandoffSlot] = None
        self._lock = Lock()

    def publish(self, slot: HandoffSlot) -> None:
        with self._lock:
            if self._slot is not None:
                logger.info("Discarding unclaimed handoff for chat %s", self._slot.conversation_id)
            self._slot = slot

    def claim(self, conversation_id: str) -> Optional[HandoffSlot]:
        with self._lock:
            slot = self._slot
            if slot is None or slot.conversation_id != conversation_id:
                return None
            self._slot = None
        logger.info("Continuing streaming from handoff for chat %s", conversation_id)
        return slot

    def clear(self) -> None:
        with self._lock:
            self._slot = None

    def pending_for(self, conversation_id: str) -> bool:
        with self._lock:
            return self._slot is not None and self._slot.conversation_id == conversation_id
