from __future__ import annotations

"""Client-side state of one conversation.

Each exchange runs idle -> awaiting-provider -> streaming -> settled, or
skips streaming when the backend answers with a finished record; failures
end in ``failed``. At most one message is in flight and it is always the
last one. A finished message's content never changes again.
"""

from dataclasses import dataclass
import inspect
import logging
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from ..core.state_machine import ExchangeState, InvalidTransition, accepts_submission, is_valid_transition
from ..domain.document import Document, find_chat_id
from ..errors import SEND_FAILED_MESSAGE, StudioError
from ..services.stream_consumer import StreamConsumer
from ..services.streaming import ByteStream
from .api import ApiError, ChatApi, demo_url_of

logger = logging.getLogger("studio.client")

Role = Literal["user", "assistant"]
Content = Union[Document, str]


@dataclass
class Message:
    role: Role
    content: Content
    in_flight: bool = False
    stream: Optional[ByteStream] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def text(self) -> str:
        if isinstance(self.content, Document):
            return self.content.text
        return self.content


def message_from_record(raw: Dict[str, Any]) -> Message:
    role: Role = "user" if raw.get("role") == "user" else "assistant"
    experimental = raw.get("experimental_content")
    if isinstance(experimental, list):
        return Message(role=role, content=Document.from_list(experimental))
    return Message(role=role, content=str(raw.get("content") or ""))


def metadata_chat_id(payload: Dict[str, Any]) -> Optional[str]:
    chat_id = payload.get("chatId")
    if isinstance(chat_id, str) and chat_id:
        return chat_id
    object_type = payload.get("object")
    candidate = payload.get("id")
    if isinstance(candidate, str) and candidate and object_type in (None, "chat"):
        return candidate
    return None


async def _notify(callback: Callable[[str], Any], value: str) -> None:
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class Conversation:
    def __init__(
        self,
        api: ChatApi,
        chat_id: Optional[str] = None,
        *,
        preflight: Optional[Callable[[str], bool]] = None,
        streaming: bool = True,
    ) -> None:
        self.api = api
        self._chat_id = chat_id
        self._preflight = preflight
        self.streaming = streaming
        self.messages: List[Message] = []
        self.state = ExchangeState.IDLE
        self.demo_url: Optional[str] = None
        self.record: Optional[Dict[str, Any]] = None
        self.loading = False
        self.handed_off = False
        self.last_rejection: Optional[str] = None
        self._id_listeners: List[Callable[[str], Any]] = []
        self._consumer: Optional[StreamConsumer] = None

    # ------------------------------------------------------------------ ids

    @property
    def chat_id(self) -> Optional[str]:
        return self._chat_id

    def on_id_assigned(self, callback: Callable[[str], Any]) -> None:
        self._id_listeners.append(callback)

    async def _assign_id(self, chat_id: str) -> bool:
        if self._chat_id is not None:
            if chat_id != self._chat_id:
                logger.debug("Ignoring chat id %s; conversation already bound to %s", chat_id, self._chat_id)
            return False
        self._chat_id = chat_id
        logger.info("Conversation bound to chat %s", chat_id)
        for callback in list(self._id_listeners):
            await _notify(callback, chat_id)
        return True

    # ------------------------------------------------------------- messages

    @property
    def in_flight_message(self) -> Optional[Message]:
        if self.messages and self.messages[-1].in_flight:
            return self.messages[-1]
        return None

    @property
    def pending_user_text(self) -> Optional[str]:
        for msg in reversed(self.messages):
            if msg.role == "user":
                return msg.text
        return None

    def load_record(self, record: Dict[str, Any]) -> None:
        """Seed an empty history from a canonical record."""
        self.record = record
        self.demo_url = demo_url_of(record) or self.demo_url
        if self._chat_id is None and isinstance(record.get("id"), str):
            self._chat_id = record["id"]
        if self.messages:
            return
        raw_messages = record.get("messages")
        if isinstance(raw_messages, list):
            self.messages = [message_from_record(m) for m in raw_messages if isinstance(m, dict)]

    # ---------------------------------------------------------- transitions

    def _transition(self, target: ExchangeState) -> None:
        if not is_valid_transition(self.state, target):
            raise InvalidTransition(self.state, target)
        logger.debug("conversation %s: %s -> %s", self._chat_id or "<new>", self.state.value, target.value)
        self.state = target

    def _reject(self, reason: str) -> bool:
        self.last_rejection = reason
        logger.debug("submission rejected: %s", reason)
        return False

    def _admit(self, text: str) -> bool:
        if not text:
            return self._reject("empty message")
        if self.in_flight_message is not None or not accepts_submission(self.state):
            return self._reject("an earlier message is still in flight")
        if self._chat_id is None and self._preflight is not None and not self._preflight(text):
            return self._reject("preflight checks failed")
        self.last_rejection = None
        return True

    async def submit(self, text: str, attachments: Optional[List[Dict[str, str]]] = None) -> bool:
        """Send a user message; returns False when the submission is rejected."""
        text = (text or "").strip()
        if not self._admit(text):
            return False

        self.messages.append(Message(role="user", content=text))
        self._transition(ExchangeState.AWAITING_PROVIDER)
        self.loading = True
        try:
            if self._chat_id is None:
                reply = await self.api.create_chat(text, attachments=attachments, streaming=self.streaming)
            else:
                reply = await self.api.send_message(self._chat_id, text, attachments=attachments, streaming=self.streaming)
        except ApiError as exc:
            logger.warning("Sending message failed: %s", exc.message)
            self._fail_without_reply(exc.message)
            return True
        except Exception:
            logger.exception("Sending message failed")
            self._fail_without_reply(SEND_FAILED_MESSAGE)
            return True

        if reply.stream is not None:
            await self._consume(reply.stream)
        else:
            await self._settle_record(reply.record or {})
        return True

    async def continue_from_handoff(self, pending_user_message: str, stream: ByteStream) -> bool:
        """Replay the submit sequence for a stream started by another view."""
        text = pending_user_message.strip()
        if self.in_flight_message is not None or not accepts_submission(self.state):
            return self._reject("an earlier message is still in flight")
        self.messages.append(Message(role="user", content=text))
        self._transition(ExchangeState.AWAITING_PROVIDER)
        self.loading = True
        await self._consume(stream)
        return True

    def detach_stream(self) -> Optional[ByteStream]:
        """Give up the in-flight stream so another view can continue it."""
        msg = self.in_flight_message
        if msg is None or msg.stream is None:
            return None
        stream = msg.stream.detach()
        msg.stream = None
        self.handed_off = True
        return stream

    # ------------------------------------------------------------ streaming

    async def _consume(self, stream: ByteStream) -> None:
        self._transition(ExchangeState.STREAMING)
        self.messages.append(Message(role="assistant", content=Document(), in_flight=True, stream=stream))
        self._consumer = StreamConsumer(
            stream,
            on_chunk=self._on_chunk,
            on_metadata=self._on_metadata,
            on_complete=self._on_complete,
            on_error=self._on_error,
        )
        await self._consumer.run()

    def _on_chunk(self, document: Document) -> None:
        msg = self.in_flight_message
        if msg is None:
            return
        msg.content = document
        # first content replaces the generic spinner
        self.loading = False

    async def _on_metadata(self, payload: Dict[str, Any]) -> None:
        chat_id = metadata_chat_id(payload)
        if chat_id:
            await self._assign_id(chat_id)

    async def _on_complete(self, document: Document) -> None:
        msg = self.in_flight_message
        if msg is not None:
            msg.content = document
            msg.in_flight = False
            msg.stream = None
        self._transition(ExchangeState.SETTLED)
        self.loading = False

        if self._chat_id is None:
            found = find_chat_id(document)
            if found:
                logger.info("Found chat id %s in final content", found)
                await self._assign_id(found)
            else:
                logger.info("No chat id found in final content")
        if self._chat_id is not None:
            await self.refresh()

    def _on_error(self, exc: StudioError) -> None:
        msg = self.in_flight_message
        if msg is not None:
            # keep whatever arrived; the message is terminal from here
            msg.in_flight = False
            msg.stream = None
            msg.error = exc.message
        self._transition(ExchangeState.FAILED)
        self.loading = False

    # -------------------------------------------------------------- settle

    def _fail_without_reply(self, text: str) -> None:
        self.messages.append(Message(role="assistant", content=text, error=text))
        self._transition(ExchangeState.FAILED)
        self.loading = False

    async def _settle_record(self, record: Dict[str, Any]) -> None:
        chat_id = record.get("id")
        raw_messages = record.get("messages") if isinstance(record.get("messages"), list) else []
        replies = [m for m in raw_messages if isinstance(m, dict) and m.get("role") == "assistant"]
        content: Content = message_from_record(replies[-1]).content if replies else ""
        self.messages.append(Message(role="assistant", content=content))
        self._transition(ExchangeState.SETTLED)
        self.loading = False
        self.record = record
        self.demo_url = demo_url_of(record) or self.demo_url
        if isinstance(chat_id, str) and chat_id:
            await self._assign_id(chat_id)

    async def refresh(self) -> Optional[Dict[str, Any]]:
        """Fetch the canonical record and take its preview URL."""
        if self._chat_id is None:
            return None
        try:
            record = await self.api.get_chat(self._chat_id)
        except ApiError as exc:
            logger.warning("Failed to fetch updated chat details: %s", exc.status_code)
            return None
        self.record = record
        demo = demo_url_of(record)
        if demo:
            self.demo_url = demo
        return record
