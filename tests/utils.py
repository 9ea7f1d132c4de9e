from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from fastapi.testclient import TestClient

from src.studio.client.api import ApiError, ChatReply
from src.studio.services.provider import ProviderError
from src.studio.services.streaming import ByteStream

CHAT_ID = "a1b2c3d4-e5f6-47a8-9abc-1234567890ab"
DEMO_URL = "https://demo.example/xyz"


def sse(obj: Any, event: Optional[str] = None) -> bytes:
    head = f"event: {event}\n" if event else ""
    return f"{head}data: {json.dumps(obj)}\n\n".encode("utf-8")


def append_part(part: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "append-part", "part": part}


def extend(delta: str) -> Dict[str, Any]:
    return {"type": "extend-last-part", "delta": delta}


def metadata(**payload: Any) -> Dict[str, Any]:
    return {"type": "metadata", "payload": payload}


def landing_page_frames(chat_id: str = CHAT_ID) -> List[bytes]:
    return [
        sse(metadata(chatId=chat_id, object="chat")),
        sse(append_part({"type": "reasoning", "text": "Planning the "})),
        sse(extend("layout")),
        sse(append_part({"type": "text", "text": "Here is your "})),
        sse(extend("landing page.")),
        sse(append_part({"type": "code-edit", "path": "app/page.tsx", "code": "export default"})),
    ]


async def gated_source(queue: "asyncio.Queue[Optional[bytes]]") -> AsyncIterator[bytes]:
    while True:
        item = await queue.get()
        if item is None:
            return
        yield item


class FakeProvider:
    """In-process stand-in for the v0 API."""

    def __init__(self) -> None:
        self.chats: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Any]] = []
        self.stream_frames: List[bytes] = landing_page_frames()
        self.next_id = CHAT_ID
        self.fail_with: Optional[ProviderError] = None

    def add_chat(self, chat_id: str, **fields: Any) -> Dict[str, Any]:
        chat = {"id": chat_id, "object": "chat", "messages": [], **fields}
        self.chats[chat_id] = chat
        return chat

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def create(self, message, attachments=None, streaming=False):
        self.calls.append(("create", {"message": message, "attachments": attachments, "streaming": streaming}))
        self._maybe_fail()
        if streaming:
            if self.next_id not in self.chats:
                self.add_chat(self.next_id, latestVersion={"demoUrl": DEMO_URL})
            return ByteStream.from_frames(self.stream_frames)
        chat = self.add_chat(
            self.next_id,
            demo=DEMO_URL,
            messages=[
                {"id": "m1", "role": "user", "content": message},
                {"id": "m2", "role": "assistant", "content": "Done.", "experimental_content": [{"type": "text", "text": "Done."}]},
            ],
        )
        return chat

    async def send_message(self, chat_id, message, attachments=None, streaming=False):
        self.calls.append(("send_message", {"chat_id": chat_id, "message": message, "streaming": streaming}))
        self._maybe_fail()
        if streaming:
            return ByteStream.from_frames(self.stream_frames)
        chat = self.chats.setdefault(chat_id, {"id": chat_id, "messages": []})
        chat["messages"].append({"role": "user", "content": message})
        chat["messages"].append({"role": "assistant", "content": "Updated."})
        return chat

    async def get_by_id(self, chat_id):
        self.calls.append(("get_by_id", chat_id))
        self._maybe_fail()
        if chat_id not in self.chats:
            raise ProviderError(404, "Chat not found")
        return self.chats[chat_id]

    async def fork(self, chat_id, privacy="private"):
        self.calls.append(("fork", {"chat_id": chat_id, "privacy": privacy}))
        forked_id = f"{chat_id}-fork"
        return self.add_chat(forked_id, privacy=privacy)

    async def delete(self, chat_id):
        self.calls.append(("delete", chat_id))
        self.chats.pop(chat_id, None)
        return {"id": chat_id, "object": "chat", "deleted": True}

    async def update(self, chat_id, privacy):
        self.calls.append(("update", {"chat_id": chat_id, "privacy": privacy}))
        chat = self.chats.setdefault(chat_id, {"id": chat_id})
        chat["privacy"] = privacy
        return chat

    async def list(self):
        self.calls.append(("list", None))
        return list(self.chats.values())

    def called(self, name: str) -> List[Any]:
        return [args for op, args in self.calls if op == name]


def sign_up(client: TestClient, email: str, password: str = "secret123") -> None:
    res = client.post("/auth/signup", json={"email": email, "password": password})
    assert res.status_code == 200, res.text


def signed_in_client(app, email: str, password: str = "secret123") -> TestClient:
    """A TestClient carrying its own session cookie."""
    client = TestClient(app)
    sign_up(client, email, password)
    return client


class FakeChatApi:
    """ChatApi double for client-side tests; no HTTP involved."""

    def __init__(self, frames: Optional[List[bytes]] = None) -> None:
        self.frames = frames if frames is not None else landing_page_frames()
        self.records: Dict[str, Dict[str, Any]] = {
            CHAT_ID: {"id": CHAT_ID, "latestVersion": {"demoUrl": DEMO_URL}, "messages": []},
        }
        self.record_reply: Optional[Dict[str, Any]] = None
        self.stream_factory = None
        self.fail_send = None
        self.fail_get = None
        self.calls: List[Tuple[str, Any]] = []
        self.owned: List[str] = []

    def _reply(self):
        if self.fail_send is not None:
            raise self.fail_send
        if self.record_reply is not None:
            return ChatReply(record=self.record_reply)
        if self.stream_factory is not None:
            return ChatReply(stream=self.stream_factory())
        return ChatReply(stream=ByteStream.from_frames(self.frames, replayable=True))

    async def create_chat(self, message, attachments=None, streaming=True):
        self.calls.append(("create_chat", message))
        return self._reply()

    async def send_message(self, chat_id, message, attachments=None, streaming=True):
        self.calls.append(("send_message", (chat_id, message)))
        return self._reply()

    async def get_chat(self, chat_id):
        self.calls.append(("get_chat", chat_id))
        if self.fail_get is not None:
            raise self.fail_get
        if chat_id not in self.records:
            raise ApiError(404, "Chat not found or access denied.")
        return self.records[chat_id]

    async def record_ownership(self, chat_id):
        self.calls.append(("record_ownership", chat_id))
        self.owned.append(chat_id)

    def called(self, name: str) -> List[Any]:
        return [args for op, args in self.calls if op == name]
