from __future__ import annotations

"""A browsing context (one tab) and the two views it can mount.

``ComposerView`` lives at ``/`` and starts id-less conversations.
``ChatView`` lives at ``/chats/{id}``. Client-side navigation between them
goes through ``BrowsingContext.navigate`` so an in-flight reply can be
handed from the composer to the chat view through the tab's relay.
"""

import asyncio
import logging
import re
from typing import Callable, Dict, List, Optional, Union

from .api import ApiError, ChatApi
from .conversation import Conversation
from .handoff import HandoffRelay, HandoffSlot

logger = logging.getLogger("studio.client")

_CHAT_PATH = re.compile(r"^/chats/(?P<chat_id>[^/?#]+)$")


def chat_path(chat_id: str) -> str:
    return f"/chats/{chat_id}"


class ComposerView:
    path = "/"

    def __init__(
        self,
        ctx: "BrowsingContext",
        *,
        handoff_on_chat_id: bool = False,
        preflight: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self.ctx = ctx
        self.handoff_on_chat_id = handoff_on_chat_id
        self.conversation = Conversation(ctx.api, preflight=preflight)
        self.conversation.on_id_assigned(self._on_chat_id)

    async def mount(self) -> None:
        return None

    async def submit(self, text: str, attachments: Optional[List[Dict[str, str]]] = None) -> bool:
        return await self.conversation.submit(text, attachments=attachments)

    async def _on_chat_id(self, chat_id: str) -> None:
        try:
            await self.ctx.api.record_ownership(chat_id)
        except ApiError as exc:
            logger.error("Failed to create chat ownership: %s", exc.message)
        if self.handoff_on_chat_id and self.conversation.in_flight_message is not None:
            await self.ctx.navigate(chat_path(chat_id))
            return
        self.ctx.push_state(chat_path(chat_id))

    def unmount(self, target: str) -> None:
        conv = self.conversation
        if conv.chat_id is None or target != chat_path(conv.chat_id):
            return
        pending = conv.pending_user_text
        stream = conv.detach_stream()
        if stream is None or pending is None:
            return
        self.ctx.relay.publish(HandoffSlot(conv.chat_id, pending, stream))


class ChatView:
    def __init__(self, ctx: "BrowsingContext", chat_id: str) -> None:
        self.ctx = ctx
        self.chat_id = chat_id
        self.path = chat_path(chat_id)
        self.conversation = Conversation(ctx.api, chat_id)
        self.task: Optional[asyncio.Task] = None
        self.claimed = False

    async def mount(self) -> None:
        slot = self.ctx.relay.claim(self.chat_id)
        if slot is not None:
            self.claimed = True
            self.task = asyncio.create_task(
                self.conversation.continue_from_handoff(slot.pending_user_message, slot.stream)
            )
            self.task.add_done_callback(self._report_task_failure)
            return
        try:
            record = await self.ctx.api.get_chat(self.chat_id)
        except ApiError as exc:
            logger.error("Error loading chat %s: %s", self.chat_id, exc.message)
            await self.ctx.navigate("/")
            return
        self.conversation.load_record(record)

    def _report_task_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Continuing chat %s from handoff failed", self.chat_id, exc_info=exc)

    async def wait(self) -> None:
        if self.task is not None:
            await self.task

    async def submit(self, text: str, attachments: Optional[List[Dict[str, str]]] = None) -> bool:
        return await self.conversation.submit(text, attachments=attachments)

    def unmount(self, target: str) -> None:
        return None


View = Union[ComposerView, ChatView]


class BrowsingContext:
    """One tab: location history, the handoff relay and the mounted view."""

    def __init__(self, api: ChatApi, relay: Optional[HandoffRelay] = None) -> None:
        self.api = api
        self.relay = relay or HandoffRelay()
        self.history: List[str] = []
        self.view: Optional[View] = None
        self.composer_options: Dict[str, object] = {}

    @property
    def location(self) -> Optional[str]:
        return self.history[-1] if self.history else None

    def push_state(self, path: str) -> None:
        if path != self.location:
            self.history.append(path)

    def replace_state(self, path: str) -> None:
        if self.history:
            self.history[-1] = path
        else:
            self.history.append(path)

    def _view_for(self, path: str) -> View:
        if path == "/":
            return ComposerView(self, **self.composer_options)  # type: ignore[arg-type]
        match = _CHAT_PATH.match(path)
        if match:
            return ChatView(self, match.group("chat_id"))
        raise ValueError(f"No view for path {path}")

    async def navigate(self, path: str) -> View:
        """Client-side navigation: unmount, record history, mount the next view."""
        nxt = self._view_for(path)
        if self.view is not None:
            self.view.unmount(path)
        self.push_state(path)
        self.view = nxt
        await nxt.mount()
        return self.view

    async def reload(self) -> View:
        """Full reload: tab-scoped state, the relay included, starts over."""
        self.relay = HandoffRelay()
        path = self.location or "/"
        self.view = self._view_for(path)
        await self.view.mount()
        return self.view
