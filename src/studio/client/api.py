from __future__ import annotations

"""Async client for the studio HTTP surface, used by the views."""

from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from ..errors import RATE_LIMIT_MESSAGE, SEND_FAILED_MESSAGE, message_for
from ..services.streaming import ByteStream

logger = logging.getLogger("studio.client")


class ApiError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class ChatReply:
    record: Optional[Dict[str, Any]] = None
    stream: Optional[ByteStream] = None


class ChatApi(Protocol):
    async def create_chat(self, message: str, attachments: Optional[List[Dict[str, str]]] = None, streaming: bool = True) -> ChatReply: ...

    async def send_message(self, chat_id: str, message: str, attachments: Optional[List[Dict[str, str]]] = None, streaming: bool = True) -> ChatReply: ...

    async def get_chat(self, chat_id: str) -> Dict[str, Any]: ...

    async def record_ownership(self, chat_id: str) -> None: ...


def error_message(status_code: int, body: Any) -> str:
    """User-facing text for a failed backend call."""
    if isinstance(body, dict) and isinstance(body.get("message"), str) and body["message"]:
        return body["message"]
    if status_code == 429:
        return RATE_LIMIT_MESSAGE
    return SEND_FAILED_MESSAGE


def demo_url_of(record: Dict[str, Any]) -> Optional[str]:
    latest = record.get("latestVersion")
    if isinstance(latest, dict) and latest.get("demoUrl"):
        return latest["demoUrl"]
    demo = record.get("demo")
    return demo if isinstance(demo, str) and demo else None


class BackendClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000/api",
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _raise_for(self, response: httpx.Response) -> None:
        await response.aread()
        await response.aclose()
        try:
            body = response.json()
        except ValueError:
            body = None
        raise ApiError(response.status_code, error_message(response.status_code, body))

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("%s %s returned a body that is not JSON", response.request.method, response.request.url.path)
            raise ApiError(response.status_code, SEND_FAILED_MESSAGE) from exc

    async def _json(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ApiError(503, message_for("offline:chat")) from exc
        if response.is_error:
            await self._raise_for(response)
        return self._decode(response)

    async def _reply(self, path: str, body: Dict[str, Any]) -> ChatReply:
        request = self._client.build_request("POST", path, json=body)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.warning("POST %s failed: %s", path, exc)
            raise ApiError(503, message_for("offline:chat")) from exc
        if response.is_error:
            await self._raise_for(response)
        if response.headers.get("content-type", "").startswith("text/event-stream"):
            return ChatReply(stream=ByteStream(response.aiter_raw(), on_close=response.aclose, replayable=True))
        await response.aread()
        await response.aclose()
        record = self._decode(response)
        if not isinstance(record, dict):
            raise ApiError(response.status_code, SEND_FAILED_MESSAGE)
        return ChatReply(record=record)

    @staticmethod
    def _body(message: str, attachments: Optional[List[Dict[str, str]]], streaming: bool) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": message, "streaming": streaming}
        if attachments:
            body["attachments"] = attachments
        return body

    async def create_chat(self, message: str, attachments: Optional[List[Dict[str, str]]] = None, streaming: bool = True) -> ChatReply:
        return await self._reply("/chats", self._body(message, attachments, streaming))

    async def send_message(self, chat_id: str, message: str, attachments: Optional[List[Dict[str, str]]] = None, streaming: bool = True) -> ChatReply:
        return await self._reply(f"/chats/{chat_id}/message", self._body(message, attachments, streaming))

    async def get_chat(self, chat_id: str) -> Dict[str, Any]:
        record = await self._json("GET", f"/chats/{chat_id}")
        if not isinstance(record, dict):
            raise ApiError(200, SEND_FAILED_MESSAGE)
        return record

    async def record_ownership(self, chat_id: str) -> None:
        await self._json("POST", "/chats/ownership", json={"chatId": chat_id})

    async def sign_up(self, email: str, password: str) -> Dict[str, Any]:
        return await self._json("POST", "/auth/signup", json={"email": email, "password": password})

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        return await self._json("POST", "/auth/signin", json={"email": email, "password": password})
