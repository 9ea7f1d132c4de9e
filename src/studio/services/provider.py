from __future__ import annotations

"""Client for the hosted v0 generation API.

Non-streamed calls return the decoded JSON record. Streamed calls return a
``ByteStream`` over the still-open HTTP response; closing the stream closes
the response.

Env vars:
- V0_API_KEY (required)
- V0_API_URL (default https://api.v0.dev/v1)
- V0_API_TIMEOUT seconds (default 60)
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Union

import httpx

from .streaming import ByteStream

logger = logging.getLogger("studio.provider")

DEFAULT_BASE_URL = "https://api.v0.dev/v1"
STREAM_RESPONSE_MODE = "experimental_stream"


@dataclass
class ProviderConfig:
    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 60.0

    @staticmethod
    def from_env() -> "ProviderConfig":
        try:
            timeout = float(os.getenv("V0_API_TIMEOUT", "60"))
        except ValueError:
            timeout = 60.0
        return ProviderConfig(
            api_key=os.getenv("V0_API_KEY", ""),
            base_url=(os.getenv("V0_API_URL") or DEFAULT_BASE_URL).rstrip("/"),
            timeout=timeout,
        )


class ProviderError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


Record = Dict[str, Any]
Reply = Union[Record, ByteStream]


class GenerationProvider(Protocol):
    async def create(self, message: str, attachments: Optional[List[Dict[str, str]]] = None, streaming: bool = False) -> Reply: ...

    async def send_message(self, chat_id: str, message: str, attachments: Optional[List[Dict[str, str]]] = None, streaming: bool = False) -> Reply: ...

    async def get_by_id(self, chat_id: str) -> Record: ...

    async def fork(self, chat_id: str, privacy: str = "private") -> Record: ...

    async def delete(self, chat_id: str) -> Record: ...

    async def update(self, chat_id: str, privacy: str) -> Record: ...

    async def list(self) -> List[Record]: ...


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            return err["message"]
        if isinstance(body.get("message"), str):
            return body["message"]
    return response.reason_phrase


class V0Client:
    def __init__(self, cfg: Optional[ProviderConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._cfg = cfg or ProviderConfig.from_env()
        self._client = httpx.AsyncClient(
            base_url=self._cfg.base_url,
            headers={"Authorization": f"Bearer {self._cfg.api_key}"},
            timeout=self._cfg.timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Optional[Record] = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.exception("v0 %s %s failed", method, path)
            raise ProviderError(503, str(exc)) from exc
        if response.is_error:
            message = _error_message(response)
            logger.warning("v0 %s %s -> %s: %s", method, path, response.status_code, message)
            raise ProviderError(response.status_code, message)
        if not response.content:
            return {}
        return response.json()

    async def _stream(self, path: str, json: Record) -> ByteStream:
        request = self._client.build_request("POST", path, json=json)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.exception("v0 stream POST %s failed", path)
            raise ProviderError(503, str(exc)) from exc
        if response.is_error:
            await response.aread()
            await response.aclose()
            message = _error_message(response)
            logger.warning("v0 stream POST %s -> %s: %s", path, response.status_code, message)
            raise ProviderError(response.status_code, message)
        return ByteStream(response.aiter_raw(), on_close=response.aclose)

    @staticmethod
    def _body(message: str, attachments: Optional[List[Dict[str, str]]], streaming: bool, mode_when_sync: Optional[str]) -> Record:
        body: Record = {"message": message}
        if streaming:
            body["responseMode"] = STREAM_RESPONSE_MODE
        elif mode_when_sync:
            body["responseMode"] = mode_when_sync
        if attachments:
            body["attachments"] = attachments
        return body

    async def create(self, message: str, attachments: Optional[List[Dict[str, str]]] = None, streaming: bool = False) -> Reply:
        body = self._body(message, attachments, streaming, "sync")
        if streaming:
            return await self._stream("/chats", body)
        return await self._request("POST", "/chats", json=body)

    async def send_message(self, chat_id: str, message: str, attachments: Optional[List[Dict[str, str]]] = None, streaming: bool = False) -> Reply:
        body = self._body(message, attachments, streaming, None)
        path = f"/chats/{chat_id}/messages"
        if streaming:
            return await self._stream(path, body)
        return await self._request("POST", path, json=body)

    async def get_by_id(self, chat_id: str) -> Record:
        return await self._request("GET", f"/chats/{chat_id}")

    async def fork(self, chat_id: str, privacy: str = "private") -> Record:
        return await self._request("POST", f"/chats/{chat_id}/fork", json={"privacy": privacy})

    async def delete(self, chat_id: str) -> Record:
        return await self._request("DELETE", f"/chats/{chat_id}")

    async def update(self, chat_id: str, privacy: str) -> Record:
        return await self._request("PATCH", f"/chats/{chat_id}", json={"privacy": privacy})

    async def list(self) -> List[Record]:
        payload = await self._request("GET", "/chats")
        if isinstance(payload, dict):
            data = payload.get("data") or []
            return [item for item in data if isinstance(item, dict)]
        return []


_provider: Optional[GenerationProvider] = None


def get_provider() -> GenerationProvider:
    global _provider
    if _provider is None:
        _provider = V0Client()
    return _provider
