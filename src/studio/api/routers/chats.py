from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ...domain.chat_models import (
    ChatList,
    ChatSummary,
    CreateChatRequest,
    OwnershipRequest,
    OwnershipResult,
    SendMessageRequest,
    VisibilityUpdate,
)
from ...errors import StudioError
from ...infrastructure.ownership_store import OwnershipStore, get_ownership_store
from ...observability.metrics import STREAM_RELAYS
from ...security.auth import AuthUser, get_optional_user, require_user
from ...security.rate_limit import client_ip, enforce_daily_limit
from ...services.provider import GenerationProvider, ProviderError, get_provider
from ...services.streaming import ByteStream, relay_bytes

logger = logging.getLogger("studio.chats")

router = APIRouter(prefix="/chats", tags=["chats"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _provider_failure(exc: ProviderError) -> StudioError:
    if exc.status_code == 404:
        return StudioError("not_found:chat", cause=exc.message)
    if exc.status_code in (400, 422):
        return StudioError("bad_request:api", cause=exc.message)
    if exc.status_code == 429:
        return StudioError("offline:provider", cause="provider rate limit")
    return StudioError("offline:provider", cause=exc.message)


def _attachments(req: CreateChatRequest) -> Optional[List[Dict[str, str]]]:
    if not req.attachments:
        return None
    return [{"url": att.url} for att in req.attachments]


def _stream_response(stream: ByteStream, route: str) -> StreamingResponse:
    async def _count(outcome: str) -> None:
        STREAM_RELAYS.labels(route=route, outcome=outcome).inc()

    return StreamingResponse(
        relay_bytes(stream, _count),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


def _summary(chat: Dict[str, Any]) -> ChatSummary:
    messages = chat.get("messages")
    return ChatSummary(
        id=chat.get("id"),
        demo=chat.get("demo"),
        messages=[dict(m) for m in messages] if isinstance(messages, list) else None,
    )


async def _record_activity(store: OwnershipStore, user: Optional[AuthUser], request: Request, chat_id: str) -> None:
    if user is not None:
        await store.create_ownership(chat_id, user.id)
    else:
        await store.create_anonymous_log(client_ip(request), chat_id)


async def _require_owner(store: OwnershipStore, chat_id: str, user: AuthUser) -> None:
    ownership = await store.get_ownership(chat_id)
    if ownership is None or ownership.user_id != user.id:
        raise StudioError("not_found:chat")


@router.get("", response_model=ChatList)
async def list_chats(
    user: Optional[AuthUser] = Depends(get_optional_user),
    store: OwnershipStore = Depends(get_ownership_store),
    provider: GenerationProvider = Depends(get_provider),
) -> ChatList:
    if user is None:
        return ChatList(data=[])
    owned = await store.list_chat_ids(user.id)
    if not owned:
        return ChatList(data=[])
    try:
        chats = await provider.list()
    except ProviderError as exc:
        raise _provider_failure(exc) from exc
    owned_ids = set(owned)
    return ChatList(data=[chat for chat in chats if chat.get("id") in owned_ids])


@router.post("")
async def create_chat(
    req: CreateChatRequest,
    request: Request,
    user: Optional[AuthUser] = Depends(get_optional_user),
    store: OwnershipStore = Depends(get_ownership_store),
    provider: GenerationProvider = Depends(get_provider),
):
    await enforce_daily_limit(store, user, client_ip(request))
    try:
        reply = await provider.create(req.message, attachments=_attachments(req), streaming=bool(req.streaming))
    except ProviderError as exc:
        raise _provider_failure(exc) from exc

    if isinstance(reply, ByteStream):
        # ownership for streamed chats arrives later through POST /chats/ownership
        return _stream_response(reply, "create")

    chat_id = reply.get("id")
    if chat_id:
        await _record_activity(store, user, request, chat_id)
    return _summary(reply)


@router.post("/ownership", response_model=OwnershipResult)
async def create_ownership(
    req: OwnershipRequest,
    request: Request,
    user: Optional[AuthUser] = Depends(get_optional_user),
    store: OwnershipStore = Depends(get_ownership_store),
) -> OwnershipResult:
    await _record_activity(store, user, request, req.chat_id)
    return OwnershipResult(success=True)


@router.get("/{chat_id}")
async def get_chat(
    chat_id: str,
    user: Optional[AuthUser] = Depends(get_optional_user),
    store: OwnershipStore = Depends(get_ownership_store),
    provider: GenerationProvider = Depends(get_provider),
) -> Dict[str, Any]:
    if user is not None:
        await _require_owner(store, chat_id, user)
    try:
        return await provider.get_by_id(chat_id)
    except ProviderError as exc:
        raise _provider_failure(exc) from exc


@router.post("/{chat_id}/message")
async def send_message(
    chat_id: str,
    req: SendMessageRequest,
    request: Request,
    user: Optional[AuthUser] = Depends(get_optional_user),
    store: OwnershipStore = Depends(get_ownership_store),
    provider: GenerationProvider = Depends(get_provider),
):
    await enforce_daily_limit(store, user, client_ip(request))
    try:
        reply = await provider.send_message(
            chat_id,
            req.message,
            attachments=_attachments(req),
            streaming=bool(req.streaming),
        )
    except ProviderError as exc:
        raise _provider_failure(exc) from exc

    if isinstance(reply, ByteStream):
        return _stream_response(reply, "message")
    return _summary(reply)


@router.delete("/{chat_id}")
async def delete_chat(
    chat_id: str,
    user: AuthUser = Depends(require_user),
    store: OwnershipStore = Depends(get_ownership_store),
    provider: GenerationProvider = Depends(get_provider),
) -> Dict[str, Any]:
    await _require_owner(store, chat_id, user)
    try:
        result = await provider.delete(chat_id)
    except ProviderError as exc:
        raise _provider_failure(exc) from exc
    await store.delete_ownership(chat_id)
    logger.info("Deleted chat %s for user %s", chat_id, user.id)
    return result


@router.post("/{chat_id}/fork")
async def fork_chat(
    chat_id: str,
    user: Optional[AuthUser] = Depends(get_optional_user),
    store: OwnershipStore = Depends(get_ownership_store),
    provider: GenerationProvider = Depends(get_provider),
) -> Dict[str, Any]:
    try:
        forked = await provider.fork(chat_id, privacy="private")
    except ProviderError as exc:
        raise _provider_failure(exc) from exc
    forked_id = forked.get("id")
    if user is not None and forked_id:
        await store.create_ownership(forked_id, user.id)
    return forked


@router.patch("/{chat_id}/visibility")
async def update_visibility(
    chat_id: str,
    req: VisibilityUpdate,
    user: AuthUser = Depends(require_user),
    store: OwnershipStore = Depends(get_ownership_store),
    provider: GenerationProvider = Depends(get_provider),
) -> Dict[str, Any]:
    await _require_owner(store, chat_id, user)
    try:
        return await provider.update(chat_id, privacy=req.privacy)
    except ProviderError as exc:
        raise _provider_failure(exc) from exc
