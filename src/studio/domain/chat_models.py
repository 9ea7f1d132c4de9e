from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)


class AuthResult(BaseModel):
    type: Literal["success"] = "success"
    message: str


class Attachment(BaseModel):
    url: str


class CreateChatRequest(BaseModel):
    message: str = Field(min_length=1)
    streaming: Optional[bool] = None
    attachments: Optional[List[Attachment]] = None


class SendMessageRequest(CreateChatRequest):
    pass


Privacy = Literal["public", "private", "team", "team-edit", "unlisted"]


class VisibilityUpdate(BaseModel):
    privacy: Privacy


class OwnershipRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chat_id: str = Field(alias="chatId", min_length=1)


class OwnershipResult(BaseModel):
    success: bool = True


class ChatSummary(BaseModel):
    """Shape returned for a non-streamed create/send."""

    id: Optional[str] = None
    demo: Optional[str] = None
    messages: Optional[List[Dict[str, Any]]] = None


class ChatList(BaseModel):
    data: List[Dict[str, Any]]


class OwnershipRecord(BaseModel):
    v0_chat_id: str
    user_id: str
    created_at: datetime


class AnonymousChatLog(BaseModel):
    ip_address: str
    v0_chat_id: str
    created_at: datetime
