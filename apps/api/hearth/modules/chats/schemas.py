from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class ChatCreateIn(BaseModel):
    name: Optional[str] = None
    participants: List[Union[str, Dict[str, Any]]] = Field(default_factory=list)
    notes: List[Union[str, Dict[str, Any]]] = Field(default_factory=list)
    first_message: Optional[str] = None


class ChatPatchIn(BaseModel):
    """Client-controlled fields only; history and tree links are server-owned."""

    name: Optional[str] = None
    participants: Optional[List[Union[str, Dict[str, Any]]]] = None
    notes: Optional[List[Union[str, Dict[str, Any]]]] = None
    content_overrides: Optional[Dict[str, str]] = None
    tombstones: Optional[List[str]] = None


class ChatSummaryOut(BaseModel):
    id: str
    name: str
    created_at: str
    last_modified_at: str
    parent_id: Optional[str] = None
    child_ids: List[str] = Field(default_factory=list)
    last_message_snippet: str = ""


class MessageEditIn(BaseModel):
    content: str


class MessageEditOut(BaseModel):
    id: str
    content: str


class ForkIn(BaseModel):
    message_id: Optional[str] = None


class RewindIn(BaseModel):
    target_message_id: Optional[str] = None


class RewindOut(BaseModel):
    rewound_count: int


class PromoteIn(BaseModel):
    resource_type: str = Field(min_length=1)
    resource_id: str = Field(min_length=1)


class MessagesPageOut(BaseModel):
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    has_more_messages: bool = False
