"""
Chat records and the resolved (runtime-only) view types.

`Chat` and `Message` are the persisted shapes. `ResolvedMessage` wraps a
Message with the `inherited` / `overridden` annotations computed during
branch resolution; it is never written back to a Chat record.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from hearth.core.ids import new_ulid, now_iso
from hearth.modules.characters.models import Character
from hearth.modules.notes.models import Note

Role = Literal["user", "assistant", "system"]

BRANCH_NAME_PREFIX = "[Branch from"
SNIPPET_MAX = 100


class Message(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(default_factory=new_ulid)
    role: Role
    content: str = ""
    timestamp: str = Field(default_factory=now_iso)
    author_character_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("author_character_id", "characterId"),
    )


class Chat(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(default_factory=new_ulid)
    name: str = "New Chat"
    messages: List[Message] = Field(default_factory=list)
    participants: List[Union[str, Character]] = Field(default_factory=list)
    notes: List[Union[str, Note]] = Field(default_factory=list)

    parent_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("parent_id", "parentId"))
    fork_message_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("fork_message_id", "branchPointMessageId"),
    )
    child_ids: List[str] = Field(default_factory=list, validation_alias=AliasChoices("child_ids", "childChatIds"))

    # inherited-message-id -> replacement content
    content_overrides: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("content_overrides", "messageOverrides"),
    )
    tombstones: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("tombstones", "deletedMessageIds"),
    )

    created_at: str = Field(default_factory=now_iso, validation_alias=AliasChoices("created_at", "createdAt"))
    last_modified_at: str = Field(
        default_factory=now_iso,
        validation_alias=AliasChoices("last_modified_at", "lastModifiedAt"),
    )

    @field_validator("content_overrides", mode="before")
    @classmethod
    def _flatten_overrides(cls, v: Any) -> Any:
        # older records stored {"content": ..., "depth": N}
        if not isinstance(v, dict):
            return v
        out: Dict[str, str] = {}
        for k, val in v.items():
            if isinstance(val, dict):
                val = val.get("content", "")
            out[str(k)] = "" if val is None else str(val)
        return out

    @property
    def is_branch(self) -> bool:
        return bool(self.parent_id)

    @property
    def is_legacy_branch(self) -> bool:
        return bool(self.parent_id) and not self.fork_message_id

    def own_message(self, message_id: str) -> Optional[Message]:
        for m in self.messages:
            if m.id == message_id:
                return m
        return None

    def add_message(self, role: Role, content: str, author_character_id: Optional[str] = None) -> Message:
        msg = Message(role=role, content=content, author_character_id=author_character_id)
        self.messages.append(msg)
        return msg

    def touch(self) -> None:
        self.last_modified_at = now_iso()

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def summary(self) -> Dict[str, Any]:
        snippet = ""
        if self.messages:
            last = self.messages[-1].content
            snippet = last.split("\n")[0][:SNIPPET_MAX]
            if last.startswith("<choice>"):
                snippet = f"Player chose: {last[len('<choice>'):-len('</choice>')]}"
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "last_modified_at": self.last_modified_at,
            "parent_id": self.parent_id,
            "child_ids": list(self.child_ids),
            "last_message_snippet": snippet,
        }


class ResolvedMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: Message
    inherited: bool = False
    overridden: bool = False

    @property
    def id(self) -> str:
        return self.message.id

    @property
    def role(self) -> str:
        return self.message.role

    @property
    def content(self) -> str:
        return self.message.content

    def with_content(self, content: str) -> "ResolvedMessage":
        return ResolvedMessage(
            message=self.message.model_copy(update={"content": content}),
            inherited=self.inherited,
            overridden=True,
        )

    def to_view(self) -> Dict[str, Any]:
        d = self.message.model_dump(mode="json")
        d["inherited"] = self.inherited
        d["overridden"] = self.overridden
        return d


@dataclass
class ChatView:
    """Overlay output: the chat record plus its flattened, resolved history."""

    chat: Chat
    messages: List[ResolvedMessage] = field(default_factory=list)

    def index_of(self, message_id: str) -> int:
        for i, m in enumerate(self.messages):
            if m.id == message_id:
                return i
        return -1

    def to_dict(self) -> Dict[str, Any]:
        d = self.chat.model_dump(mode="json")
        d["messages"] = [m.to_view() for m in self.messages]
        return d
