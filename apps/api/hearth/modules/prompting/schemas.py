from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class PromptIn(BaseModel):
    message: str = Field(min_length=1)


class RegenerateIn(BaseModel):
    message_id: str = Field(min_length=1)


class CompletionMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class CompletionIn(BaseModel):
    messages: List[CompletionMessage] = Field(min_length=1)
    parameters: Optional[Dict[str, Any]] = None


class CompletionOut(BaseModel):
    content: str


class AbortOut(BaseModel):
    aborted: bool
