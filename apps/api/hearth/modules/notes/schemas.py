from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field

from hearth.modules.characters.schemas import PageOut


class NoteIn(BaseModel):
    name: str = Field(default="New Note", min_length=1)
    describes: str = ""
    description: str = ""
    character_overrides: Dict[str, str] = Field(default_factory=dict)


class NoteOut(NoteIn):
    id: str


class NotesListOut(BaseModel):
    items: List[NoteOut]
    page: PageOut
