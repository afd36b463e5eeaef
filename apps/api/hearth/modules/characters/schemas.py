from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import Expression, GalleryImage


class PageOut(BaseModel):
    offset: int
    limit: int
    total: int
    has_more: bool


class CharacterCreateIn(BaseModel):
    # suggested id; a taken or malformed one falls back to a fresh ULID
    id: Optional[str] = None
    name: str = Field(default="New Character", min_length=1)
    description: str = ""
    avatar: Optional[str] = None
    gallery: List[GalleryImage] = Field(default_factory=list)
    expressions: List[Expression] = Field(default_factory=list)


class CharacterPatchIn(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    avatar: Optional[str] = None
    gallery: Optional[List[GalleryImage]] = None
    expressions: Optional[List[Expression]] = None


class CharacterOut(BaseModel):
    id: str
    name: str
    description: str = ""
    avatar: Optional[str] = None
    gallery: List[GalleryImage] = Field(default_factory=list)
    expressions: List[Expression] = Field(default_factory=list)


class CharactersListOut(BaseModel):
    items: List[CharacterOut]
    page: PageOut


def page_of(items: List[Dict[str, Any]], limit: int, offset: int) -> Dict[str, Any]:
    total = len(items)
    return {
        "items": items[offset : offset + limit],
        "page": {"offset": offset, "limit": limit, "total": total, "has_more": (offset + limit) < total},
    }
