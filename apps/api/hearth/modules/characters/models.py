from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from hearth.core.ids import new_ulid


class GalleryImage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    src: str
    alt: str = ""


class Expression(BaseModel):
    model_config = ConfigDict(extra="ignore")

    src: str
    name: str = ""


# stored globally (character/<id>) or embedded verbatim in a chat's participants
class Character(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(default_factory=new_ulid)
    name: str = "New Character"
    description: str = ""
    avatar: Optional[str] = Field(default=None, validation_alias=AliasChoices("avatar", "avatarUrl"))
    gallery: List[GalleryImage] = Field(default_factory=list)
    expressions: List[Expression] = Field(default_factory=list)
