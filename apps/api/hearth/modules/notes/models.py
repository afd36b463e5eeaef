from __future__ import annotations

from typing import Dict

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from hearth.core.ids import new_ulid


# same reference-or-embedded duality as Character
class Note(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(default_factory=new_ulid)
    name: str = "New Note"
    describes: str = ""
    description: str = ""
    character_overrides: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("character_overrides", "characterOverrides"),
    )
