from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from hearth.core.ids import new_ulid

SlotKind = Literal["template", "history"]

SETTINGS_RECORD_ID = "global"


class ChatOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    curate_response: bool = Field(default=False, validation_alias=AliasChoices("curate_response", "curateResponse"))
    curation_connection_config_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("curation_connection_config_id", "curationConnectionConfigId"),
    )
    merge_consecutive_roles: bool = Field(
        default=False,
        validation_alias=AliasChoices("merge_consecutive_roles", "mergeConsecutiveRoles"),
    )


class SettingsSnapshot(BaseModel):
    """
    Immutable view of settings/global, taken once per operation.

    Handlers never share a mutable settings object; anything that needs a
    newer value loads a new snapshot.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    active_connection_config_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("active_connection_config_id", "activeConnectionConfigId"),
    )
    active_generation_config_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("active_generation_config_id", "activeGenerationConfigId"),
    )
    user_persona_character_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("user_persona_character_id", "userPersonaCharacterId"),
    )
    chat: ChatOptions = Field(default_factory=ChatOptions)

    def replace(self, **changes: Any) -> "SettingsSnapshot":
        return self.model_copy(update=changes)


class ConnectionConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(default_factory=new_ulid)
    name: str = "New Connection"
    # v1 | gemini | mock, checked against the provider registry on write
    provider: str = "mock"
    url: str = ""
    api_key: str = Field(default="", validation_alias=AliasChoices("api_key", "apiKey"))
    model_id: str = Field(default="", validation_alias=AliasChoices("model_id", "modelId"))

    def redacted(self) -> Dict[str, Any]:
        d = self.model_dump(mode="json")
        if d.get("api_key"):
            d["api_key"] = "<redacted>"
        return d


class PromptSlot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Literal["user", "assistant", "system"] = "system"
    kind: SlotKind = "template"
    template: str = ""


class GenerationConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(default_factory=new_ulid)
    name: str = "New Generation Config"
    system_prompt: str = Field(default="", validation_alias=AliasChoices("system_prompt", "systemPrompt"))
    prompt_slots: List[PromptSlot] = Field(
        default_factory=list,
        validation_alias=AliasChoices("prompt_slots", "promptSlots"),
    )
    # provider name -> backend parameters
    parameters: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    def parameters_for(self, provider: str) -> Dict[str, Any]:
        return dict(self.parameters.get(provider) or {})
