from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import PromptSlot


class ChatOptionsPatchIn(BaseModel):
    curate_response: Optional[bool] = None
    curation_connection_config_id: Optional[str] = None
    merge_consecutive_roles: Optional[bool] = None


class SettingsPatchIn(BaseModel):
    chat: Optional[ChatOptionsPatchIn] = None


class PersonaIn(BaseModel):
    character_id: Optional[str] = None


class ConnectionConfigIn(BaseModel):
    name: str = Field(default="New Connection", min_length=1)
    provider: str = "mock"
    url: str = ""
    api_key: str = ""
    model_id: str = ""


class ConnectionConfigPatchIn(BaseModel):
    name: Optional[str] = None
    provider: Optional[str] = None
    url: Optional[str] = None
    api_key: Optional[str] = None
    model_id: Optional[str] = None


class ConnectionConfigOut(BaseModel):
    id: str
    name: str
    provider: str
    url: str = ""
    api_key: str = ""
    model_id: str = ""


class GenerationConfigIn(BaseModel):
    name: str = Field(default="New Generation Config", min_length=1)
    system_prompt: str = ""
    prompt_slots: List[PromptSlot] = Field(default_factory=list)
    parameters: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class GenerationConfigPatchIn(BaseModel):
    name: Optional[str] = None
    system_prompt: Optional[str] = None
    prompt_slots: Optional[List[PromptSlot]] = None
    parameters: Optional[Dict[str, Dict[str, Any]]] = None
