"""
Settings, connection configs and generation configs.

settings/global is read into a frozen SettingsSnapshot at the start of each
operation and passed down explicitly. Writers build a new snapshot and store
it; nothing holds a process-wide mutable copy.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from hearth.core.errors import invalid_operation, not_found
from hearth.core.events import EventBus
from hearth.core.records import (
    KIND_CHARACTER,
    KIND_CONNECTION_CONFIG,
    KIND_GENERATION_CONFIG,
    KIND_SETTINGS,
    RecordStore,
    load_all,
)
from hearth.modules.providers.registry import PROVIDERS

from .models import SETTINGS_RECORD_ID, ChatOptions, ConnectionConfig, GenerationConfig, SettingsSnapshot

_log = logging.getLogger(__name__)

CONNECTION_FIELDS = ("name", "provider", "url", "api_key", "model_id")
GENERATION_FIELDS = ("name", "system_prompt", "prompt_slots", "parameters")


# -------------------------
# settings snapshot
# -------------------------
async def load_settings(store: RecordStore) -> SettingsSnapshot:
    raw = await store.get(KIND_SETTINGS, SETTINGS_RECORD_ID) or {}
    chat_raw = raw.get("chat")
    data = dict(raw)
    # deep merge: missing chat keys keep their defaults
    data["chat"] = ChatOptions.model_validate(chat_raw if isinstance(chat_raw, dict) else {})
    return SettingsSnapshot.model_validate(data)


async def save_settings(store: RecordStore, events: EventBus, snapshot: SettingsSnapshot) -> SettingsSnapshot:
    await store.put(KIND_SETTINGS, SETTINGS_RECORD_ID, snapshot.model_dump(mode="json"))
    events.publish("setting", "update", snapshot.model_dump(mode="json"))
    return snapshot


async def update_settings(store: RecordStore, events: EventBus, patch: Dict[str, Any]) -> SettingsSnapshot:
    current = await load_settings(store)
    changes: Dict[str, Any] = {}
    for key in ("active_connection_config_id", "active_generation_config_id", "user_persona_character_id"):
        if key in patch:
            changes[key] = patch[key]
    if isinstance(patch.get("chat"), dict):
        merged = current.chat.model_dump()
        merged.update({k: v for k, v in patch["chat"].items() if k in merged})
        changes["chat"] = ChatOptions.model_validate(merged)
    return await save_settings(store, events, current.replace(**changes))


async def set_persona(store: RecordStore, events: EventBus, character_id: Optional[str]) -> SettingsSnapshot:
    if character_id is not None and await store.get(KIND_CHARACTER, character_id) is None:
        raise not_found("Character not found", character_id=character_id)
    current = await load_settings(store)
    return await save_settings(store, events, current.replace(user_persona_character_id=character_id))


# -------------------------
# connection configs
# -------------------------
def _check_provider(provider: str) -> None:
    if provider not in PROVIDERS:
        raise invalid_operation(f"Unsupported provider type: {provider}", provider=provider, allowed=sorted(PROVIDERS))


async def get_connection_config(store: RecordStore, config_id: str) -> Optional[ConnectionConfig]:
    raw = await store.get(KIND_CONNECTION_CONFIG, config_id)
    return ConnectionConfig.model_validate(raw) if raw is not None else None


async def list_connection_configs(store: RecordStore) -> List[Dict[str, Any]]:
    items = [ConnectionConfig.model_validate(r) for r in await load_all(store, KIND_CONNECTION_CONFIG)]
    return [c.redacted() for c in items]


async def create_connection_config(store: RecordStore, events: EventBus, data: Dict[str, Any]) -> Dict[str, Any]:
    cfg = ConnectionConfig.model_validate({k: v for k, v in data.items() if k in CONNECTION_FIELDS})
    _check_provider(cfg.provider)
    await store.put(KIND_CONNECTION_CONFIG, cfg.id, cfg.model_dump(mode="json"))
    events.publish("connection_config", "create", cfg.redacted())
    return cfg.redacted()


async def patch_connection_config(
    store: RecordStore, events: EventBus, config_id: str, patch: Dict[str, Any]
) -> Dict[str, Any]:
    cfg = await get_connection_config(store, config_id)
    if cfg is None:
        raise not_found("Connection config not found", config_id=config_id)
    changes = {k: v for k, v in patch.items() if k in CONNECTION_FIELDS and v is not None}
    # the redacted placeholder coming back from a client means "unchanged"
    if changes.get("api_key") == "<redacted>":
        changes.pop("api_key")
    updated = ConnectionConfig.model_validate({**cfg.model_dump(), **changes, "id": cfg.id})
    _check_provider(updated.provider)
    await store.put(KIND_CONNECTION_CONFIG, updated.id, updated.model_dump(mode="json"))
    events.publish("connection_config", "update", updated.redacted())
    return updated.redacted()


async def delete_connection_config(store: RecordStore, events: EventBus, config_id: str) -> None:
    if not await store.delete(KIND_CONNECTION_CONFIG, config_id):
        raise not_found("Connection config not found", config_id=config_id)
    events.publish("connection_config", "delete", {"id": config_id})

    current = await load_settings(store)
    changes: Dict[str, Any] = {}
    if current.active_connection_config_id == config_id:
        changes["active_connection_config_id"] = None
    if current.chat.curation_connection_config_id == config_id:
        changes["chat"] = current.chat.model_copy(update={"curation_connection_config_id": None})
    if changes:
        await save_settings(store, events, current.replace(**changes))


async def activate_connection_config(
    store: RecordStore, events: EventBus, config_id: Optional[str]
) -> SettingsSnapshot:
    if config_id is not None and await get_connection_config(store, config_id) is None:
        raise not_found("Connection config not found", config_id=config_id)
    current = await load_settings(store)
    return await save_settings(store, events, current.replace(active_connection_config_id=config_id))


async def resolve_active_connection(store: RecordStore, snapshot: SettingsSnapshot) -> ConnectionConfig:
    if not snapshot.active_connection_config_id:
        raise invalid_operation("No active connection configuration set")
    cfg = await get_connection_config(store, snapshot.active_connection_config_id)
    if cfg is None:
        raise not_found(
            "Active connection config not found",
            config_id=snapshot.active_connection_config_id,
        )
    return cfg


# -------------------------
# generation configs
# -------------------------
async def get_generation_config(store: RecordStore, config_id: str) -> Optional[GenerationConfig]:
    raw = await store.get(KIND_GENERATION_CONFIG, config_id)
    return GenerationConfig.model_validate(raw) if raw is not None else None


async def list_generation_configs(store: RecordStore) -> List[Dict[str, Any]]:
    items = [GenerationConfig.model_validate(r) for r in await load_all(store, KIND_GENERATION_CONFIG)]
    return [g.model_dump(mode="json") for g in items]


async def create_generation_config(store: RecordStore, events: EventBus, data: Dict[str, Any]) -> Dict[str, Any]:
    cfg = GenerationConfig.model_validate({k: v for k, v in data.items() if k in GENERATION_FIELDS})
    out = cfg.model_dump(mode="json")
    await store.put(KIND_GENERATION_CONFIG, cfg.id, out)
    events.publish("generation_config", "create", out)
    return out


async def patch_generation_config(
    store: RecordStore, events: EventBus, config_id: str, patch: Dict[str, Any]
) -> Dict[str, Any]:
    cfg = await get_generation_config(store, config_id)
    if cfg is None:
        raise not_found("Generation config not found", config_id=config_id)
    changes = {k: v for k, v in patch.items() if k in GENERATION_FIELDS and v is not None}
    updated = GenerationConfig.model_validate({**cfg.model_dump(), **changes, "id": cfg.id})
    out = updated.model_dump(mode="json")
    await store.put(KIND_GENERATION_CONFIG, updated.id, out)
    events.publish("generation_config", "update", out)
    return out


async def delete_generation_config(store: RecordStore, events: EventBus, config_id: str) -> None:
    if not await store.delete(KIND_GENERATION_CONFIG, config_id):
        raise not_found("Generation config not found", config_id=config_id)
    events.publish("generation_config", "delete", {"id": config_id})
    current = await load_settings(store)
    if current.active_generation_config_id == config_id:
        await save_settings(store, events, current.replace(active_generation_config_id=None))


async def activate_generation_config(
    store: RecordStore, events: EventBus, config_id: Optional[str]
) -> SettingsSnapshot:
    if config_id is not None and await get_generation_config(store, config_id) is None:
        raise not_found("Generation config not found", config_id=config_id)
    current = await load_settings(store)
    return await save_settings(store, events, current.replace(active_generation_config_id=config_id))


async def resolve_active_generation(store: RecordStore, snapshot: SettingsSnapshot) -> Optional[GenerationConfig]:
    if not snapshot.active_generation_config_id:
        return None
    cfg = await get_generation_config(store, snapshot.active_generation_config_id)
    if cfg is None:
        _log.warning("active generation config %s not found, assembling without one", snapshot.active_generation_config_id)
    return cfg
