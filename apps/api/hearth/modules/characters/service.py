from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from hearth.core.errors import not_found
from hearth.core.events import EventBus
from hearth.core.ids import is_valid_record_id, new_ulid
from hearth.core.records import KIND_CHARACTER, RecordStore, load_all
from hearth.modules.settings.service import load_settings, save_settings

from .models import Character

_log = logging.getLogger(__name__)

PATCHABLE_FIELDS = ("name", "description", "avatar", "gallery", "expressions")


async def list_characters(store: RecordStore) -> List[Dict[str, Any]]:
    items = [Character.model_validate(r) for r in await load_all(store, KIND_CHARACTER)]
    items.sort(key=lambda c: (c.name.lower(), c.id))
    return [c.model_dump(mode="json") for c in items]


async def get_character(store: RecordStore, character_id: str) -> Dict[str, Any]:
    raw = await store.get(KIND_CHARACTER, character_id)
    if raw is None:
        raise not_found("Character not found", character_id=character_id)
    return Character.model_validate(raw).model_dump(mode="json")


async def _pick_id(store: RecordStore, suggested: Optional[str]) -> str:
    if suggested and is_valid_record_id(suggested) and await store.get(KIND_CHARACTER, suggested) is None:
        return suggested
    if suggested:
        _log.info("suggested character id %r unavailable, assigning a fresh one", suggested)
    return new_ulid()


async def create_character(store: RecordStore, events: EventBus, data: Dict[str, Any]) -> Dict[str, Any]:
    cid = await _pick_id(store, data.get("id"))
    char = Character.model_validate({**{k: v for k, v in data.items() if k in PATCHABLE_FIELDS}, "id": cid})
    out = char.model_dump(mode="json")
    await store.put(KIND_CHARACTER, char.id, out)
    events.publish("character", "create", out)
    return out


async def patch_character(
    store: RecordStore, events: EventBus, character_id: str, patch: Dict[str, Any]
) -> Dict[str, Any]:
    current = await get_character(store, character_id)
    changes = {k: v for k, v in patch.items() if k in PATCHABLE_FIELDS}
    char = Character.model_validate({**current, **changes, "id": character_id})
    out = char.model_dump(mode="json")
    await store.put(KIND_CHARACTER, character_id, out)
    events.publish("character", "update", out)
    return out


async def duplicate_character(store: RecordStore, events: EventBus, character_id: str) -> Dict[str, Any]:
    current = await get_character(store, character_id)
    copy = Character.model_validate({**current, "id": new_ulid(), "name": f"{current['name']} (Copy)"})
    out = copy.model_dump(mode="json")
    await store.put(KIND_CHARACTER, copy.id, out)
    events.publish("character", "create", out)
    return out


async def delete_character(store: RecordStore, events: EventBus, character_id: str) -> None:
    if not await store.delete(KIND_CHARACTER, character_id):
        raise not_found("Character not found", character_id=character_id)
    events.publish("character", "delete", {"id": character_id})

    snap = await load_settings(store)
    if snap.user_persona_character_id == character_id:
        await save_settings(store, events, snap.replace(user_persona_character_id=None))
