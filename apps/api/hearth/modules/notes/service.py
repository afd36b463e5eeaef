from __future__ import annotations

import logging
from typing import Any, Dict, List

from hearth.core.errors import not_found
from hearth.core.events import EventBus
from hearth.core.records import KIND_CHAT, KIND_NOTE, RecordStore, load_all
from hearth.modules.chats.models import Chat
from hearth.modules.chats.service import publish_chat, save_chat

from .models import Note

_log = logging.getLogger(__name__)


async def list_notes(store: RecordStore) -> List[Dict[str, Any]]:
    items = [Note.model_validate(r) for r in await load_all(store, KIND_NOTE)]
    items.sort(key=lambda n: (n.name.lower(), n.id))
    return [n.model_dump(mode="json") for n in items]


async def get_note(store: RecordStore, note_id: str) -> Dict[str, Any]:
    raw = await store.get(KIND_NOTE, note_id)
    if raw is None:
        raise not_found("Note not found", note_id=note_id)
    return Note.model_validate(raw).model_dump(mode="json")


async def create_note(store: RecordStore, events: EventBus, data: Dict[str, Any]) -> Dict[str, Any]:
    note = Note.model_validate({k: v for k, v in data.items() if k != "id"})
    out = note.model_dump(mode="json")
    await store.put(KIND_NOTE, note.id, out)
    events.publish("note", "create", out)
    return out


async def replace_note(store: RecordStore, events: EventBus, note_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    await get_note(store, note_id)
    note = Note.model_validate({**data, "id": note_id})
    out = note.model_dump(mode="json")
    await store.put(KIND_NOTE, note_id, out)
    events.publish("note", "update", out)
    return out


async def delete_note(store: RecordStore, events: EventBus, note_id: str) -> int:
    """Delete the note and drop its references from every chat. Returns the number of chats touched."""
    if not await store.delete(KIND_NOTE, note_id):
        raise not_found("Note not found", note_id=note_id)
    events.publish("note", "delete", {"id": note_id})

    touched = 0
    for raw in await load_all(store, KIND_CHAT):
        chat = Chat.model_validate(raw)
        kept = [n for n in chat.notes if (n if isinstance(n, str) else n.id) != note_id]
        if len(kept) == len(chat.notes):
            continue
        chat.notes = kept
        chat.touch()
        await save_chat(store, chat)
        await publish_chat(store, events, chat)
        touched += 1
    if touched:
        _log.info("note %s removed from %d chat(s)", note_id, touched)
    return touched
