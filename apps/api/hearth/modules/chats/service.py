"""
Chat operations.

Every write reads the whole record, mutates it in memory and puts it back
(last write wins). Change events always carry the resolved view, never the
raw record, so consumers don't see inheritance-unaware history.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set, Union

from hearth.core.errors import conflict, invalid_operation, not_found
from hearth.core.events import NOTIFY_BAD, EventBus
from hearth.core.ids import new_ulid
from hearth.core.records import KIND_CHARACTER, KIND_CHAT, KIND_NOTE, RecordStore, load_all
from hearth.modules.characters.models import Character
from hearth.modules.notes.models import Note

from .models import BRANCH_NAME_PREFIX, Chat, ChatView
from .overlay import OverlayReconciler, legacy_advisory_key
from .resolver import BranchResolver, load_chat

_log = logging.getLogger(__name__)

DEFAULT_PAGE = 50

UPDATABLE_FIELDS = ("name", "participants", "notes", "content_overrides", "tombstones")


def build_overlay(store: RecordStore, events: EventBus) -> OverlayReconciler:
    return OverlayReconciler(BranchResolver(store, events), events)


async def require_chat(store: RecordStore, chat_id: str) -> Chat:
    chat = await load_chat(store, chat_id)
    if chat is None:
        raise not_found("Chat not found", chat_id=chat_id)
    return chat


async def save_chat(store: RecordStore, chat: Chat) -> None:
    await store.put(KIND_CHAT, chat.id, chat.to_record())


async def resolve_view(store: RecordStore, events: EventBus, chat: Chat) -> ChatView:
    return await build_overlay(store, events).build_resolved_view(chat)


async def publish_chat(store: RecordStore, events: EventBus, chat: Chat, event_type: str = "update") -> ChatView:
    view = await resolve_view(store, events, chat)
    events.publish("chat", event_type, chat.summary())
    events.publish("chat_details", event_type, view.to_dict())
    return view


# -------------------------
# read
# -------------------------
async def list_chats(store: RecordStore) -> List[Dict[str, Any]]:
    chats = [Chat.model_validate(r) for r in await load_all(store, KIND_CHAT)]
    chats.sort(key=lambda c: c.last_modified_at, reverse=True)
    return [c.summary() for c in chats]


async def get_chat_view(store: RecordStore, events: EventBus, chat_id: str, limit: int = DEFAULT_PAGE) -> Dict[str, Any]:
    chat = await require_chat(store, chat_id)
    view = await resolve_view(store, events, chat)
    total = len(view.messages)
    out = view.to_dict()
    out["messages"] = out["messages"][-limit:] if limit > 0 else []
    out["message_count"] = total
    out["has_more_messages"] = total > limit
    return out


async def get_messages_before(
    store: RecordStore,
    events: EventBus,
    chat_id: str,
    before_id: Optional[str],
    limit: int = DEFAULT_PAGE,
) -> Dict[str, Any]:
    if not before_id:
        raise invalid_operation('A "before" message id is required')
    chat = await require_chat(store, chat_id)
    view = await resolve_view(store, events, chat)
    idx = view.index_of(before_id)
    if idx == -1:
        raise not_found('The "before" message id was not found', chat_id=chat_id, message_id=before_id)
    start = max(0, idx - limit)
    return {
        "messages": [m.to_view() for m in view.messages[start:idx]],
        "has_more_messages": start > 0,
    }


# -------------------------
# create / update
# -------------------------
async def create_chat(
    store: RecordStore,
    events: EventBus,
    *,
    name: Optional[str] = None,
    participants: Optional[List[Any]] = None,
    notes: Optional[List[Any]] = None,
    first_message: Optional[str] = None,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {"participants": participants or [], "notes": notes or []}
    if name:
        data["name"] = name
    chat = Chat.model_validate(data)
    if first_message:
        chat.add_message("assistant", first_message)
    await save_chat(store, chat)
    events.publish("chat", "create", chat.summary())
    return chat.to_record()


async def update_chat(store: RecordStore, events: EventBus, chat_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    chat = await require_chat(store, chat_id)
    incoming = {k: v for k, v in patch.items() if k in UPDATABLE_FIELDS and v is not None}

    changes: Dict[str, Any] = {}
    for key in ("name", "participants", "notes"):
        if key in incoming:
            changes[key] = incoming[key]
    if "content_overrides" in incoming:
        merged = dict(chat.content_overrides)
        merged.update(incoming["content_overrides"])
        changes["content_overrides"] = merged
    if "tombstones" in incoming:
        tomb = list(chat.tombstones)
        for mid in incoming["tombstones"]:
            if mid not in tomb:
                tomb.append(mid)
        changes["tombstones"] = tomb

    # messages / parent_id / fork_message_id / child_ids always come from the stored record
    updated = Chat.model_validate({**chat.model_dump(), **changes, "id": chat.id})
    updated.touch()
    await save_chat(store, updated)
    await publish_chat(store, events, updated)
    return updated.to_record()


async def edit_own_message(
    store: RecordStore, events: EventBus, chat_id: str, message_id: str, content: str
) -> Dict[str, Any]:
    chat = await require_chat(store, chat_id)
    msg = chat.own_message(message_id)
    if msg is None:
        raise not_found(
            "Message not found in this chat. If this is an inherited message, use content_overrides instead.",
            chat_id=chat_id,
            message_id=message_id,
        )
    msg.content = content
    chat.touch()
    await save_chat(store, chat)
    await publish_chat(store, events, chat)
    return {"id": message_id, "content": content}


async def delete_own_message(store: RecordStore, events: EventBus, chat_id: str, message_id: str) -> None:
    chat = await require_chat(store, chat_id)
    msg = chat.own_message(message_id)
    if msg is None:
        raise not_found(
            "Message not found in this chat. If this is an inherited message, use tombstones instead.",
            chat_id=chat_id,
            message_id=message_id,
        )
    chat.messages.remove(msg)
    chat.touch()
    await save_chat(store, chat)
    await publish_chat(store, events, chat)


# -------------------------
# tree operations
# -------------------------
async def fork_chat(store: RecordStore, events: EventBus, chat_id: str, message_id: Optional[str]) -> Dict[str, Any]:
    if not message_id:
        raise invalid_operation("A message id is required to branch from")
    source = await require_chat(store, chat_id)
    view = await resolve_view(store, events, source)
    if view.index_of(message_id) == -1:
        raise not_found("Branch point message not found in chat", chat_id=chat_id, message_id=message_id)

    child = Chat(
        name=f'{BRANCH_NAME_PREFIX} "{source.name}"]',
        participants=list(source.participants),
        notes=list(source.notes),
        parent_id=source.id,
        fork_message_id=message_id,
        messages=[],
    )
    if await store.get(KIND_CHAT, child.id) is not None:
        events.notify(NOTIFY_BAD, "Branch Creation Failed", f'Chat id "{child.id}" already exists. Branch creation aborted.')
        raise conflict(f'Chat id "{child.id}" already exists. Try again.', chat_id=child.id)
    await save_chat(store, child)
    _log.info("branch %s created from chat %s at message %s", child.id, source.id, message_id)

    # re-read right before the read-modify-write of child_ids; concurrent forks can still race
    parent = await require_chat(store, chat_id)
    if child.id not in parent.child_ids:
        parent.child_ids.append(child.id)
    parent.touch()
    await save_chat(store, parent)

    events.publish("chat", "create", child.summary())
    events.publish("chat", "update", parent.summary())
    return child.to_record()


async def rewind_chat(
    store: RecordStore, events: EventBus, chat_id: str, target_message_id: Optional[str]
) -> Dict[str, Any]:
    if not target_message_id:
        raise invalid_operation("target_message_id is required")
    chat = await require_chat(store, chat_id)
    view = await resolve_view(store, events, chat)
    idx = view.index_of(target_message_id)
    if idx == -1:
        raise not_found("Target message not found in chat history", chat_id=chat_id, message_id=target_message_id)

    dropped = view.messages[idx + 1 :]
    if not dropped:
        return {"rewound_count": 0}

    tomb = list(chat.tombstones)
    own_drop: Set[str] = set()
    for rm in dropped:
        if rm.inherited:
            if rm.id not in tomb:
                tomb.append(rm.id)
        else:
            own_drop.add(rm.id)
    chat.tombstones = tomb
    chat.messages = [m for m in chat.messages if m.id not in own_drop]
    chat.touch()
    await save_chat(store, chat)
    await publish_chat(store, events, chat)
    return {"rewound_count": len(dropped)}


async def _collect_descendants(store: RecordStore, chat_id: str, visited: Set[str]) -> List[str]:
    if chat_id in visited:
        return []
    visited.add(chat_id)
    out = [chat_id]
    chat = await load_chat(store, chat_id)
    if chat is None:
        return out
    for child_id in chat.child_ids:
        out.extend(await _collect_descendants(store, child_id, visited))
    return out


async def delete_chat(store: RecordStore, events: EventBus, chat_id: str) -> List[str]:
    chat = await require_chat(store, chat_id)

    if chat.is_branch:
        parent = await load_chat(store, chat.parent_id)
        if parent is not None and chat_id in parent.child_ids:
            parent.child_ids = [c for c in parent.child_ids if c != chat_id]
            parent.touch()
            await save_chat(store, parent)
            events.publish("chat", "update", parent.summary())

    # a branch cannot outlive the history it depends on
    ids = await _collect_descendants(store, chat_id, set())
    _log.info("deleting chat %s and %d descendant(s)", chat_id, len(ids) - 1)
    for cid in ids:
        await store.delete(KIND_CHAT, cid)
        events.forget(legacy_advisory_key(cid))
        events.publish("chat", "delete", {"id": cid})
    return ids


# -------------------------
# library promotion
# -------------------------
async def promote_to_library(
    store: RecordStore,
    events: EventBus,
    chat_id: str,
    resource_type: str,
    resource_id: str,
) -> Dict[str, Any]:
    if resource_type == "character":
        field_name, kind, model = "participants", KIND_CHARACTER, Character
    elif resource_type == "note":
        field_name, kind, model = "notes", KIND_NOTE, Note
    else:
        raise invalid_operation("Invalid resource_type", resource_type=resource_type, allowed=["character", "note"])

    chat = await require_chat(store, chat_id)
    items: List[Union[str, Character, Note]] = list(getattr(chat, field_name))
    for i, item in enumerate(items):
        if isinstance(item, model) and item.id == resource_id:
            break
    else:
        raise not_found(
            f"Embedded {resource_type} not found in chat",
            chat_id=chat_id,
            resource_id=resource_id,
        )

    promoted = item.model_copy(update={"id": new_ulid()})
    await store.put(kind, promoted.id, promoted.model_dump(mode="json"))
    events.publish(resource_type, "create", promoted.model_dump(mode="json"))

    items[i] = promoted.id
    setattr(chat, field_name, items)
    chat.touch()
    await save_chat(store, chat)
    await publish_chat(store, events, chat)
    return {"chat": chat.to_record(), "resource": promoted.model_dump(mode="json")}
