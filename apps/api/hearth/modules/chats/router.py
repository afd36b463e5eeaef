from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response

from hearth.core.deps import get_events, get_store
from hearth.core.events import EventBus
from hearth.core.records import RecordStore

from .schemas import (
    ChatCreateIn,
    ChatPatchIn,
    ChatSummaryOut,
    ForkIn,
    MessageEditIn,
    MessageEditOut,
    MessagesPageOut,
    PromoteIn,
    RewindIn,
    RewindOut,
)
from .service import (
    create_chat,
    delete_chat,
    delete_own_message,
    edit_own_message,
    fork_chat,
    get_chat_view,
    get_messages_before,
    list_chats,
    promote_to_library,
    rewind_chat,
    update_chat,
)

router = APIRouter(tags=["chats"])


@router.get("/chats", response_model=List[ChatSummaryOut])
async def api_list_chats(store: RecordStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return await list_chats(store)


@router.post("/chats", status_code=201)
async def api_create_chat(
    body: ChatCreateIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await create_chat(
        store,
        events,
        name=body.name,
        participants=body.participants,
        notes=body.notes,
        first_message=body.first_message,
    )


@router.get("/chats/{chat_id}")
async def api_get_chat(
    chat_id: str,
    limit: int = Query(50, ge=1, le=1000),
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await get_chat_view(store, events, chat_id, limit=limit)


@router.put("/chats/{chat_id}")
async def api_update_chat(
    chat_id: str,
    body: ChatPatchIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await update_chat(store, events, chat_id, body.model_dump(exclude_unset=True))


@router.delete("/chats/{chat_id}", status_code=204)
async def api_delete_chat(
    chat_id: str,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Response:
    await delete_chat(store, events, chat_id)
    return Response(status_code=204)


@router.get("/chats/{chat_id}/messages", response_model=MessagesPageOut)
async def api_messages_before(
    chat_id: str,
    before: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=1000),
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await get_messages_before(store, events, chat_id, before, limit=limit)


@router.patch("/chats/{chat_id}/messages/{message_id}", response_model=MessageEditOut)
async def api_edit_message(
    chat_id: str,
    message_id: str,
    body: MessageEditIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await edit_own_message(store, events, chat_id, message_id, body.content)


@router.delete("/chats/{chat_id}/messages/{message_id}", status_code=204)
async def api_delete_message(
    chat_id: str,
    message_id: str,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Response:
    await delete_own_message(store, events, chat_id, message_id)
    return Response(status_code=204)


@router.post("/chats/{chat_id}/fork", status_code=201)
async def api_fork_chat(
    chat_id: str,
    body: ForkIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await fork_chat(store, events, chat_id, body.message_id)


@router.post("/chats/{chat_id}/rewind", response_model=RewindOut)
async def api_rewind_chat(
    chat_id: str,
    body: RewindIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await rewind_chat(store, events, chat_id, body.target_message_id)


@router.post("/chats/{chat_id}/promote")
async def api_promote(
    chat_id: str,
    body: PromoteIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await promote_to_library(store, events, chat_id, body.resource_type, body.resource_id)
