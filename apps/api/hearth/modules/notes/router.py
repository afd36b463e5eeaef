from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, Response

from hearth.core.deps import get_events, get_store
from hearth.core.events import EventBus
from hearth.core.records import RecordStore
from hearth.modules.characters.schemas import page_of

from .schemas import NoteIn, NoteOut, NotesListOut
from .service import create_note, delete_note, get_note, list_notes, replace_note

router = APIRouter(tags=["notes"])


@router.get("/notes", response_model=NotesListOut)
async def api_list_notes(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    store: RecordStore = Depends(get_store),
) -> Dict[str, Any]:
    return page_of(await list_notes(store), limit, offset)


@router.post("/notes", response_model=NoteOut, status_code=201)
async def api_create_note(
    body: NoteIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await create_note(store, events, body.model_dump())


@router.get("/notes/{note_id}", response_model=NoteOut)
async def api_get_note(note_id: str, store: RecordStore = Depends(get_store)) -> Dict[str, Any]:
    return await get_note(store, note_id)


@router.put("/notes/{note_id}", response_model=NoteOut)
async def api_replace_note(
    note_id: str,
    body: NoteIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await replace_note(store, events, note_id, body.model_dump())


@router.delete("/notes/{note_id}", status_code=204)
async def api_delete_note(
    note_id: str,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Response:
    await delete_note(store, events, note_id)
    return Response(status_code=204)
