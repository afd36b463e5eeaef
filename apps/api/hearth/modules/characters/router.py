from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Path, Query, Response

from hearth.core.deps import get_events, get_store
from hearth.core.events import EventBus
from hearth.core.records import RecordStore

from .schemas import CharacterCreateIn, CharacterOut, CharacterPatchIn, CharactersListOut, page_of
from .service import (
    create_character,
    delete_character,
    duplicate_character,
    get_character,
    list_characters,
    patch_character,
)

router = APIRouter(tags=["characters"])


def _clamp_limit(raw: int | None) -> int:
    if raw is None:
        return 50
    if raw < 1:
        return 1
    if raw > 200:
        return 200
    return raw


@router.get("/characters", response_model=CharactersListOut)
async def api_list_characters(
    limit: int | None = Query(None),
    offset: int = Query(0, ge=0),
    store: RecordStore = Depends(get_store),
) -> Dict[str, Any]:
    return page_of(await list_characters(store), _clamp_limit(limit), offset)


@router.post("/characters", response_model=CharacterOut, status_code=201)
async def api_create_character(
    body: CharacterCreateIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await create_character(store, events, body.model_dump())


@router.get("/characters/{character_id}", response_model=CharacterOut)
async def api_get_character(character_id: str = Path(...), store: RecordStore = Depends(get_store)) -> Dict[str, Any]:
    return await get_character(store, character_id)


@router.patch("/characters/{character_id}", response_model=CharacterOut)
async def api_patch_character(
    character_id: str,
    body: CharacterPatchIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await patch_character(store, events, character_id, body.model_dump(exclude_unset=True))


@router.post("/characters/{character_id}/duplicate", response_model=CharacterOut, status_code=201)
async def api_duplicate_character(
    character_id: str,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await duplicate_character(store, events, character_id)


@router.delete("/characters/{character_id}", status_code=204)
async def api_delete_character(
    character_id: str,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Response:
    await delete_character(store, events, character_id)
    return Response(status_code=204)
