from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response

from hearth.core.deps import get_events, get_store
from hearth.core.errors import not_found
from hearth.core.events import EventBus
from hearth.core.records import RecordStore
from hearth.modules.providers.registry import list_provider_types

from .schemas import (
    ConnectionConfigIn,
    ConnectionConfigOut,
    ConnectionConfigPatchIn,
    GenerationConfigIn,
    GenerationConfigPatchIn,
    PersonaIn,
    SettingsPatchIn,
)
from .service import (
    activate_connection_config,
    activate_generation_config,
    create_connection_config,
    create_generation_config,
    delete_connection_config,
    delete_generation_config,
    get_connection_config,
    get_generation_config,
    list_connection_configs,
    list_generation_configs,
    load_settings,
    patch_connection_config,
    patch_generation_config,
    set_persona,
    update_settings,
)

router = APIRouter(tags=["settings"])


def _activation_target(config_id: str) -> Optional[str]:
    # "null" clears the active config
    return None if config_id == "null" else config_id


# -------------------------
# settings
# -------------------------
@router.get("/settings")
async def api_get_settings(store: RecordStore = Depends(get_store)) -> Dict[str, Any]:
    return (await load_settings(store)).model_dump(mode="json")


@router.patch("/settings")
async def api_patch_settings(
    body: SettingsPatchIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    snap = await update_settings(store, events, body.model_dump(exclude_unset=True))
    return snap.model_dump(mode="json")


@router.put("/settings/persona")
async def api_set_persona(
    body: PersonaIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return (await set_persona(store, events, body.character_id)).model_dump(mode="json")


@router.get("/provider_types")
def api_provider_types() -> Dict[str, List[str]]:
    return {"items": list_provider_types()}


# -------------------------
# connection configs
# -------------------------
@router.get("/connection_configs", response_model=List[ConnectionConfigOut])
async def api_list_connection_configs(store: RecordStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return await list_connection_configs(store)


@router.post("/connection_configs", response_model=ConnectionConfigOut, status_code=201)
async def api_create_connection_config(
    body: ConnectionConfigIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await create_connection_config(store, events, body.model_dump())


@router.get("/connection_configs/{config_id}", response_model=ConnectionConfigOut)
async def api_get_connection_config(config_id: str, store: RecordStore = Depends(get_store)) -> Dict[str, Any]:
    cfg = await get_connection_config(store, config_id)
    if cfg is None:
        raise not_found("Connection config not found", config_id=config_id)
    return cfg.redacted()


@router.patch("/connection_configs/{config_id}", response_model=ConnectionConfigOut)
async def api_patch_connection_config(
    config_id: str,
    body: ConnectionConfigPatchIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await patch_connection_config(store, events, config_id, body.model_dump(exclude_unset=True))


@router.delete("/connection_configs/{config_id}", status_code=204)
async def api_delete_connection_config(
    config_id: str,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Response:
    await delete_connection_config(store, events, config_id)
    return Response(status_code=204)


@router.post("/connection_configs/{config_id}/activate")
async def api_activate_connection_config(
    config_id: str,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    snap = await activate_connection_config(store, events, _activation_target(config_id))
    return snap.model_dump(mode="json")


# -------------------------
# generation configs
# -------------------------
@router.get("/generation_configs")
async def api_list_generation_configs(store: RecordStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return await list_generation_configs(store)


@router.post("/generation_configs", status_code=201)
async def api_create_generation_config(
    body: GenerationConfigIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await create_generation_config(store, events, body.model_dump())


@router.get("/generation_configs/{config_id}")
async def api_get_generation_config(config_id: str, store: RecordStore = Depends(get_store)) -> Dict[str, Any]:
    cfg = await get_generation_config(store, config_id)
    if cfg is None:
        raise not_found("Generation config not found", config_id=config_id)
    return cfg.model_dump(mode="json")


@router.patch("/generation_configs/{config_id}")
async def api_patch_generation_config(
    config_id: str,
    body: GenerationConfigPatchIn,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    return await patch_generation_config(store, events, config_id, body.model_dump(exclude_unset=True))


@router.delete("/generation_configs/{config_id}", status_code=204)
async def api_delete_generation_config(
    config_id: str,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Response:
    await delete_generation_config(store, events, config_id)
    return Response(status_code=204)


@router.post("/generation_configs/{config_id}/activate")
async def api_activate_generation_config(
    config_id: str,
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> Dict[str, Any]:
    snap = await activate_generation_config(store, events, _activation_target(config_id))
    return snap.model_dump(mode="json")
