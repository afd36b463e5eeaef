from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import AsyncIterator, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from hearth.core.deps import get_events, get_store
from hearth.core.errors import provider_failed
from hearth.core.events import EventBus, sse_frame
from hearth.core.records import RecordStore
from hearth.modules.providers.base import ProviderError

from .schemas import AbortOut, CompletionIn, CompletionOut, PromptIn, RegenerateIn
from .service import GenerationJob, GenerationService, StreamEvent

router = APIRouter(tags=["generation"])

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


@lru_cache(maxsize=1)
def get_active_generations() -> Dict[str, asyncio.Event]:
    # chat id -> cancel event of the generation in flight
    return {}


def get_generation_service(
    store: RecordStore = Depends(get_store),
    events: EventBus = Depends(get_events),
) -> GenerationService:
    return GenerationService(store, events)


def format_sse(ev: StreamEvent) -> str:
    return sse_frame(ev.type, ev.data)


def _stream(service: GenerationService, job: GenerationJob) -> StreamingResponse:
    active = get_active_generations()
    cancel = asyncio.Event()
    active[job.chat_id] = cancel

    async def body() -> AsyncIterator[str]:
        try:
            async for ev in service.run(job, cancel):
                yield format_sse(ev)
        finally:
            if active.get(job.chat_id) is cancel:
                active.pop(job.chat_id, None)

    return StreamingResponse(body(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/chats/{chat_id}/prompt")
async def api_prompt(
    chat_id: str,
    body: PromptIn,
    service: GenerationService = Depends(get_generation_service),
) -> StreamingResponse:
    job = await service.prepare_prompt(chat_id, body.message)
    return _stream(service, job)


@router.post("/chats/{chat_id}/regenerate")
async def api_regenerate(
    chat_id: str,
    body: RegenerateIn,
    service: GenerationService = Depends(get_generation_service),
) -> StreamingResponse:
    job = await service.prepare_regenerate(chat_id, body.message_id)
    return _stream(service, job)


@router.post("/chats/{chat_id}/resend")
async def api_resend(
    chat_id: str,
    service: GenerationService = Depends(get_generation_service),
) -> StreamingResponse:
    job = await service.prepare_resend(chat_id)
    return _stream(service, job)


@router.post("/chats/{chat_id}/abort", response_model=AbortOut)
async def api_abort(chat_id: str) -> AbortOut:
    cancel = get_active_generations().get(chat_id)
    if cancel is None:
        return AbortOut(aborted=False)
    cancel.set()
    return AbortOut(aborted=True)


@router.post("/completions", response_model=CompletionOut)
async def api_completions(
    body: CompletionIn,
    service: GenerationService = Depends(get_generation_service),
) -> CompletionOut:
    try:
        content = await service.complete([m.model_dump() for m in body.messages], body.parameters)
    except ProviderError as e:
        raise provider_failed(f"Completion failed: {e}") from e
    return CompletionOut(content=content)
