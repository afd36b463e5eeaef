from __future__ import annotations

from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from hearth.core.deps import get_events
from hearth.core.events import Event, EventBus, sse_frame

router = APIRouter(tags=["events"])


def encode_event(ev: Event) -> str:
    return sse_frame(ev.type, ev.data)


@router.get("/events")
async def api_events(request: Request, events: EventBus = Depends(get_events)) -> StreamingResponse:
    async def body() -> AsyncIterator[str]:
        yield ": connected\n\n"
        async for ev in events.subscribe():
            if await request.is_disconnected():
                break
            yield encode_event(ev)

    return StreamingResponse(
        body(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get("/notifications")
def api_notifications(level: str | None = None, events: EventBus = Depends(get_events)) -> dict:
    return {"items": events.notifications(level)}
