"""
Change-notification sink.

Two event types leave the core:
- resourceChange: {resource_type, event_type, data}
- notification:   {type, header, message}  (info|warn|bad)

Transport (SSE) lives in hearth.modules.events; this module only fans out.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Deque, Dict, Set

from hearth.core.ids import now_iso

_log = logging.getLogger(__name__)

EVENT_RESOURCE_CHANGE = "resourceChange"
EVENT_NOTIFICATION = "notification"

NOTIFY_INFO = "info"
NOTIFY_WARN = "warn"
NOTIFY_BAD = "bad"

_LOG_LEVELS = {
    NOTIFY_INFO: logging.INFO,
    NOTIFY_WARN: logging.WARNING,
    NOTIFY_BAD: logging.ERROR,
}


@dataclass(frozen=True)
class Event:
    type: str
    data: Dict[str, Any]
    ts: str = field(default_factory=now_iso)


class EventBus:
    def __init__(self, queue_size: int = 256, keep_recent: int = 200, keep_advised: int = 1024) -> None:
        self._queue_size = queue_size
        self._subscribers: Set[asyncio.Queue] = set()
        # insertion-ordered so the oldest key is evicted first
        self._advised: "OrderedDict[str, None]" = OrderedDict()
        self._keep_advised = keep_advised
        self.recent: Deque[Event] = deque(maxlen=keep_recent)

    def emit(self, event_type: str, data: Dict[str, Any]) -> Event:
        ev = Event(type=event_type, data=data)
        self.recent.append(ev)
        for q in list(self._subscribers):
            if q.full():
                # slow consumer: drop its oldest event
                try:
                    q.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            q.put_nowait(ev)
        return ev

    def publish(self, resource_type: str, event_type: str, data: Dict[str, Any]) -> Event:
        return self.emit(
            EVENT_RESOURCE_CHANGE,
            {"resource_type": resource_type, "event_type": event_type, "data": data},
        )

    def notify(self, level: str, header: str, message: str) -> Event:
        _log.log(_LOG_LEVELS.get(level, logging.INFO), "%s: %s", header, message)
        return self.emit(EVENT_NOTIFICATION, {"type": level, "header": header, "message": message})

    def notify_once(self, key: str, level: str, header: str, message: str) -> bool:
        if key in self._advised:
            return False
        self._advised[key] = None
        while len(self._advised) > self._keep_advised:
            self._advised.popitem(last=False)
        self.notify(level, header, message)
        return True

    def forget(self, key: str) -> None:
        self._advised.pop(key, None)

    def notifications(self, level: str | None = None) -> list[Dict[str, Any]]:
        out = [e.data for e in self.recent if e.type == EVENT_NOTIFICATION]
        if level is not None:
            out = [d for d in out if d.get("type") == level]
        return out

    async def subscribe(self) -> AsyncIterator[Event]:
        q: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(q)
        try:
            while True:
                yield await q.get()
        finally:
            self._subscribers.discard(q)


def sse_frame(event_type: str, data: Dict[str, Any]) -> str:
    return f"event: {event_type}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"
