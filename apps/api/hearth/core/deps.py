from __future__ import annotations

from functools import lru_cache

from hearth.core.events import EventBus
from hearth.core.records import RecordStore, get_record_store


def get_store() -> RecordStore:
    return get_record_store()


@lru_cache(maxsize=1)
def get_events() -> EventBus:
    return EventBus()
