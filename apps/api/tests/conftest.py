from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from hearth.core.events import EventBus
from hearth.core.records import KIND_CHARACTER, KIND_CHAT, KIND_CONNECTION_CONFIG, KIND_NOTE, FileRecordStore
from hearth.modules.chats.models import Chat
from hearth.modules.chats.overlay import OverlayReconciler
from hearth.modules.chats.resolver import BranchResolver


@pytest.fixture
def store(tmp_path) -> FileRecordStore:
    return FileRecordStore(tmp_path / "storage")


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def resolver(store, events) -> BranchResolver:
    return BranchResolver(store, events)


@pytest.fixture
def overlay(resolver, events) -> OverlayReconciler:
    return OverlayReconciler(resolver, events)


def msg(mid: str, role: str, content: str) -> Dict[str, Any]:
    return {"id": mid, "role": role, "content": content, "timestamp": "2026-01-01T00:00:00Z"}


@pytest.fixture
def put_chat(store):
    async def _put(
        chat_id: str,
        messages: Optional[List[Dict[str, Any]]] = None,
        **fields: Any,
    ) -> Chat:
        chat = Chat.model_validate({"id": chat_id, "messages": messages or [], **fields})
        await store.put(KIND_CHAT, chat_id, chat.to_record())
        return chat

    return _put


@pytest.fixture
def put_raw(store):
    async def _put(kind: str, record_id: str, record: Dict[str, Any]) -> None:
        await store.put(kind, record_id, record)

    return _put


@pytest.fixture
def seed_library(store):
    async def _seed(
        characters: Optional[List[Dict[str, Any]]] = None,
        notes: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        for c in characters or []:
            await store.put(KIND_CHARACTER, c["id"], c)
        for n in notes or []:
            await store.put(KIND_NOTE, n["id"], n)

    return _seed


@pytest.fixture
def mock_connection(store):
    async def _seed(config_id: str = "mock1", **fields: Any) -> Dict[str, Any]:
        rec = {"id": config_id, "name": "Mock", "provider": "mock", **fields}
        await store.put(KIND_CONNECTION_CONFIG, config_id, rec)
        return rec

    return _seed


def ids(messages) -> List[str]:
    return [m.id for m in messages]
