from __future__ import annotations

import pytest

from hearth.core.db import build_engine, init_db
from hearth.core.ids import is_valid_record_id, new_ulid
from hearth.core.records import KIND_CHAT, KIND_NOTE, FileRecordStore, SqlRecordStore, load_all
from hearth.modules.chats.models import Chat


@pytest.fixture(params=["fs", "sql"])
def any_store(request, tmp_path):
    if request.param == "fs":
        return FileRecordStore(tmp_path / "storage")
    engine = build_engine(f"sqlite:///{(tmp_path / 'records.db').as_posix()}")
    init_db(engine)
    return SqlRecordStore(engine)


@pytest.mark.asyncio
class TestRecordStore:
    async def test_put_get_replace(self, any_store):
        await any_store.put(KIND_NOTE, "n1", {"name": "first"})
        await any_store.put(KIND_NOTE, "n1", {"name": "second"})

        assert await any_store.get(KIND_NOTE, "n1") == {"name": "second", "id": "n1"}

    async def test_missing_is_none(self, any_store):
        assert await any_store.get(KIND_NOTE, "nope") is None

    async def test_list_and_delete(self, any_store):
        for rid in ("b", "a", "c"):
            await any_store.put(KIND_NOTE, rid, {})
        await any_store.put(KIND_CHAT, "x", {})

        assert await any_store.list_ids(KIND_NOTE) == ["a", "b", "c"]
        assert await any_store.delete(KIND_NOTE, "b") is True
        assert await any_store.delete(KIND_NOTE, "b") is False
        assert await any_store.list_ids(KIND_NOTE) == ["a", "c"]

    async def test_load_all(self, any_store):
        await any_store.put(KIND_NOTE, "a", {"name": "A"})
        await any_store.put(KIND_NOTE, "b", {"name": "B"})

        assert [r["name"] for r in await load_all(any_store, KIND_NOTE)] == ["A", "B"]

    async def test_unicode_survives(self, any_store):
        await any_store.put(KIND_NOTE, "u", {"description": "café ☕"})

        assert (await any_store.get(KIND_NOTE, "u"))["description"] == "café ☕"

    async def test_invalid_ids(self, any_store):
        with pytest.raises(ValueError):
            await any_store.put(KIND_NOTE, "../escape", {})
        assert await any_store.get(KIND_NOTE, "../escape") is None
        assert await any_store.delete(KIND_NOTE, "..") is False

    async def test_unknown_kind(self, any_store):
        with pytest.raises(ValueError):
            await any_store.get("widget", "a")


@pytest.mark.asyncio
async def test_unreadable_file_is_skipped(tmp_path):
    store = FileRecordStore(tmp_path)
    (tmp_path / "notes").mkdir()
    (tmp_path / "notes" / "bad.json").write_text("{oops", encoding="utf-8")

    assert await store.get(KIND_NOTE, "bad") is None
    assert await load_all(store, KIND_NOTE) == []


@pytest.mark.asyncio
async def test_legacy_chat_record_loads(tmp_path):
    store = FileRecordStore(tmp_path)
    await store.put(
        KIND_CHAT,
        "old",
        {
            "name": "Old",
            "parentId": "p",
            "branchPointMessageId": "m1",
            "childChatIds": ["k"],
            "deletedMessageIds": ["m0"],
            "messageOverrides": {"m1": {"content": "x", "depth": 1}},
            "lastModifiedAt": "2025-01-01T00:00:00Z",
            "messages": [{"id": "m2", "role": "user", "content": "hey", "characterId": "me"}],
        },
    )

    chat = Chat.model_validate(await store.get(KIND_CHAT, "old"))

    assert chat.id == "old"
    assert chat.parent_id == "p"
    assert chat.fork_message_id == "m1"
    assert chat.child_ids == ["k"]
    assert chat.tombstones == ["m0"]
    assert chat.content_overrides == {"m1": "x"}
    assert chat.last_modified_at == "2025-01-01T00:00:00Z"
    assert chat.messages[0].author_character_id == "me"
    # re-saved in the current field names
    assert "fork_message_id" in chat.to_record()


class TestIds:
    def test_ulid_shape(self):
        a, b = new_ulid(), new_ulid()
        assert len(a) == 26 and a != b
        assert is_valid_record_id(a)

    @pytest.mark.parametrize("bad", ["", ".", "..", "a/b", "a b", "x" * 129, None])
    def test_rejected(self, bad):
        assert not is_valid_record_id(bad)
