from __future__ import annotations

import pytest
from fastapi import HTTPException

from conftest import msg
from hearth.core.records import KIND_CHARACTER, KIND_CHAT, KIND_NOTE
from hearth.modules.chats import service
from hearth.modules.chats.resolver import load_chat


@pytest.mark.asyncio
class TestReadViews:
    async def test_list_is_newest_first(self, store, events, put_chat):
        await put_chat("old", [], last_modified_at="2026-01-01T00:00:00Z")
        await put_chat("new", [msg("m1", "user", "first line\nsecond")], last_modified_at="2026-02-01T00:00:00Z")

        out = await service.list_chats(store)

        assert [c["id"] for c in out] == ["new", "old"]
        assert out[0]["last_message_snippet"] == "first line"

    async def test_choice_snippet(self, store, put_chat):
        await put_chat("c", [msg("m1", "user", "<choice>Open the door</choice>")])

        out = await service.list_chats(store)

        assert out[0]["last_message_snippet"] == "Player chose: Open the door"

    async def test_view_pagination(self, store, events, put_chat):
        await put_chat("c", [msg(f"m{i}", "user", str(i)) for i in range(5)])

        out = await service.get_chat_view(store, events, "c", limit=2)

        assert [m["id"] for m in out["messages"]] == ["m3", "m4"]
        assert out["message_count"] == 5
        assert out["has_more_messages"] is True

    async def test_messages_before(self, store, events, put_chat):
        await put_chat("c", [msg(f"m{i}", "user", str(i)) for i in range(5)])

        page = await service.get_messages_before(store, events, "c", "m3", limit=2)

        assert [m["id"] for m in page["messages"]] == ["m1", "m2"]
        assert page["has_more_messages"] is True

    async def test_messages_before_spans_inherited(self, store, events, put_chat):
        await put_chat("p", [msg("p1", "user", "a"), msg("p2", "assistant", "b")])
        await put_chat("c", [msg("c1", "user", "c")], parent_id="p", fork_message_id="p2")

        page = await service.get_messages_before(store, events, "c", "c1", limit=10)

        assert [(m["id"], m["inherited"]) for m in page["messages"]] == [("p1", True), ("p2", True)]
        assert page["has_more_messages"] is False

    async def test_messages_before_errors(self, store, events, put_chat):
        await put_chat("c", [msg("m1", "user", "x")])

        with pytest.raises(HTTPException) as missing:
            await service.get_messages_before(store, events, "c", None)
        with pytest.raises(HTTPException) as unknown:
            await service.get_messages_before(store, events, "c", "zzz")

        assert missing.value.status_code == 400
        assert unknown.value.status_code == 404

    async def test_unknown_chat(self, store, events):
        with pytest.raises(HTTPException) as ei:
            await service.get_chat_view(store, events, "nope")
        assert ei.value.status_code == 404


@pytest.mark.asyncio
class TestCreateUpdate:
    async def test_create_with_first_message(self, store, events):
        rec = await service.create_chat(store, events, name="Tavern", participants=["guide"], first_message="Welcome!")

        chat = await load_chat(store, rec["id"])
        assert chat.name == "Tavern"
        assert chat.participants == ["guide"]
        assert [(m.role, m.content) for m in chat.messages] == [("assistant", "Welcome!")]
        assert events.recent[-1].data["event_type"] == "create"

    async def test_update_ignores_structural_fields(self, store, events, put_chat):
        await put_chat("c", [msg("m1", "user", "x")], parent_id="p", fork_message_id="f")

        await service.update_chat(
            store,
            events,
            "c",
            {"name": "Renamed", "messages": [], "parent_id": None, "child_ids": ["evil"]},
        )

        chat = await load_chat(store, "c")
        assert chat.name == "Renamed"
        assert [m.id for m in chat.messages] == ["m1"]
        assert chat.parent_id == "p"
        assert chat.child_ids == []

    async def test_update_merges_overrides_and_tombstones(self, store, events, put_chat):
        await put_chat("c", [], content_overrides={"a": "1"}, tombstones=["x"])

        await service.update_chat(store, events, "c", {"content_overrides": {"b": "2"}, "tombstones": ["x", "y"]})

        chat = await load_chat(store, "c")
        assert chat.content_overrides == {"a": "1", "b": "2"}
        assert chat.tombstones == ["x", "y"]

    async def test_update_publishes_resolved_view(self, store, events, put_chat):
        await put_chat("p", [msg("p1", "user", "a")])
        await put_chat("c", [], parent_id="p", fork_message_id="p1")

        await service.update_chat(store, events, "c", {"name": "x"})

        details = [e.data for e in events.recent if e.data.get("resource_type") == "chat_details"]
        assert details[-1]["data"]["messages"][0]["inherited"] is True

    async def test_edit_and_delete_own_message(self, store, events, put_chat):
        await put_chat("c", [msg("m1", "user", "x"), msg("m2", "assistant", "y")])

        await service.edit_own_message(store, events, "c", "m1", "edited")
        await service.delete_own_message(store, events, "c", "m2")

        chat = await load_chat(store, "c")
        assert [(m.id, m.content) for m in chat.messages] == [("m1", "edited")]

    async def test_inherited_message_cannot_be_edited_directly(self, store, events, put_chat):
        await put_chat("p", [msg("p1", "user", "a")])
        await put_chat("c", [], parent_id="p", fork_message_id="p1")

        with pytest.raises(HTTPException) as ei:
            await service.edit_own_message(store, events, "c", "p1", "nope")

        assert ei.value.status_code == 404
        assert "content_overrides" in ei.value.detail["message"]


@pytest.mark.asyncio
class TestFork:
    async def test_fork_creates_linked_child(self, store, events, put_chat):
        await put_chat("p", [msg("u1", "user", "hi"), msg("a1", "assistant", "hello")], name="Quest", participants=["g"])

        child = await service.fork_chat(store, events, "p", "a1")

        assert child["name"] == '[Branch from "Quest"]'
        assert child["parent_id"] == "p"
        assert child["fork_message_id"] == "a1"
        assert child["messages"] == []
        assert child["participants"] == ["g"]
        parent = await load_chat(store, "p")
        assert parent.child_ids == [child["id"]]

    async def test_fork_of_a_branch(self, store, events, put_chat, overlay):
        await put_chat("p", [msg("u1", "user", "hi")])
        await put_chat("c", [msg("u2", "user", "more"), msg("a2", "assistant", "sure")], parent_id="p", fork_message_id="u1")

        grandchild = await service.fork_chat(store, events, "c", "u2")

        view = await overlay.build_resolved_view(await load_chat(store, grandchild["id"]))
        assert [m.id for m in view.messages] == ["u1", "u2"]
        assert all(m.inherited for m in view.messages)

    async def test_fork_requires_message_in_view(self, store, events, put_chat):
        await put_chat("p", [msg("u1", "user", "hi")])

        with pytest.raises(HTTPException) as missing:
            await service.fork_chat(store, events, "p", None)
        with pytest.raises(HTTPException) as unknown:
            await service.fork_chat(store, events, "p", "ghost")

        assert missing.value.status_code == 400
        assert unknown.value.status_code == 404
        assert await store.list_ids(KIND_CHAT) == ["p"]

    async def test_two_forks_both_recorded(self, store, events, put_chat):
        await put_chat("p", [msg("u1", "user", "hi")])

        a = await service.fork_chat(store, events, "p", "u1")
        b = await service.fork_chat(store, events, "p", "u1")

        parent = await load_chat(store, "p")
        assert parent.child_ids == [a["id"], b["id"]]


@pytest.mark.asyncio
class TestRewind:
    async def test_rewind_removes_own_and_tombstones_inherited(self, store, events, put_chat, overlay):
        await put_chat("p", [msg("p1", "user", "a"), msg("p2", "assistant", "b"), msg("p3", "user", "c")])
        await put_chat("c", [msg("c1", "assistant", "d"), msg("c2", "user", "e")], parent_id="p", fork_message_id="p3")

        out = await service.rewind_chat(store, events, "c", "p1")

        assert out == {"rewound_count": 4}
        chat = await load_chat(store, "c")
        assert chat.messages == []
        assert chat.tombstones == ["p2", "p3"]
        assert [m.id for m in (await overlay.build_resolved_view(chat)).messages] == ["p1"]
        parent = await load_chat(store, "p")
        assert len(parent.messages) == 3

    async def test_rewind_to_last_is_noop(self, store, events, put_chat):
        await put_chat("c", [msg("m1", "user", "a")])

        assert await service.rewind_chat(store, events, "c", "m1") == {"rewound_count": 0}

    async def test_rewind_unknown_target(self, store, events, put_chat):
        await put_chat("c", [msg("m1", "user", "a")])

        with pytest.raises(HTTPException) as ei:
            await service.rewind_chat(store, events, "c", "zzz")
        assert ei.value.status_code == 404


@pytest.mark.asyncio
class TestDelete:
    async def test_cascade_and_unlink(self, store, events, put_chat):
        await put_chat("root", [msg("m1", "user", "a")], child_ids=["b"])
        await put_chat("b", [], parent_id="root", fork_message_id="m1", child_ids=["c"])
        await put_chat("c", [], parent_id="b", fork_message_id="m1")

        deleted = await service.delete_chat(store, events, "b")

        assert deleted == ["b", "c"]
        assert await store.list_ids(KIND_CHAT) == ["root"]
        root = await load_chat(store, "root")
        assert root.child_ids == []

    async def test_cyclic_children_terminate(self, store, events, put_chat):
        await put_chat("a", [], child_ids=["b"])
        await put_chat("b", [], child_ids=["a"])

        deleted = await service.delete_chat(store, events, "a")

        assert sorted(deleted) == ["a", "b"]

    async def test_delete_unknown(self, store, events):
        with pytest.raises(HTTPException) as ei:
            await service.delete_chat(store, events, "nope")
        assert ei.value.status_code == 404


@pytest.mark.asyncio
class TestPromote:
    async def test_promote_embedded_character(self, store, events, put_chat):
        await put_chat("c", [], participants=[{"id": "tmp", "name": "Stranger"}, "known"])

        out = await service.promote_to_library(store, events, "c", "character", "tmp")

        new_id = out["resource"]["id"]
        assert new_id != "tmp"
        assert (await store.get(KIND_CHARACTER, new_id))["name"] == "Stranger"
        chat = await load_chat(store, "c")
        assert chat.participants == [new_id, "known"]

    async def test_promote_embedded_note(self, store, events, put_chat):
        await put_chat("c", [], notes=[{"id": "n", "description": "Fog."}])

        out = await service.promote_to_library(store, events, "c", "note", "n")

        assert await store.list_ids(KIND_NOTE) == [out["resource"]["id"]]

    async def test_reference_is_not_promotable(self, store, events, put_chat):
        await put_chat("c", [], participants=["known"])

        with pytest.raises(HTTPException) as ei:
            await service.promote_to_library(store, events, "c", "character", "known")
        assert ei.value.status_code == 404

    async def test_bad_resource_type(self, store, events, put_chat):
        await put_chat("c", [])

        with pytest.raises(HTTPException) as ei:
            await service.promote_to_library(store, events, "c", "place", "x")
        assert ei.value.status_code == 400
