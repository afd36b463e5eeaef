from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from hearth.core.deps import get_events, get_store
from hearth.core.events import EventBus
from hearth.core.records import FileRecordStore
from hearth.main import app


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    store = FileRecordStore(tmp_path / "storage")
    bus = EventBus()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_events] = lambda: bus
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _sse_events(text: str):
    out = []
    for frame in text.split("\n\n"):
        lines = frame.strip().splitlines()
        if len(lines) < 2 or not lines[0].startswith("event:"):
            continue
        out.append((lines[0][len("event:") :].strip(), json.loads(lines[1][len("data:") :])))
    return out


def _activate_mock(client, **params):
    cfg = client.post("/connection_configs", json={"name": "Mock", "provider": "mock"}).json()
    client.post(f"/connection_configs/{cfg['id']}/activate")
    if params:
        gen = client.post("/generation_configs", json={"parameters": {"mock": params}}).json()
        client.post(f"/generation_configs/{gen['id']}/activate")
    return cfg


class TestErrors:
    def test_not_found_envelope(self, client):
        r = client.get("/chats/nope", headers={"X-Request-Id": "RID-1"})

        assert r.status_code == 404
        body = r.json()
        assert body["error"] == "not_found"
        assert body["request_id"] == "RID-1"
        assert body["details"] == {"chat_id": "nope"}
        assert r.headers["X-Request-Id"] == "RID-1"

    def test_invalid_operation_envelope(self, client):
        chat = client.post("/chats", json={}).json()

        r = client.get(f"/chats/{chat['id']}/messages")

        assert r.status_code == 400
        assert r.json()["error"] == "invalid_operation"

    def test_validation_error(self, client):
        chat = client.post("/chats", json={}).json()

        r = client.post(f"/chats/{chat['id']}/prompt", json={})

        assert r.status_code == 422
        assert r.json()["error"] == "validation_error"


def test_health(client):
    r = client.get("/health")

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["record_store"] == "fs"
    assert body["store"]["kind"] == "local_fs"


class TestChatsApi:
    def test_create_fork_and_view(self, client):
        chat = client.post("/chats", json={"name": "Road", "first_message": "Where to?"}).json()
        first_id = chat["messages"][0]["id"]

        child = client.post(f"/chats/{chat['id']}/fork", json={"message_id": first_id})
        assert child.status_code == 201

        view = client.get(f"/chats/{child.json()['id']}").json()
        assert [m["id"] for m in view["messages"]] == [first_id]
        assert view["messages"][0]["inherited"] is True
        assert view["message_count"] == 1

        listing = client.get("/chats").json()
        parent = next(c for c in listing if c["id"] == chat["id"])
        assert parent["child_ids"] == [child.json()["id"]]

    def test_override_via_put(self, client):
        chat = client.post("/chats", json={"first_message": "hello"}).json()
        mid = chat["messages"][0]["id"]
        child = client.post(f"/chats/{chat['id']}/fork", json={"message_id": mid}).json()

        client.put(f"/chats/{child['id']}", json={"content_overrides": {mid: "hey there"}})

        child_view = client.get(f"/chats/{child['id']}").json()
        parent_view = client.get(f"/chats/{chat['id']}").json()
        assert child_view["messages"][0]["content"] == "hey there"
        assert child_view["messages"][0]["overridden"] is True
        assert parent_view["messages"][0]["content"] == "hello"

    def test_delete_cascades(self, client):
        chat = client.post("/chats", json={"first_message": "x"}).json()
        mid = chat["messages"][0]["id"]
        child = client.post(f"/chats/{chat['id']}/fork", json={"message_id": mid}).json()

        assert client.delete(f"/chats/{chat['id']}").status_code == 204
        assert client.get(f"/chats/{child['id']}").status_code == 404


class TestGenerationApi:
    def test_prompt_streams_sse(self, client):
        _activate_mock(client, reply="Hello traveller")
        chat = client.post("/chats", json={}).json()

        r = client.post(f"/chats/{chat['id']}/prompt", json={"message": "hi"})

        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/event-stream")
        events = _sse_events(r.text)
        assert "".join(d["token"] for t, d in events if t == "token") == "Hello traveller"
        assert events[-1][0] == "done"
        view = client.get(f"/chats/{chat['id']}").json()
        assert [m["content"] for m in view["messages"]] == ["hi", "Hello traveller"]

    def test_prompt_without_connection(self, client):
        chat = client.post("/chats", json={}).json()

        r = client.post(f"/chats/{chat['id']}/prompt", json={"message": "hi"})

        assert r.status_code == 400
        assert r.json()["message"] == "No active connection configuration set"

    def test_provider_error_is_an_sse_event(self, client):
        _activate_mock(client, force_fail=True)
        chat = client.post("/chats", json={}).json()

        r = client.post(f"/chats/{chat['id']}/prompt", json={"message": "hi"})

        assert [t for t, _ in _sse_events(r.text)] == ["error"]

    def test_abort_without_generation(self, client):
        assert client.post("/chats/anything/abort").json() == {"aborted": False}

    def test_completions(self, client):
        _activate_mock(client)

        r = client.post("/completions", json={"messages": [{"role": "user", "content": "ping"}]})

        assert r.json() == {"content": "echo: ping"}

    def test_completions_provider_failure(self, client):
        _activate_mock(client)

        r = client.post(
            "/completions",
            json={"messages": [{"role": "user", "content": "x"}], "parameters": {"force_fail": True}},
        )

        assert r.status_code == 502
        assert r.json()["error"] == "provider_error"


class TestSettingsApi:
    def test_api_key_is_redacted(self, client):
        cfg = client.post("/connection_configs", json={"provider": "v1", "api_key": "sk-secret"}).json()

        assert cfg["api_key"] == "<redacted>"
        client.patch(f"/connection_configs/{cfg['id']}", json={"api_key": "<redacted>", "name": "Renamed"})
        again = client.get(f"/connection_configs/{cfg['id']}").json()
        assert again["name"] == "Renamed"
        assert again["api_key"] == "<redacted>"

    def test_unknown_provider_rejected(self, client):
        r = client.post("/connection_configs", json={"provider": "telepathy"})

        assert r.status_code == 400

    def test_chat_options_merge(self, client):
        client.patch("/settings", json={"chat": {"curate_response": True}})
        client.patch("/settings", json={"chat": {"merge_consecutive_roles": True}})

        chat_opts = client.get("/settings").json()["chat"]
        assert chat_opts["curate_response"] is True
        assert chat_opts["merge_consecutive_roles"] is True

    def test_persona_cleared_when_character_deleted(self, client):
        char = client.post("/characters", json={"name": "Rin"}).json()
        assert client.put("/settings/persona", json={"character_id": char["id"]}).status_code == 200

        client.delete(f"/characters/{char['id']}")

        assert client.get("/settings").json()["user_persona_character_id"] is None

    def test_deleting_active_connection_clears_it(self, client):
        cfg = _activate_mock(client)

        client.delete(f"/connection_configs/{cfg['id']}")

        assert client.get("/settings").json()["active_connection_config_id"] is None


class TestLibraryApi:
    def test_character_crud(self, client):
        created = client.post("/characters", json={"id": "rin", "name": "Rin"}).json()
        assert created["id"] == "rin"
        # taken id falls back to a fresh one
        other = client.post("/characters", json={"id": "rin", "name": "Rin 2"}).json()
        assert other["id"] != "rin"

        dup = client.post("/characters/rin/duplicate").json()
        assert dup["name"] == "Rin (Copy)"

        listing = client.get("/characters", params={"limit": 2}).json()
        assert listing["page"]["total"] == 3
        assert listing["page"]["has_more"] is True

    def test_note_delete_unlinks_chats(self, client):
        note = client.post("/notes", json={"name": "Weather", "description": "Rain."}).json()
        chat = client.post("/chats", json={"notes": [note["id"]]}).json()

        assert client.delete(f"/notes/{note['id']}").status_code == 204

        assert client.get(f"/chats/{chat['id']}").json()["notes"] == []


def test_notifications_endpoint(client, tmp_path):
    parent = client.post("/chats", json={"first_message": "x"}).json()
    legacy = client.post("/chats", json={}).json()
    # a chat with a parent but no fork point is a legacy branch
    path = tmp_path / "storage" / "chats" / f"{legacy['id']}.json"
    path.write_text(json.dumps({**legacy, "parent_id": parent["id"]}), encoding="utf-8")

    client.get(f"/chats/{legacy['id']}")

    items = client.get("/notifications", params={"level": "info"}).json()["items"]
    assert [n["header"] for n in items] == ["Legacy Branch Detected"]
