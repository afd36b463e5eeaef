from __future__ import annotations

import pytest

from conftest import msg
from hearth.core.events import EventBus
from hearth.modules.chats import service


class TestNotifyOnce:
    def test_repeat_key_is_silent(self):
        bus = EventBus()

        assert bus.notify_once("k", "info", "H", "m") is True
        assert bus.notify_once("k", "info", "H", "m") is False
        assert len(bus.notifications("info")) == 1

    def test_oldest_keys_are_evicted(self):
        bus = EventBus(keep_advised=2)
        for key in ("a", "b", "c"):
            bus.notify_once(key, "info", "H", key)

        # "a" fell out, so it advises again; "c" is still remembered
        assert bus.notify_once("a", "info", "H", "a") is True
        assert bus.notify_once("c", "info", "H", "c") is False

    def test_forget(self):
        bus = EventBus()
        bus.notify_once("k", "info", "H", "m")

        bus.forget("k")
        bus.forget("never-seen")

        assert bus.notify_once("k", "info", "H", "m") is True


@pytest.mark.asyncio
class TestLegacyAdvisoryLifecycle:
    async def test_deleting_a_chat_drops_its_advisory_key(self, store, events, overlay, put_chat):
        await put_chat("p", [msg("p1", "user", "hi")])
        legacy = await put_chat("l", [msg("l1", "user", "yo")], parent_id="p")
        await overlay.build_resolved_view(legacy)

        await service.delete_chat(store, events, "l")
        # same id reused by a new record advises again
        reborn = await put_chat("l", [msg("l1", "user", "yo")], parent_id="p")
        await overlay.build_resolved_view(reborn)

        assert len(events.notifications("info")) == 2
