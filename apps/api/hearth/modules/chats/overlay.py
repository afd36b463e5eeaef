from __future__ import annotations

from typing import List

from hearth.core.events import NOTIFY_INFO, EventBus
from hearth.modules.chats.models import Chat, ChatView, ResolvedMessage
from hearth.modules.chats.resolver import BranchResolver


def legacy_advisory_key(chat_id: str) -> str:
    return f"legacy:{chat_id}"


class OverlayReconciler:
    """Branch-local overrides and tombstones on top of the inherited history."""

    def __init__(self, resolver: BranchResolver, events: EventBus) -> None:
        self.resolver = resolver
        self.events = events

    async def build_resolved_view(self, chat: Chat) -> ChatView:
        own = [ResolvedMessage(message=m) for m in chat.messages]

        if chat.parent_id and chat.fork_message_id:
            inherited = await self.resolver.resolve_ancestry(
                chat.parent_id,
                chat.fork_message_id,
                visited={chat.id},
            )
            combined = self._apply_own_overrides(chat, inherited) + own
            if chat.tombstones:
                gone = set(chat.tombstones)
                combined = [m for m in combined if m.id not in gone]
            return ChatView(chat=chat, messages=combined)

        if chat.is_legacy_branch:
            self.events.notify_once(
                legacy_advisory_key(chat.id),
                NOTIFY_INFO,
                "Legacy Branch Detected",
                f'Chat "{chat.name}" is a legacy branch without a defined branch point. '
                "Message history from parent may be incomplete. Consider re-creating this branch.",
            )

        return ChatView(chat=chat, messages=own)

    @staticmethod
    def _apply_own_overrides(chat: Chat, inherited: List[ResolvedMessage]) -> List[ResolvedMessage]:
        if not chat.content_overrides:
            return list(inherited)
        overrides = chat.content_overrides
        return [m.with_content(overrides[m.id]) if m.id in overrides else m for m in inherited]
