"""
Branch resolution: rebuild the inherited history of a chat node.

A branch stores only its own messages. Everything before its fork point is
read from the ancestor chain at resolution time, walking parent_id links
record by record. The walk is bounded (depth, total size) and cycle-checked
because the chain lives in independent records, not a validated graph.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, Tuple

from hearth.core.config import get_branch_max_depth, get_branch_max_messages
from hearth.core.events import NOTIFY_BAD, NOTIFY_WARN, EventBus
from hearth.core.records import KIND_CHAT, RecordStore
from hearth.modules.chats.models import Chat, Message, ResolvedMessage

_log = logging.getLogger(__name__)

# (depth, overrides) collected while walking up; applied once at depth 0
OverrideLayer = Tuple[int, Dict[str, str]]


class ResolutionAborted(Exception):
    """Raised inside the walk when the chain is corrupt; caught at depth 0."""

    def __init__(self, level: str, header: str, message: str) -> None:
        super().__init__(message)
        self.level = level
        self.header = header
        self.message = message


async def load_chat(store: RecordStore, chat_id: str) -> Optional[Chat]:
    raw = await store.get(KIND_CHAT, chat_id)
    if raw is None:
        return None
    return Chat.model_validate(raw)


def infer_fork_index(own: List[Message], parent_messages: List[Message]) -> Tuple[int, Optional[str]]:
    """
    Guess where a legacy branch diverged from its parent.

    Scans the branch's own messages from the end for one whose (role, content)
    also appears in the parent. Returns (index in own, matching parent id);
    (-1, None) when nothing matches. With duplicate content in the parent the
    parent's most recent copy wins.
    """
    latest: Dict[Tuple[str, str], str] = {}
    for m in parent_messages:
        latest[(m.role, m.content)] = m.id
    for i in range(len(own) - 1, -1, -1):
        hit = latest.get((own[i].role, own[i].content))
        if hit is not None:
            return i, hit
    return -1, None


def apply_override_layers(messages: List[ResolvedMessage], layers: List[OverrideLayer]) -> List[ResolvedMessage]:
    if not layers:
        return messages
    # oldest ancestor first so the nearest descendant wins
    ordered = sorted(layers, key=lambda layer: layer[0], reverse=True)
    out = list(messages)
    for _, overrides in ordered:
        for i, rm in enumerate(out):
            if rm.id in overrides:
                out[i] = rm.with_content(overrides[rm.id])
    return out


class BranchResolver:
    def __init__(
        self,
        store: RecordStore,
        events: EventBus,
        *,
        max_depth: Optional[int] = None,
        max_messages: Optional[int] = None,
    ) -> None:
        self.store = store
        self.events = events
        self.max_depth = get_branch_max_depth() if max_depth is None else max_depth
        self.max_messages = get_branch_max_messages() if max_messages is None else max_messages

    async def resolve_ancestry(
        self,
        chat_id: str,
        fork_message_id: Optional[str],
        visited: Optional[Set[str]] = None,
        depth: int = 0,
    ) -> List[ResolvedMessage]:
        """
        History of `chat_id` up to and including `fork_message_id`, every entry
        marked inherited. A corrupt chain (cycle or too deep) yields [] plus a
        notification; a missing ancestor contributes nothing.
        """
        seen: Set[str] = set(visited or ())
        layers: List[OverrideLayer] = []
        try:
            messages = await self._walk(chat_id, fork_message_id, seen, depth, layers)
        except ResolutionAborted as e:
            if depth > 0:
                raise
            self.events.notify(e.level, e.header, e.message)
            return []
        if depth == 0:
            messages = apply_override_layers(messages, layers)
        return messages

    async def _walk(
        self,
        chat_id: str,
        fork_message_id: Optional[str],
        visited: Set[str],
        depth: int,
        layers: List[OverrideLayer],
    ) -> List[ResolvedMessage]:
        if depth > self.max_depth:
            raise ResolutionAborted(
                NOTIFY_WARN,
                "Branch Chain Warning",
                f"Branch hierarchy too deep ({self.max_depth} levels). "
                "This chat may have a corrupted parent chain.",
            )
        if chat_id in visited:
            raise ResolutionAborted(
                NOTIFY_BAD,
                "Data Corruption",
                f"Circular parent reference detected at chat {chat_id}. Parent chain is corrupted.",
            )
        visited.add(chat_id)

        chat = await load_chat(self.store, chat_id)
        if chat is None:
            self.events.notify(
                NOTIFY_WARN,
                "Missing Ancestor",
                f"Parent chat {chat_id} not found, stopping parent chain walk.",
            )
            return []

        if chat.content_overrides:
            layers.append((depth, dict(chat.content_overrides)))

        own = self._up_to(chat, list(chat.messages), fork_message_id)
        out: List[ResolvedMessage] = []

        if chat.parent_id and chat.fork_message_id:
            out.extend(await self._walk(chat.parent_id, chat.fork_message_id, visited, depth + 1, layers))
        elif chat.is_legacy_branch:
            inherited, own = await self._walk_legacy(chat, own, visited, depth, layers)
            out.extend(inherited)

        out.extend(ResolvedMessage(message=m, inherited=True) for m in own)

        if len(out) > self.max_messages:
            self.events.notify(
                NOTIFY_WARN,
                "Large Branch Detected",
                f"Branch contains over {self.max_messages} messages. History truncated to the most recent ones.",
            )
            out = out[-self.max_messages :]
        return out

    async def _walk_legacy(
        self,
        chat: Chat,
        own: List[Message],
        visited: Set[str],
        depth: int,
        layers: List[OverrideLayer],
    ) -> Tuple[List[ResolvedMessage], List[Message]]:
        # `own` is already cut at the descendant's fork point, so a fork inside
        # the copied prefix matches an earlier parent message and keeps no own turns
        parent_id = chat.parent_id or ""
        parent = await load_chat(self.store, parent_id)
        idx, fork_id = (-1, None)
        if parent is not None:
            idx, fork_id = infer_fork_index(own, parent.messages)

        if fork_id is not None:
            self.events.notify(
                NOTIFY_WARN,
                "Legacy Branch",
                f"Chat {chat.id} has no recorded fork point; inferred {fork_id} from matching content.",
            )
            inherited = await self._walk(parent_id, fork_id, visited, depth + 1, layers)
            return inherited, own[idx + 1 :]

        self.events.notify(
            NOTIFY_WARN,
            "Legacy Branch",
            f"Chat {chat.id} has no recorded fork point and none could be inferred; including the full parent history.",
        )
        inherited = await self._walk(parent_id, None, visited, depth + 1, layers)
        return inherited, own

    @staticmethod
    def _up_to(chat: Chat, own: List[Message], fork_message_id: Optional[str]) -> List[Message]:
        if not fork_message_id:
            return own
        for i, m in enumerate(own):
            if m.id == fork_message_id:
                return own[: i + 1]
        _log.warning(
            "fork point %s not found in chat %s, including all %d messages",
            fork_message_id,
            chat.id,
            len(own),
        )
        return own
