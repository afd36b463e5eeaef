"""
Prompt assembly: resolved history + generation config -> provider input.

The generation config's prompt_slots decide the order of the final list. A
"template" slot is macro-expanded; a "history" slot is replaced by the
resolved history followed by the pending user message. Without a history
slot, history and the pending message go last so they are never dropped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from hearth.core.errors import invalid_operation, not_found
from hearth.core.records import KIND_CHARACTER, KIND_NOTE, RecordStore, load_all
from hearth.modules.characters.models import Character
from hearth.modules.chats.models import Chat, ChatView, Message, ResolvedMessage
from hearth.modules.chats.overlay import OverlayReconciler
from hearth.modules.notes.models import Note
from hearth.modules.prompting.macros import MacroContext, MacroEngine
from hearth.modules.settings.models import ConnectionConfig, GenerationConfig, PromptSlot, SettingsSnapshot

_log = logging.getLogger(__name__)

PromptMessage = Dict[str, str]


@dataclass
class AssembledPrompt:
    system_text: str
    messages: List[PromptMessage]
    parameters: Dict[str, Any] = field(default_factory=dict)
    view: Optional[ChatView] = None
    history: List[ResolvedMessage] = field(default_factory=list)
    pending: Optional[Message] = None
    # index of the regenerated message in view.messages, when regenerating
    regenerate_index: Optional[int] = None


async def resolve_participants(
    store: RecordStore, chat: Chat
) -> Tuple[List[Character], List[Character], List[Note]]:
    """(character library, chat participants, active notes). Dangling references are skipped."""
    library = [Character.model_validate(r) for r in await load_all(store, KIND_CHARACTER)]
    notes_library = [Note.model_validate(r) for r in await load_all(store, KIND_NOTE)]
    by_char = {c.id: c for c in library}
    by_note = {n.id: n for n in notes_library}

    participants: List[Character] = []
    for p in chat.participants:
        if isinstance(p, Character):
            participants.append(p)
        elif p in by_char:
            participants.append(by_char[p])
        else:
            _log.warning("chat %s references unknown character %s", chat.id, p)

    notes: List[Note] = []
    for n in chat.notes:
        if isinstance(n, Note):
            notes.append(n)
        elif n in by_note:
            notes.append(by_note[n])
        else:
            _log.warning("chat %s references unknown note %s", chat.id, n)

    return library, participants, notes


def merge_consecutive(messages: List[PromptMessage]) -> List[PromptMessage]:
    out: List[PromptMessage] = []
    for m in messages:
        if out and out[-1]["role"] == m["role"]:
            out[-1] = {"role": m["role"], "content": f"{out[-1]['content']}\n\n{m['content']}"}
        else:
            out.append(dict(m))
    return out


class PromptAssembler:
    def __init__(self, store: RecordStore, overlay: OverlayReconciler) -> None:
        self.store = store
        self.overlay = overlay

    async def assemble(
        self,
        chat: Chat,
        pending_user_content: Optional[str] = None,
        regenerate_target_id: Optional[str] = None,
        *,
        snapshot: SettingsSnapshot,
        connection: ConnectionConfig,
        generation: Optional[GenerationConfig] = None,
    ) -> AssembledPrompt:
        view = await self.overlay.build_resolved_view(chat)
        history = list(view.messages)
        pending: Optional[Message] = None
        regen_index: Optional[int] = None

        if regenerate_target_id is not None:
            regen_index = view.index_of(regenerate_target_id)
            if regen_index == -1:
                raise not_found("Message to regenerate not found", chat_id=chat.id, message_id=regenerate_target_id)
            if history[regen_index].role != "assistant":
                raise invalid_operation(
                    "Can only regenerate an assistant message",
                    message_id=regenerate_target_id,
                    role=history[regen_index].role,
                )
            history = history[:regen_index]
        elif pending_user_content is not None:
            pending = Message(
                role="user",
                content=pending_user_content,
                author_character_id=snapshot.user_persona_character_id,
            )

        library, participants, notes = await resolve_participants(self.store, chat)
        engine = MacroEngine(
            MacroContext(
                all_characters=library,
                persona_id=snapshot.user_persona_character_id,
                chat_characters=participants,
                active_notes=notes,
            )
        )

        system_parts, messages = self._fill_slots(self._slots_for(generation), engine, history, pending)
        if snapshot.chat.merge_consecutive_roles:
            messages = merge_consecutive(messages)

        parameters = generation.parameters_for(connection.provider) if generation else {}
        return AssembledPrompt(
            system_text="\n\n".join(system_parts),
            messages=messages,
            parameters=parameters,
            view=view,
            history=history,
            pending=pending,
            regenerate_index=regen_index,
        )

    @staticmethod
    def _slots_for(generation: Optional[GenerationConfig]) -> List[PromptSlot]:
        if generation is None:
            return []
        slots: List[PromptSlot] = []
        if generation.system_prompt:
            slots.append(PromptSlot(role="system", kind="template", template=generation.system_prompt))
        slots.extend(generation.prompt_slots)
        return slots

    @staticmethod
    def _fill_slots(
        slots: List[PromptSlot],
        engine: MacroEngine,
        history: List[ResolvedMessage],
        pending: Optional[Message],
    ) -> Tuple[List[str], List[PromptMessage]]:
        system_parts: List[str] = []
        messages: List[PromptMessage] = []
        placed = False

        def place_history() -> None:
            for rm in history:
                if rm.role == "system":
                    system_parts.append(rm.content)
                else:
                    messages.append({"role": rm.role, "content": rm.content})
            if pending is not None:
                messages.append({"role": pending.role, "content": pending.content})

        for slot in slots:
            if slot.kind == "history":
                if placed:
                    _log.warning("prompt template has more than one history slot; ignoring the extra one")
                    continue
                place_history()
                placed = True
                continue
            text = engine.expand(slot.template)
            if not text.strip():
                continue
            if slot.role == "system":
                system_parts.append(text)
            else:
                messages.append({"role": slot.role, "content": text})

        if not placed:
            place_history()
        return system_parts, messages
