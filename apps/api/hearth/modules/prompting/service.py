"""
Generation flow: settings snapshot -> assemble -> stream -> (curate) -> persist.

Preparation (validation, history resolution, prompt assembly) happens before
any token is produced so request errors surface as normal HTTP errors. The
stream itself only reports token / done / error / aborted events; nothing is
written unless the stream completes.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from hearth.core.errors import invalid_operation
from hearth.core.events import EventBus
from hearth.core.ids import now_iso
from hearth.core.records import RecordStore
from hearth.modules.chats.models import BRANCH_NAME_PREFIX, Chat
from hearth.modules.chats.service import build_overlay, publish_chat, require_chat, save_chat
from hearth.modules.providers.base import GenerationAborted, GenerationOptions, ProviderError, StreamingClient
from hearth.modules.providers.registry import get_provider
from hearth.modules.settings.models import ConnectionConfig, GenerationConfig, SettingsSnapshot
from hearth.modules.settings.service import (
    get_connection_config,
    load_settings,
    resolve_active_connection,
    resolve_active_generation,
)

from .assembler import AssembledPrompt, PromptAssembler

_log = logging.getLogger(__name__)

CURATE_PROMPT_PATH = Path(__file__).parent / "prompts" / "curate.md"
BRANCH_RENAME_CHARS = 30

MODE_PROMPT = "prompt"
MODE_REGENERATE = "regenerate"
MODE_RESEND = "resend"

EVENT_TOKEN = "token"
EVENT_DONE = "done"
EVENT_ERROR = "error"
EVENT_ABORTED = "aborted"

ProviderFactory = Callable[[ConnectionConfig], StreamingClient]


@dataclass(frozen=True)
class StreamEvent:
    type: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationJob:
    mode: str
    chat_id: str
    snapshot: SettingsSnapshot
    connection: ConnectionConfig
    generation: Optional[GenerationConfig]
    prompt: AssembledPrompt
    user_content: Optional[str] = None
    target_id: Optional[str] = None


def load_curation_prompt() -> str:
    return CURATE_PROMPT_PATH.read_text(encoding="utf-8")


async def _empty() -> AsyncIterator[str]:
    return
    yield  # pragma: no cover


class GenerationService:
    def __init__(
        self,
        store: RecordStore,
        events: EventBus,
        provider_factory: ProviderFactory = get_provider,
    ) -> None:
        self.store = store
        self.events = events
        self.provider_factory = provider_factory
        self.assembler = PromptAssembler(store, build_overlay(store, events))

    # -------------------------
    # preparation
    # -------------------------
    async def _prepare(
        self,
        mode: str,
        chat: Chat,
        *,
        user_content: Optional[str] = None,
        target_id: Optional[str] = None,
    ) -> GenerationJob:
        snapshot = await load_settings(self.store)
        connection = await resolve_active_connection(self.store, snapshot)
        generation = await resolve_active_generation(self.store, snapshot)
        prompt = await self.assembler.assemble(
            chat,
            user_content,
            target_id,
            snapshot=snapshot,
            connection=connection,
            generation=generation,
        )
        return GenerationJob(
            mode=mode,
            chat_id=chat.id,
            snapshot=snapshot,
            connection=connection,
            generation=generation,
            prompt=prompt,
            user_content=user_content,
            target_id=target_id,
        )

    async def prepare_prompt(self, chat_id: str, message: str) -> GenerationJob:
        chat = await require_chat(self.store, chat_id)
        return await self._prepare(MODE_PROMPT, chat, user_content=message)

    async def prepare_regenerate(self, chat_id: str, message_id: str) -> GenerationJob:
        chat = await require_chat(self.store, chat_id)
        return await self._prepare(MODE_REGENERATE, chat, target_id=message_id)

    async def prepare_resend(self, chat_id: str) -> GenerationJob:
        chat = await require_chat(self.store, chat_id)
        view = await self.assembler.overlay.build_resolved_view(chat)
        if not view.messages or view.messages[-1].role != "user":
            raise invalid_operation("Resend requires the last message to be from the user", chat_id=chat_id)
        return await self._prepare(MODE_RESEND, chat)

    # -------------------------
    # streaming
    # -------------------------
    async def run(self, job: GenerationJob, cancel_event: Optional[asyncio.Event] = None) -> AsyncIterator[StreamEvent]:
        options = GenerationOptions(
            system_instruction=job.prompt.system_text,
            cancel_event=cancel_event,
            parameters=job.prompt.parameters,
        )
        client = self.provider_factory(job.connection)
        parts: List[str] = []
        try:
            if job.snapshot.chat.curate_response:
                stream = await self._curated_stream(client, job, options)
            else:
                stream = client.generate(job.prompt.messages, options)
            async for token in stream:
                parts.append(token)
                yield StreamEvent(EVENT_TOKEN, {"token": token})
            options.check_cancelled()
        except GenerationAborted:
            _log.info("generation aborted: chat=%s mode=%s chars=%d", job.chat_id, job.mode, sum(map(len, parts)))
            yield StreamEvent(EVENT_ABORTED, {})
            return
        except asyncio.CancelledError:
            _log.info("generation cancelled: chat=%s mode=%s", job.chat_id, job.mode)
            raise
        except ProviderError as e:
            _log.warning("generation failed: chat=%s provider=%s error=%s", job.chat_id, job.connection.provider, e)
            yield StreamEvent(EVENT_ERROR, {"message": str(e)})
            return

        content = "".join(parts)
        if not content.strip():
            yield StreamEvent(EVENT_ERROR, {"message": "The model returned an empty response"})
            return

        message_id = await self._persist(job, content)
        yield StreamEvent(EVENT_DONE, {"message_id": message_id})

    async def _curated_stream(
        self, client: StreamingClient, job: GenerationJob, options: GenerationOptions
    ) -> AsyncIterator[str]:
        first = "".join([t async for t in client.generate(job.prompt.messages, options)])
        options.check_cancelled()
        _log.info("first pass collected for curation: chars=%d", len(first))
        if not first.strip():
            _log.info("first pass was empty, skipping curation")
            return _empty()

        curation_client = client
        parameters = dict(options.parameters)
        cfg_id = job.snapshot.chat.curation_connection_config_id
        if cfg_id:
            cfg = await get_connection_config(self.store, cfg_id)
            if cfg is None:
                _log.warning("curation connection config %s not found, using the main connection", cfg_id)
            elif cfg.id != job.connection.id or cfg.provider != job.connection.provider:
                _log.info("curating with separate connection %s (%s)", cfg.name, cfg.provider)
                curation_client = self.provider_factory(cfg)
                # parameters for one backend can break another
                parameters = job.generation.parameters_for(cfg.provider) if job.generation else {}

        curation_options = GenerationOptions(
            system_instruction=load_curation_prompt(),
            cancel_event=options.cancel_event,
            parameters=parameters,
        )
        return curation_client.generate([{"role": "user", "content": first}], curation_options)

    # -------------------------
    # persistence
    # -------------------------
    async def _persist(self, job: GenerationJob, content: str) -> str:
        # re-read: the record may have changed while streaming
        chat = await require_chat(self.store, job.chat_id)

        if job.mode == MODE_REGENERATE:
            target_id = job.target_id or ""
            own = chat.own_message(target_id)
            if own is not None:
                own.content = content
                own.timestamp = now_iso()
            else:
                overrides = dict(chat.content_overrides)
                overrides[target_id] = content
                chat.content_overrides = overrides
            message_id = target_id
        else:
            pending = job.prompt.pending
            if job.mode == MODE_PROMPT and pending is not None:
                chat.messages.append(pending)
                if chat.name.startswith(BRANCH_NAME_PREFIX):
                    chat.name = pending.content[:BRANCH_RENAME_CHARS]
            message_id = chat.add_message("assistant", content).id

        chat.touch()
        await save_chat(self.store, chat)
        await publish_chat(self.store, self.events, chat)
        return message_id

    # -------------------------
    # non-streaming helper
    # -------------------------
    async def complete(self, messages: List[Dict[str, str]], parameters: Optional[Dict[str, Any]] = None) -> str:
        snapshot = await load_settings(self.store)
        connection = await resolve_active_connection(self.store, snapshot)
        if parameters is None:
            generation = await resolve_active_generation(self.store, snapshot)
            parameters = generation.parameters_for(connection.provider) if generation else {}

        system = ""
        turns = list(messages)
        if turns and turns[0].get("role") == "system":
            system = turns.pop(0).get("content", "")

        client = self.provider_factory(connection)
        options = GenerationOptions(system_instruction=system, parameters=parameters)
        return "".join([t async for t in client.generate(turns, options)])
