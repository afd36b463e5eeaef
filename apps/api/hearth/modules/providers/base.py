from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

import httpx

from hearth.core.config import get_provider_timeout
from hearth.modules.settings.models import ConnectionConfig

_log = logging.getLogger(__name__)

ChatTurn = Dict[str, str]


class ProviderError(Exception):
    """Backend failed (transport, HTTP status, or payload)."""


class GenerationAborted(Exception):
    """The caller's cancel event was set mid-stream."""


@dataclass(frozen=True)
class GenerationOptions:
    system_instruction: str = ""
    cancel_event: Optional[asyncio.Event] = None
    parameters: Dict[str, Any] = field(default_factory=dict)

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise GenerationAborted()


class StreamingClient(Protocol):
    """
    generate(messages, options) -> lazy, finite, non-restartable text chunks.
    Implementations raise ProviderError on failure and GenerationAborted
    when options.cancel_event is set between chunks.
    """

    name: str

    def generate(self, messages: List[ChatTurn], options: GenerationOptions) -> AsyncIterator[str]:
        ...


class HttpStreamingProvider:
    """Shared plumbing for providers that stream Server-Sent Events over httpx."""

    name = "http"

    def __init__(
        self,
        config: ConnectionConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._timeout = get_provider_timeout() if timeout is None else timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _stream_sse(
        self,
        url: str,
        body: Dict[str, Any],
        headers: Dict[str, str],
        options: GenerationOptions,
    ) -> AsyncIterator[Dict[str, Any]]:
        """POST and yield each decoded `data:` payload; `[DONE]` ends the stream."""
        options.check_cancelled()
        chunks = 0
        try:
            async with self._client() as client:
                async with client.stream("POST", url, json=body, headers=headers) as resp:
                    if resp.status_code >= 400:
                        raw = await resp.aread()
                        raise ProviderError(f"{self.name} API error ({resp.status_code}): {_error_text(raw)}")
                    async for line in resp.aiter_lines():
                        options.check_cancelled()
                        line = line.strip()
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:") :].strip()
                        if data == "[DONE]":
                            break
                        try:
                            payload = json.loads(data)
                        except json.JSONDecodeError:
                            payload = None
                        if not isinstance(payload, dict):
                            _log.warning("%s: skipping malformed stream chunk: %s", self.name, data[:200])
                            continue
                        chunks += 1
                        yield payload
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}") from e
        _log.info("%s stream complete: chunks=%d", self.name, chunks)


def _error_text(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return text[:500]
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if data.get("message"):
            return str(data["message"])
    return text[:500]
