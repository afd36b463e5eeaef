from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from .base import ChatTurn, GenerationOptions, HttpStreamingProvider

_log = logging.getLogger(__name__)


def delta_text(payload: Dict[str, Any]) -> Optional[str]:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    token = delta.get("content") if isinstance(delta, dict) else None
    return token if isinstance(token, str) else None


class OpenAIV1Provider(HttpStreamingProvider):
    """OpenAI-compatible /v1/chat/completions (OpenAI, Ollama, LM Studio, llama-server, ...)."""

    name = "v1"

    def build_body(self, messages: List[ChatTurn], options: GenerationOptions) -> Dict[str, Any]:
        api_messages: List[ChatTurn] = []
        if options.system_instruction:
            api_messages.append({"role": "system", "content": options.system_instruction})
        api_messages.extend({"role": m["role"], "content": m["content"]} for m in messages if m.get("content"))

        params = dict(options.parameters)
        stop = params.pop("stop", None)
        body: Dict[str, Any] = {"model": self.config.model_id, "messages": api_messages, "stream": True}
        body.update(params)
        if isinstance(stop, str):
            stop = [s.strip() for s in stop.split(",") if s.strip()]
        if stop:
            body["stop"] = stop
        return body

    async def generate(self, messages: List[ChatTurn], options: GenerationOptions) -> AsyncIterator[str]:
        body = self.build_body(messages, options)
        url = f"{self.config.url.rstrip('/')}/chat/completions"
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        _log.info(
            "v1 prompt: messages=%d system_chars=%d model=%s",
            len(body["messages"]),
            len(options.system_instruction),
            self.config.model_id,
        )
        async for payload in self._stream_sse(url, body, headers, options):
            token = delta_text(payload)
            if token:
                yield token
