from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from .base import ChatTurn, GenerationOptions, HttpStreamingProvider

_log = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_GEMINI_MODEL = "gemini-2.5-pro"

SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_CIVIC_INTEGRITY",
)


def candidate_text(payload: Dict[str, Any]) -> Optional[str]:
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return None
    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    token = parts[0].get("text")
    return token if isinstance(token, str) else None


def to_gemini_contents(messages: List[ChatTurn]) -> List[Dict[str, Any]]:
    """
    Gemini wants alternating user/model turns starting with user:
    - assistant -> model, everything else -> user
    - a leading model turn is dropped
    - consecutive same-role turns are merged with a blank line
    """
    contents: List[Dict[str, Any]] = []
    for m in messages:
        text = m.get("content") or ""
        if not text:
            continue
        role = "model" if m.get("role") == "assistant" else "user"
        if not contents and role == "model":
            continue
        if contents and contents[-1]["role"] == role:
            contents[-1]["parts"][0]["text"] += f"\n\n{text}"
        else:
            contents.append({"role": role, "parts": [{"text": text}]})
    return contents


class GeminiProvider(HttpStreamingProvider):
    name = "gemini"

    def build_body(self, messages: List[ChatTurn], options: GenerationOptions) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "contents": to_gemini_contents(messages),
            "safetySettings": [{"category": c, "threshold": "BLOCK_NONE"} for c in SAFETY_CATEGORIES],
        }
        if options.system_instruction:
            body["system_instruction"] = {"parts": [{"text": options.system_instruction}]}
        if options.parameters:
            body["generationConfig"] = dict(options.parameters)
        return body

    def stream_url(self) -> str:
        base = (self.config.url or GEMINI_BASE_URL).rstrip("/")
        model = self.config.model_id or DEFAULT_GEMINI_MODEL
        return f"{base}/{model}:streamGenerateContent?alt=sse"

    async def generate(self, messages: List[ChatTurn], options: GenerationOptions) -> AsyncIterator[str]:
        body = self.build_body(messages, options)
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.config.api_key}
        _log.info(
            "gemini prompt: contents=%d system_chars=%d model=%s",
            len(body["contents"]),
            len(options.system_instruction),
            self.config.model_id or DEFAULT_GEMINI_MODEL,
        )
        async for payload in self._stream_sse(self.stream_url(), body, headers, options):
            token = candidate_text(payload)
            if token:
                yield token
