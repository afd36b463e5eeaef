from __future__ import annotations

import asyncio
from typing import AsyncIterator, List, Optional

from hearth.modules.settings.models import ConnectionConfig

from .base import ChatTurn, GenerationOptions, ProviderError


class MockProvider:
    """
    Local provider for development and tests:
    - echoes the last message back, word by word
    - parameters["reply"] replaces the echo with a fixed text
    - parameters["force_fail"] raises ProviderError
    - parameters["chunk_delay"] sleeps between chunks (seconds)
    """

    name = "mock"

    def __init__(self, config: Optional[ConnectionConfig] = None, **_: object) -> None:
        self.config = config or ConnectionConfig(provider="mock")
        self.calls: List[dict] = []

    async def generate(self, messages: List[ChatTurn], options: GenerationOptions) -> AsyncIterator[str]:
        self.calls.append({"messages": list(messages), "system_instruction": options.system_instruction})
        params = options.parameters
        if params.get("force_fail"):
            raise ProviderError("forced failure")

        reply = params.get("reply")
        if reply is None:
            last = messages[-1]["content"] if messages else ""
            reply = f"echo: {last}"
        delay = float(params.get("chunk_delay") or 0)

        words = str(reply).split(" ")
        for i, word in enumerate(words):
            options.check_cancelled()
            if delay:
                await asyncio.sleep(delay)
            yield word if i == len(words) - 1 else f"{word} "
