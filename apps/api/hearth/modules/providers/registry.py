from __future__ import annotations

from typing import Dict, Type

from hearth.core.errors import invalid_operation
from hearth.modules.settings.models import ConnectionConfig

from .base import StreamingClient
from .gemini import GeminiProvider
from .mock_provider import MockProvider
from .openai_v1 import OpenAIV1Provider

PROVIDERS: Dict[str, Type] = {
    OpenAIV1Provider.name: OpenAIV1Provider,
    GeminiProvider.name: GeminiProvider,
    MockProvider.name: MockProvider,
}


def list_provider_types() -> list[str]:
    return sorted(PROVIDERS)


def get_provider(config: ConnectionConfig, **kwargs: object) -> StreamingClient:
    """Registry entry point: ConnectionConfig.provider -> streaming client instance."""
    cls = PROVIDERS.get(config.provider)
    if cls is None:
        raise invalid_operation(f"Unsupported provider type: {config.provider}", provider=config.provider)
    return cls(config, **kwargs)
