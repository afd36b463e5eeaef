from .base import GenerationAborted, GenerationOptions, ProviderError, StreamingClient
from .mock_provider import MockProvider
from .registry import PROVIDERS, get_provider

__all__ = [
    "GenerationAborted",
    "GenerationOptions",
    "MockProvider",
    "PROVIDERS",
    "ProviderError",
    "StreamingClient",
    "get_provider",
]
