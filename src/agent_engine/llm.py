"""Model gateway: resolve a provider by name and invoke it with canonical messages."""

from __future__ import annotations

from collections.abc import Callable

from .errors import ConfigurationError
from .models import InvocationOptions, LLMResponse, Message, ToolDescriptor
from .providers import (
    GeminiProvider,
    LLMProvider,
    OllamaProvider,
    OpenAIProvider,
)

PROVIDER_FACTORIES: dict[str, Callable[[], LLMProvider]] = {
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
    "ollama": OllamaProvider,
}

_provider_cache: dict[str, LLMProvider] = {}


def get_provider(name: str) -> LLMProvider:
    """Return the cached provider instance for a provider name."""
    key = (name or "").strip().lower()
    if key == "google":
        key = "gemini"
    if key not in _provider_cache:
        factory = PROVIDER_FACTORIES.get(key)
        if factory is None:
            raise ConfigurationError(f"Unsupported provider: {name}")
        _provider_cache[key] = factory()
    return _provider_cache[key]


def set_provider(name: str, provider: LLMProvider) -> None:
    """Install a provider instance for a name (e.g. a preconfigured client)."""
    _provider_cache[name.strip().lower()] = provider


async def invoke(
    messages: list[Message],
    tools: list[ToolDescriptor],
    options: InvocationOptions,
    provider: LLMProvider | None = None,
) -> LLMResponse:
    """One model call. No retries and no caching: every call hits the backend."""
    p = provider or get_provider(options.provider)
    return await p.chat(
        messages,
        model=options.model,
        tools=[t.to_tool_schema() for t in tools] or None,
        temperature=options.temperature,
        max_tokens=options.max_tokens,
    )
