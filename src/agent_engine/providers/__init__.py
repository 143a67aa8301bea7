"""LLM providers: interchangeable backends behind the model gateway."""

from .base import LLMProvider
from .ollama import OllamaProvider
from .openai_provider import OpenAIProvider
from .gemini_provider import GeminiProvider

__all__ = [
    "LLMProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "GeminiProvider",
]
