# LLMServices/__init__.py

from django.conf import settings

from .gemini import GeminiAdapter
from .mock import MockLLMAdapter


def get_LLM_adapter():
    """Factory: adapter for settings.LLM_PROVIDER."""
    provider = getattr(settings, "LLM_PROVIDER", "gemini")
    if provider == "gemini":
        return GeminiAdapter()
    elif provider == "mock":
        return MockLLMAdapter()
    else:
        raise ValueError(f"Unknown LLM provider: {provider}")
