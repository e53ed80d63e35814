"""Factory for creating recognition providers from config. No hardcoded model names."""

from __future__ import annotations

from core.exceptions import ConfigError
from core.interfaces import IRecognitionProvider
from providers.gemini_provider import GeminiProvider
from providers.openai_provider import OpenAIProvider


def create_provider(
    provider: str,
    *,
    base_url: str | None = None,
    timeout_sec: int = 60,
) -> IRecognitionProvider:
    """Create a recognition provider by name. Credentials are passed per call, not here."""
    name = (provider or "gemini").strip().lower()
    if name in ("gemini", "google"):
        return GeminiProvider(base_url=base_url or None, timeout_sec=timeout_sec)
    if name in ("openai", "openai_compatible"):
        return OpenAIProvider(base_url=base_url or None, timeout_sec=timeout_sec)
    raise ConfigError(f"Unknown recognition provider: {provider}. Use gemini or openai.")
