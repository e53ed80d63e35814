"""Recognition providers: abstract base and concrete implementations."""

from providers.base import BaseRecognitionProvider
from providers.gemini_provider import GeminiProvider
from providers.openai_provider import OpenAIProvider
from providers.factory import create_provider

__all__ = [
    "BaseRecognitionProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "create_provider",
]
