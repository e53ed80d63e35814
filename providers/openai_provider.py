"""OpenAI (and OpenAI-compatible) chat/completions provider with json_schema response format."""

from __future__ import annotations

import logging
from typing import Any

import requests

from core.models import RecognitionRequest
from providers.base import BaseRecognitionProvider
from utils.image_utils import image_to_data_url

logger = logging.getLogger(__name__)
DEFAULT_OPENAI_BASE = "https://api.openai.com/v1"


class OpenAIProvider(BaseRecognitionProvider):
    """OpenAI API and OpenAI-compatible endpoints (Azure, Ollama, etc.)."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout_sec: int = 60,
        max_tokens: int = 256,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(base_url or DEFAULT_OPENAI_BASE, timeout_sec=timeout_sec, session=session)
        self._max_tokens = max_tokens

    def build_payload(self, request: RecognitionRequest, model: str) -> dict[str, Any]:
        content = [
            {"type": "text", "text": request.prompt},
            {"type": "image_url", "image_url": {"url": image_to_data_url(request.image_bytes, request.mime_type)}},
        ]
        return {
            "model": model,
            "messages": [{"role": "user", "content": content}],
            "max_tokens": self._max_tokens,
            "temperature": 0.0,
            "stream": False,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "consumer_number",
                    "schema": {**request.output_schema, "additionalProperties": False},
                    "strict": True,
                },
            },
        }

    def recognize(self, request: RecognitionRequest, *, model: str, api_key: str) -> str:
        url = f"{self._base_url}/chat/completions"
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        data = self._post_json(url, self.build_payload(request, model), headers)
        choice = (data.get("choices") or [{}])[0]
        return ((choice.get("message") or {}).get("content") or "").strip()
