"""Google Gemini (generativelanguage REST API) provider with structured JSON output."""

from __future__ import annotations

import logging
from typing import Any

import requests

from core.models import RecognitionRequest
from providers.base import BaseRecognitionProvider
from utils.image_utils import image_to_base64

logger = logging.getLogger(__name__)
DEFAULT_GEMINI_BASE = "https://generativelanguage.googleapis.com/v1beta"


def to_gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """JSON Schema subset -> Gemini responseSchema (upper-case type names)."""
    out: dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type" and isinstance(value, str):
            out[key] = value.upper()
        elif key == "properties" and isinstance(value, dict):
            out[key] = {name: to_gemini_schema(sub) for name, sub in value.items()}
        elif key == "items" and isinstance(value, dict):
            out[key] = to_gemini_schema(value)
        else:
            out[key] = value
    return out


class GeminiProvider(BaseRecognitionProvider):
    """POST {base}/models/{model}:generateContent with inline image data and a response schema."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout_sec: int = 60,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(base_url or DEFAULT_GEMINI_BASE, timeout_sec=timeout_sec, session=session)

    def build_payload(self, request: RecognitionRequest) -> dict[str, Any]:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {
                            "inline_data": {
                                "mime_type": request.mime_type,
                                "data": image_to_base64(request.image_bytes),
                            }
                        },
                        {"text": request.prompt},
                    ],
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": to_gemini_schema(request.output_schema),
                "temperature": 0.0,
            },
        }

    def recognize(self, request: RecognitionRequest, *, model: str, api_key: str) -> str:
        url = f"{self._base_url}/models/{model}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": api_key}
        data = self._post_json(url, self.build_payload(request), headers)
        candidates = data.get("candidates") or []
        if not candidates:
            # Blocked prompts come back 200 with promptFeedback and no candidates.
            logger.warning("Gemini returned no candidates: %s", data.get("promptFeedback"))
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict)).strip()
