"""
Abstract base for all recognition providers.
Pipeline depends only on IRecognitionProvider; HTTP error mapping lives here so the
attempt executor sees only RecognitionServiceError / RecognitionTransportError.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import requests

from core.exceptions import RecognitionServiceError, RecognitionTransportError
from core.interfaces import IRecognitionProvider
from core.models import RecognitionRequest

logger = logging.getLogger(__name__)


def _error_message(resp: requests.Response) -> str:
    """Best-effort error text: JSON {"error": {"message": ...}} or raw body."""
    try:
        data = resp.json()
    except ValueError:
        return (resp.text or "").strip()[:500] or resp.reason or ""
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict):
        parts = [str(err.get("status") or err.get("type") or ""), str(err.get("message") or "")]
        return ": ".join(p for p in parts if p)
    return str(data)[:500]


class BaseRecognitionProvider(IRecognitionProvider, ABC):
    """Shared HTTP plumbing. Subclasses build the payload and read the text out of the response."""

    def __init__(self, base_url: str, timeout_sec: int = 60, session: requests.Session | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_sec
        self._session = session or requests.Session()

    @abstractmethod
    def recognize(self, request: RecognitionRequest, *, model: str, api_key: str) -> str:
        ...

    def _post_json(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        try:
            resp = self._session.post(url, json=payload, headers=headers, timeout=self._timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            raise RecognitionTransportError(f"Recognition service unreachable: {e}") from e
        except requests.RequestException as e:
            raise RecognitionServiceError(f"Recognition request failed: {e}") from e
        if not resp.ok:
            message = _error_message(resp)
            logger.debug("Recognition HTTP %s: %s", resp.status_code, message)
            raise RecognitionServiceError(f"HTTP {resp.status_code}: {message}", status_code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise RecognitionServiceError(f"Recognition response is not JSON: {e}", status_code=resp.status_code) from e
        return data if isinstance(data, dict) else {}
