"""
Abstract interfaces for the batch extraction engine.
Every external dependency is behind an interface; no pipeline stage depends on a concrete provider or store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol

from core.models import BatchReport, RecognitionRequest, RegistryRecord


class IRecognitionProvider(ABC):
    """Abstract recognition capability: image bytes + prompt + schema -> JSON text."""

    @abstractmethod
    def recognize(self, request: RecognitionRequest, *, model: str, api_key: str) -> str:
        """
        Run one recognition call and return the raw response text.
        Raises RecognitionServiceError on non-2xx, RecognitionTransportError when unreachable.
        """
        ...


class IConsumerRegistry(ABC):
    """Duplicate registry keyed by consumer number. Must be safe to share across threads."""

    @abstractmethod
    def find(self, consumer_number: str) -> RegistryRecord | None:
        ...

    @abstractmethod
    def upsert(
        self,
        consumer_number: str,
        *,
        status: str = "success",
        remark: str = "",
    ) -> tuple[RegistryRecord, bool]:
        """
        Insert if absent, atomically. Returns (record, created).
        created is False when the number was already registered; the existing record is returned unchanged.
        """
        ...

    @abstractmethod
    def discard(self, consumer_number: str) -> None:
        """Remove a number registered by this run whose image could not be saved."""
        ...


class IHistoryStore(ABC):
    """Persists one extraction history record per batch run."""

    @abstractmethod
    def record(self, report: BatchReport) -> None:
        ...

    @abstractmethod
    def list_recent(self, limit: int = 20) -> list[dict]:
        """Newest first."""
        ...


class IPacer(Protocol):
    """Blocks until the next call for credential_id may be issued."""

    def reserve_slot(self, credential_id: str) -> float:
        """Returns the number of seconds the caller waited."""
        ...
