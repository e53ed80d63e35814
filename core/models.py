"""
Data models for the batch extraction engine.
Uses dataclasses for DTOs; Pydantic schemas (ConsumerNumberSchema) in core.schema.

Attempt outcomes and final outcomes are closed sets of frozen dataclasses,
consumed with ``match`` by the planner, scheduler, router and aggregator.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


class JobState(str, Enum):
    """Lifecycle of one job inside a batch run."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"


class RetryKind(str, Enum):
    """Why a retryable attempt did not produce a valid consumer number."""

    MALFORMED_OUTPUT = "malformed_output"
    INVALID_VALUE = "invalid_value"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class InputFile:
    """One (bytes, name, MIME type) triple submitted to the batch entry point."""

    name: str
    data: bytes = field(repr=False)
    mime_type: str


@dataclass(frozen=True)
class ModelTier:
    """Named quality/cost level of the recognition service."""

    name: str
    model: str


@dataclass(frozen=True)
class Credential:
    """One API key rotation slot. ``id`` is safe to log; ``api_key`` is not."""

    id: str
    api_key: str = field(repr=False)


@dataclass(frozen=True)
class RecognitionRequest:
    """Everything a provider needs for one call except model and credential."""

    image_bytes: bytes = field(repr=False)
    mime_type: str
    prompt: str
    output_schema: dict[str, Any]


@dataclass(frozen=True)
class RegistryRecord:
    """One consumer number known to the duplicate registry."""

    consumer_number: str
    status: str = "pending"
    remark: str = ""
    created_at: datetime | None = None


@dataclass(frozen=True)
class Provenance:
    """Which (tier, model, credential, attempt ordinal) produced a value."""

    tier: str
    model: str
    credential_id: str
    attempt: int


# ---------------------------------------------------------------------------
# Attempt outcomes (one recognition call)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Success:
    value: str
    provenance: Provenance


@dataclass(frozen=True)
class RetryableError:
    kind: RetryKind
    detail: str


@dataclass(frozen=True)
class PermanentError:
    """Permanent for the (model, credential) pair; ``ends_chain`` stops the whole job."""

    detail: str
    ends_chain: bool = False


@dataclass(frozen=True)
class FatalBatchCondition:
    """Account-wide quota exhaustion; the batch must stop admitting jobs."""

    detail: str


AttemptOutcome = Union[Success, RetryableError, PermanentError, FatalBatchCondition]


@dataclass(frozen=True)
class Attempt:
    """Immutable record of one call made for a job."""

    tier: str
    model: str
    credential_id: str
    ordinal: int
    outcome: AttemptOutcome
    raw_value: str | None = None


# ---------------------------------------------------------------------------
# Final outcomes (one job)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Extracted:
    value: str
    provenance: Provenance
    first_attempt: bool


@dataclass(frozen=True)
class Failed:
    reason: str


@dataclass(frozen=True)
class Pending:
    """Not completed in this run; ``fatal`` marks the job that hit the quota."""

    reason: str
    fatal: bool = False


FinalOutcome = Union[Extracted, Failed, Pending]


@dataclass
class Job:
    """One input image for this batch run. Bytes are released once routed."""

    index: int
    name: str
    data: bytes = field(repr=False)
    mime_type: str
    trace_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: JobState = JobState.QUEUED
    attempts: list[Attempt] = field(default_factory=list)

    @classmethod
    def from_input(cls, index: int, item: InputFile) -> Job:
        return cls(index=index, name=item.name, data=item.data, mime_type=item.mime_type)

    def record(self, attempt: Attempt) -> None:
        self.attempts.append(attempt)

    def release(self) -> None:
        self.data = b""

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)


@dataclass
class JobResult:
    """Final outcome of one job plus where its bytes were persisted."""

    index: int
    name: str
    outcome: FinalOutcome
    saved_as: str | None = None
    duplicate: bool = False
    attempts: int = 0

    @property
    def category(self) -> str:
        match self.outcome:
            case Extracted():
                return "success"
            case Failed():
                return "failed"
            case Pending():
                return "pending"
        raise TypeError(f"Unknown outcome: {self.outcome!r}")

    def to_dict(self) -> dict[str, Any]:
        """Export for the batch report."""
        match self.outcome:
            case Extracted(value=value, provenance=prov):
                return {
                    "original": self.name,
                    "consumer_number": value,
                    "duplicate": self.duplicate,
                    "saved_as": self.saved_as,
                    "attempts": self.attempts,
                    "model": prov.model,
                    "credential": prov.credential_id,
                }
            case Failed(reason=reason):
                return {
                    "original": self.name,
                    "reason": reason,
                    "saved_as": self.saved_as,
                    "attempts": self.attempts,
                }
            case Pending(reason=reason):
                return {
                    "original": self.name,
                    "reason": reason,
                    "saved_as": self.saved_as,
                }
        raise TypeError(f"Unknown outcome: {self.outcome!r}")


@dataclass
class BatchReport:
    """Terminal artifact of one batch run."""

    batch_id: str
    success: list[JobResult] = field(default_factory=list)
    failed: list[JobResult] = field(default_factory=list)
    pending: list[JobResult] = field(default_factory=list)
    total: int = 0
    duplicate_count: int = 0
    first_attempt_success_count: int = 0
    retry_success_count: int = 0
    stopped_due_to_quota: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success_count(self) -> int:
        return len(self.success)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def pending_count(self) -> int:
        return len(self.pending)

    @property
    def duplicates(self) -> list[JobResult]:
        return [r for r in self.success if r.duplicate]

    def stats(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success_count,
            "duplicates": self.duplicate_count,
            "failed": self.failed_count,
            "pending": self.pending_count,
            "first_attempt_success": self.first_attempt_success_count,
            "retry_success": self.retry_success_count,
            "stopped_due_to_quota": self.stopped_due_to_quota,
        }

    def to_dict(self) -> dict[str, Any]:
        """Export for logging/serialization."""
        return {
            "batch_id": self.batch_id,
            "timestamp": self.timestamp.isoformat(),
            "success": [r.to_dict() for r in self.success],
            "failed": [r.to_dict() for r in self.failed],
            "pending": [r.to_dict() for r in self.pending],
            "stats": self.stats(),
        }
