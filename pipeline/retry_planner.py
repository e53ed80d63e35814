"""
Retry/fallback planner: drives the attempt executor over an explicit, bounded plan.

The plan is an ordered list of rounds; each round is one model tier and the
credentials in rotation order for this job. For a job:

  - success ends the plan;
  - a transient error moves on to the next credential in the same round;
  - any other retryable error ends the round;
  - a permanent error drops that (tier, credential) pair for the rest of the job
    (or ends the job when the error says so, e.g. "not found" under the fail policy);
  - quota exhaustion drops the pair; when every pair of the last tier went that way
    the job is left pending and the batch stops admitting jobs.

A failed round is followed by exponential backoff with jitter, except after the
last round of a tier. Calls per job never exceed tiers x max_retries x credentials.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from core.interfaces import IPacer
from core.models import (
    Credential,
    Extracted,
    Failed,
    FatalBatchCondition,
    FinalOutcome,
    Job,
    ModelTier,
    Pending,
    PermanentError,
    RetryableError,
    RetryKind,
    Success,
)
from pipeline.attempt_executor import AttemptExecutor
from utils.image_utils import SUPPORTED_MIME_TYPES, is_readable_image
from utils.retry import BackoffPolicy

logger = logging.getLogger(__name__)

QUOTA_PENDING_REASON = "quota_exhausted"


@dataclass(frozen=True)
class PlanStep:
    tier: ModelTier
    credential: Credential

    @property
    def key(self) -> tuple[str, str]:
        return (self.tier.name, self.credential.id)


@dataclass(frozen=True)
class PlanRound:
    tier: ModelTier
    round_no: int
    steps: tuple[PlanStep, ...]
    last_in_tier: bool


def build_plan(
    tiers: list[ModelTier],
    credentials: list[Credential],
    max_retries: int,
    rotation_offset: int = 0,
) -> list[PlanRound]:
    """Rounds for every tier in order; credentials rotated so the job starts at rotation_offset."""
    if not credentials:
        return []
    start = rotation_offset % len(credentials)
    rotated = credentials[start:] + credentials[:start]
    plan: list[PlanRound] = []
    for tier in tiers:
        steps = tuple(PlanStep(tier, cred) for cred in rotated)
        for round_no in range(1, max_retries + 1):
            plan.append(PlanRound(tier, round_no, steps, last_in_tier=round_no == max_retries))
    return plan


class RetryPlanner:
    """resolve(job) -> Extracted | Failed | Pending. Safe to share across worker threads."""

    def __init__(
        self,
        executor: AttemptExecutor,
        pacer: IPacer,
        backoff: BackoffPolicy,
        *,
        tiers: list[ModelTier],
        credentials: list[Credential],
        max_retries: int = 5,
    ) -> None:
        if not tiers:
            raise ValueError("At least one model tier is required")
        if not credentials:
            raise ValueError("At least one credential is required")
        self._executor = executor
        self._pacer = pacer
        self._backoff = backoff
        self._tiers = list(tiers)
        self._credentials = list(credentials)
        self._max_retries = max(1, max_retries)

    @property
    def max_calls_per_job(self) -> int:
        return len(self._tiers) * self._max_retries * len(self._credentials)

    def resolve(self, job: Job) -> FinalOutcome:
        if job.mime_type.lower() not in SUPPORTED_MIME_TYPES:
            return Failed(reason=f"unsupported_mime_type {job.mime_type}")
        if not is_readable_image(job.data):
            return Failed(reason="unreadable_image")

        plan = build_plan(self._tiers, self._credentials, self._max_retries, rotation_offset=job.index)
        dead: set[tuple[str, str]] = set()
        quota_dead: set[tuple[str, str]] = set()
        last_error = "no attempt succeeded"
        ordinal = 0

        for rnd in plan:
            live = [s for s in rnd.steps if s.key not in dead]
            if not live:
                continue
            for step in live:
                self._pacer.reserve_slot(step.credential.id)
                ordinal += 1
                attempt = self._executor.attempt(job, step.tier, step.credential, ordinal)
                job.record(attempt)
                match attempt.outcome:
                    case Success(value=value, provenance=provenance):
                        return Extracted(value=value, provenance=provenance, first_attempt=ordinal == 1)
                    case RetryableError(kind=RetryKind.TRANSIENT, detail=detail):
                        last_error = detail
                        continue
                    case RetryableError(detail=detail):
                        last_error = detail
                        break
                    case PermanentError(detail=detail, ends_chain=True):
                        return Failed(reason=detail)
                    case PermanentError(detail=detail):
                        dead.add(step.key)
                        last_error = detail
                    case FatalBatchCondition(detail=detail):
                        dead.add(step.key)
                        quota_dead.add(step.key)
                        last_error = detail
            if not rnd.last_in_tier and any(s.key not in dead for s in rnd.steps):
                self._backoff.wait(rnd.round_no, label=f"[{job.name}] {rnd.tier.model}")

        last_tier_steps = plan[-1].steps if plan else ()
        # Pending only when quota, not a per-image error, closed the last tier.
        if last_tier_steps and all(s.key in quota_dead for s in last_tier_steps):
            logger.error("[%s] All usable keys exhausted their quota; job left pending", job.name)
            return Pending(reason=QUOTA_PENDING_REASON, fatal=True)
        logger.error("[%s] PERMANENT FAILURE after %s attempts: %s", job.name, ordinal, last_error.split("\n")[0])
        return Failed(reason=last_error)
