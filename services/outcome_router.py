"""
Outcome router: persists each job's image to exactly one of success / failed / pending,
and registers extracted consumer numbers in the duplicate registry.

File names:
  success  <consumer_number>_<timestamp>_<suffix><ext>
  failed   <reason_tag>_<timestamp>_<suffix>_<original_name>
  pending  <timestamp>_<suffix>_<original_name>
Files are created exclusively, never overwritten. A number registered for an image that
could not be saved is removed from the registry again.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from core.exceptions import StorageError
from core.interfaces import IConsumerRegistry
from core.models import Extracted, Failed, FinalOutcome, Job, JobResult, JobState, Pending
from utils.config import StorageConfig
from utils.image_utils import extension_for

logger = logging.getLogger(__name__)

REASON_TAG_MAX_LEN = 48
NAME_ATTEMPTS = 5
STAMP_PREFIX = re.compile(r"^\d{17}_[0-9a-f]{8}_")


def sanitize_reason(reason: str) -> str:
    """First line of reason -> lower_snake tag safe for file names."""
    first = (reason or "unknown").split("\n", 1)[0].lower()
    tag = re.sub(r"[^a-z0-9]+", "_", first).strip("_")
    return (tag[:REASON_TAG_MAX_LEN].rstrip("_")) or "unknown"


def safe_original_name(name: str, mime_type: str) -> str:
    """
    Original file name with unsafe characters replaced; extension matches the MIME type.
    A stamp left by an earlier pending round is dropped so re-pended names do not grow.
    """
    path = Path(STAMP_PREFIX.sub("", Path(name or "image").name) or "image")
    stem = re.sub(r"[^A-Za-z0-9._-]+", "_", path.stem).strip("._") or "image"
    return f"{stem}{extension_for(mime_type, path.name)}"


def _timestamp(now: datetime) -> str:
    return now.strftime("%Y%m%d%H%M%S%f")[:-3]


class OutcomeRouter:
    """route(job, outcome) -> JobResult. Thread-safe: file names are unique per job, registry is atomic."""

    def __init__(
        self,
        registry: IConsumerRegistry,
        *,
        success_dir: str | Path,
        failed_dir: str | Path,
        pending_dir: str | Path,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._registry = registry
        self._success_dir = Path(success_dir)
        self._failed_dir = Path(failed_dir)
        self._pending_dir = Path(pending_dir)
        self._now = now
        for d in (self._success_dir, self._failed_dir, self._pending_dir):
            d.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, registry: IConsumerRegistry, storage: StorageConfig) -> OutcomeRouter:
        return cls(
            registry,
            success_dir=storage.success_dir,
            failed_dir=storage.failed_dir,
            pending_dir=storage.pending_dir,
        )

    @property
    def pending_dir(self) -> Path:
        return self._pending_dir

    def route(self, job: Job, outcome: FinalOutcome) -> JobResult:
        duplicate = False
        match outcome:
            case Extracted(value=value):
                # Register before writing: a registry failure must not leave the bytes in two places.
                _record, created = self._registry.upsert(value, status="success")
                duplicate = not created
                ext = extension_for(job.mime_type, job.name)
                try:
                    saved = self._persist(self._success_dir, lambda stamp: f"{value}_{stamp}{ext}", job)
                except StorageError:
                    # No success file, so no registration either.
                    if created:
                        self._registry.discard(value)
                    raise
                job.state = JobState.SUCCEEDED
                if duplicate:
                    logger.info("[%s] Duplicate consumer number %s", job.name, value)
            case Failed(reason=reason):
                tag = sanitize_reason(reason)
                original = safe_original_name(job.name, job.mime_type)
                saved = self._persist(self._failed_dir, lambda stamp: f"{tag}_{stamp}_{original}", job)
                job.state = JobState.FAILED
            case Pending():
                original = safe_original_name(job.name, job.mime_type)
                saved = self._persist(self._pending_dir, lambda stamp: f"{stamp}_{original}", job)
                job.state = JobState.PENDING
            case _:
                raise TypeError(f"Unknown outcome: {outcome!r}")

        result = JobResult(
            index=job.index,
            name=job.name,
            outcome=outcome,
            saved_as=str(saved),
            duplicate=duplicate,
            attempts=job.attempt_count,
        )
        job.release()
        return result

    def _persist(self, folder: Path, make_name: Callable[[str], str], job: Job) -> Path:
        """Write job bytes to a new file in folder; the stamp includes a random suffix so names never collide."""
        for _ in range(NAME_ATTEMPTS):
            stamp = f"{_timestamp(self._now())}_{uuid.uuid4().hex[:8]}"
            path = folder / make_name(stamp)
            try:
                with open(path, "xb") as f:
                    f.write(job.data)
            except FileExistsError:
                continue
            except OSError as e:
                raise StorageError(f"Failed to write {path}: {e}", trace_id=job.trace_id) from e
            logger.debug("[%s] Saved to %s", job.name, path)
            return path
        raise StorageError(f"Could not find a free file name in {folder} for {job.name}", trace_id=job.trace_id)
