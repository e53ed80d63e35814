"""
Extraction engine: batch entry point.

  files -> jobs -> BatchProcessor (planner + router per job) -> finalize -> history

Built from AppConfig with from_config(); every collaborator can be injected for tests.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from core.exceptions import BillExtractionError
from core.interfaces import IConsumerRegistry, IHistoryStore, IRecognitionProvider
from core.models import BatchReport, InputFile, Job
from pipeline.aggregator import finalize
from pipeline.attempt_executor import AttemptExecutor
from pipeline.batch_processor import BatchProcessor
from pipeline.pacing import create_pacer
from pipeline.retry_planner import RetryPlanner
from providers.factory import create_provider
from services.consumer_registry import SqlConsumerRegistry
from services.database import create_db_engine
from services.history_store import SqlHistoryStore
from services.outcome_router import OutcomeRouter
from utils.config import AppConfig
from utils.folder_reader import load_input_files
from utils.logger import log_structured
from utils.retry import BackoffPolicy

logger = logging.getLogger(__name__)


def new_batch_id() -> str:
    return f"{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S')}_{uuid.uuid4().hex[:6]}"


class ExtractionEngine:
    """Runs batches of (bytes, name, MIME type) inputs to a BatchReport."""

    def __init__(
        self,
        processor: BatchProcessor,
        router: OutcomeRouter,
        history: IHistoryStore | None = None,
    ) -> None:
        self._processor = processor
        self._router = router
        self._history = history

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        provider: IRecognitionProvider | None = None,
        registry: IConsumerRegistry | None = None,
        history: IHistoryStore | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> ExtractionEngine:
        """
        Wire the whole engine. A SQL registry and history store are created from
        storage.database_url unless a registry is injected.
        """
        credentials = config.require_credentials()
        rec = config.recognition
        if provider is None:
            provider = create_provider(rec.provider, base_url=rec.base_url or None, timeout_sec=rec.timeout_sec)
        if registry is None:
            db = create_db_engine(config.storage.database_url)
            registry = SqlConsumerRegistry(db)
            if history is None:
                history = SqlHistoryStore(db)

        planner = RetryPlanner(
            AttemptExecutor.from_config(provider, config),
            create_pacer(config.pacing, clock=clock, sleep=sleep),
            BackoffPolicy(
                base_sec=config.retry.backoff_base_sec,
                multiplier=config.retry.backoff_multiplier,
                jitter_sec=config.retry.jitter_sec,
                sleep=sleep,
            ),
            tiers=rec.model_tiers(),
            credentials=credentials,
            max_retries=config.retry.max_retries,
        )
        router = OutcomeRouter.from_config(registry, config.storage)
        logger.info(
            "Engine ready: provider=%s tiers=%s credentials=%s workers=%s pacing=%s/%s",
            rec.provider, ",".join(rec.tiers), len(credentials), config.max_workers,
            config.pacing.mode, config.pacing.scope,
        )
        return cls(BatchProcessor(planner, router, max_workers=config.max_workers), router, history)

    def run_batch(self, files: list[InputFile], batch_id: str | None = None) -> BatchReport:
        batch_id = batch_id or new_batch_id()
        jobs = [Job.from_input(i, item) for i, item in enumerate(files)]
        logger.info("Batch %s: %s image(s), %s worker(s)", batch_id, len(jobs), self._processor.max_workers)

        results, stopped = self._processor.run(jobs)
        report = finalize(batch_id, results, stopped_due_to_quota=stopped)

        if self._history is not None:
            try:
                self._history.record(report)
            except BillExtractionError as e:
                logger.error("Batch %s: history not recorded: %s", batch_id, e)

        log_structured(logger, logging.INFO, f"Batch {batch_id} complete:", **report.stats())
        return report

    def run_folder(self, folder: str | Path, *, keep_input: bool = False, batch_id: str | None = None) -> BatchReport:
        """Run every image in folder; sources are removed afterwards unless keep_input."""
        loaded = load_input_files(folder)
        report = self.run_batch([item for _, item in loaded], batch_id=batch_id)
        if not keep_input:
            _remove_sources(path for path, _ in loaded)
        return report

    def retry_pending(self, batch_id: str | None = None) -> BatchReport:
        """
        Resubmit everything in the pending folder. Each source file is removed once its job
        has been routed; a job that is pending again was re-persisted under a new name.
        """
        loaded = load_input_files(self._router.pending_dir)
        if not loaded:
            logger.info("No pending images in %s", self._router.pending_dir)
        report = self.run_batch([item for _, item in loaded], batch_id=batch_id)
        _remove_sources(path for path, _ in loaded)
        return report


def _remove_sources(paths) -> None:
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("Could not remove processed file %s: %s", path, e)
