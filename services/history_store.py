"""Extraction history: one row per batch run (counts, duplicates, failures)."""

from __future__ import annotations

import logging
import threading
from typing import Any

from sqlalchemy import insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import RegistryError
from core.interfaces import IHistoryStore
from core.models import BatchReport, Extracted, Failed
from services.database import extraction_history

logger = logging.getLogger(__name__)


def history_row(report: BatchReport) -> dict[str, Any]:
    """Flatten a report into the extraction_history columns."""
    duplicates = [
        {"filename": r.name, "consumer_number": r.outcome.value}
        for r in report.duplicates
        if isinstance(r.outcome, Extracted)
    ]
    failures = [
        {"filename": r.name, "reason": r.outcome.reason}
        for r in report.failed
        if isinstance(r.outcome, Failed)
    ]
    return {
        "batch_id": report.batch_id,
        "timestamp": report.timestamp,
        "total_images": report.total,
        "success_count": report.success_count,
        "duplicate_count": report.duplicate_count,
        "failed_count": report.failed_count,
        "pending_count": report.pending_count,
        "first_attempt_success_count": report.first_attempt_success_count,
        "retry_success_count": report.retry_success_count,
        "stopped_due_to_quota": report.stopped_due_to_quota,
        "duplicates": duplicates,
        "failures": failures,
    }


class SqlHistoryStore(IHistoryStore):
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def record(self, report: BatchReport) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(insert(extraction_history).values(**history_row(report)))
        except SQLAlchemyError as e:
            raise RegistryError(f"Failed to record history for batch {report.batch_id}: {e}") from e
        logger.info("History recorded for batch %s", report.batch_id)

    def list_recent(self, limit: int = 20) -> list[dict]:
        stmt = select(extraction_history).order_by(extraction_history.c.id.desc()).limit(limit)
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            raise RegistryError(f"Failed to read extraction history: {e}") from e
        return [{k: v for k, v in row.items() if k != "id"} for row in rows]


class InMemoryHistoryStore(IHistoryStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: list[dict[str, Any]] = []

    def record(self, report: BatchReport) -> None:
        with self._lock:
            self._rows.append(history_row(report))

    def list_recent(self, limit: int = 20) -> list[dict]:
        with self._lock:
            return list(reversed(self._rows))[:limit]
