"""
Duplicate registry for extracted consumer numbers.

Check-and-insert is atomic in both implementations: the SQL registry relies on the
UNIQUE constraint (the database decides who inserted first), the in-memory registry
holds its own lock. Callers never need application-level locking.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import Engine, RowMapping
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.exceptions import RegistryError
from core.interfaces import IConsumerRegistry
from core.models import RegistryRecord
from services.database import consumer_numbers

logger = logging.getLogger(__name__)


def _to_record(row: RowMapping) -> RegistryRecord:
    return RegistryRecord(
        consumer_number=row["consumer_number"],
        status=row["status"],
        remark=row["remark"] or "",
        created_at=row["created_at"],
    )


class SqlConsumerRegistry(IConsumerRegistry):
    """consumer_numbers table; upsert = INSERT, falling back to SELECT on unique violation."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def find(self, consumer_number: str) -> RegistryRecord | None:
        stmt = select(consumer_numbers).where(consumer_numbers.c.consumer_number == consumer_number)
        try:
            with self._engine.connect() as conn:
                row = conn.execute(stmt).mappings().first()
        except SQLAlchemyError as e:
            raise RegistryError(f"Registry lookup failed for {consumer_number}: {e}") from e
        return _to_record(row) if row else None

    def upsert(
        self,
        consumer_number: str,
        *,
        status: str = "success",
        remark: str = "",
    ) -> tuple[RegistryRecord, bool]:
        now = datetime.now(timezone.utc)
        stmt = insert(consumer_numbers).values(
            consumer_number=consumer_number,
            status=status,
            remark=remark,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._engine.begin() as conn:
                conn.execute(stmt)
        except IntegrityError:
            existing = self.find(consumer_number)
            if existing is None:
                raise RegistryError(f"Registry insert for {consumer_number} conflicted but no row was found")
            return existing, False
        except SQLAlchemyError as e:
            raise RegistryError(f"Registry insert failed for {consumer_number}: {e}") from e
        logger.debug("Registered consumer number %s", consumer_number)
        return RegistryRecord(consumer_number, status, remark, now), True

    def discard(self, consumer_number: str) -> None:
        stmt = delete(consumer_numbers).where(consumer_numbers.c.consumer_number == consumer_number)
        try:
            with self._engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as e:
            raise RegistryError(f"Registry delete failed for {consumer_number}: {e}") from e
        logger.debug("Discarded consumer number %s", consumer_number)

    def count(self) -> int:
        with self._engine.connect() as conn:
            return int(conn.execute(select(func.count()).select_from(consumer_numbers)).scalar_one())

    def all_numbers(self) -> list[str]:
        """Newest first."""
        stmt = select(consumer_numbers.c.consumer_number).order_by(consumer_numbers.c.id.desc())
        with self._engine.connect() as conn:
            return [r[0] for r in conn.execute(stmt)]


class InMemoryConsumerRegistry(IConsumerRegistry):
    """Process-local registry for dry runs and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, RegistryRecord] = {}

    def find(self, consumer_number: str) -> RegistryRecord | None:
        with self._lock:
            return self._records.get(consumer_number)

    def upsert(
        self,
        consumer_number: str,
        *,
        status: str = "success",
        remark: str = "",
    ) -> tuple[RegistryRecord, bool]:
        with self._lock:
            existing = self._records.get(consumer_number)
            if existing is not None:
                return existing, False
            record = RegistryRecord(consumer_number, status, remark, datetime.now(timezone.utc))
            self._records[consumer_number] = record
            return record, True

    def discard(self, consumer_number: str) -> None:
        with self._lock:
            self._records.pop(consumer_number, None)

    def count(self) -> int:
        with self._lock:
            return len(self._records)
