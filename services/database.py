"""
SQL persistence for the duplicate registry and extraction history (SQLAlchemy Core).

Schema
------
consumer_numbers
    id               INTEGER PRIMARY KEY
    consumer_number  TEXT NOT NULL UNIQUE
    status           TEXT NOT NULL          -- pending|success|failed
    remark           TEXT
    created_at       TIMESTAMP
    updated_at       TIMESTAMP

extraction_history
    id                            INTEGER PRIMARY KEY
    batch_id                      TEXT NOT NULL (indexed)
    timestamp                     TIMESTAMP
    total_images .. retry_success_count   INTEGER counts
    stopped_due_to_quota          BOOLEAN
    duplicates                    JSON  [{filename, consumer_number}]
    failures                      JSON  [{filename, reason}]

SQLite by default; any SQLAlchemy URL works (e.g. postgresql+psycopg2://...).
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from core.exceptions import RegistryError

logger = logging.getLogger(__name__)

metadata = MetaData()

consumer_numbers = Table(
    "consumer_numbers",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("consumer_number", String(32), nullable=False, unique=True),
    Column("status", String(16), nullable=False, default="pending"),
    Column("remark", Text, nullable=False, default=""),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)

extraction_history = Table(
    "extraction_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("batch_id", String(64), nullable=False, index=True),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    Column("total_images", Integer, nullable=False, default=0),
    Column("success_count", Integer, nullable=False, default=0),
    Column("duplicate_count", Integer, nullable=False, default=0),
    Column("failed_count", Integer, nullable=False, default=0),
    Column("pending_count", Integer, nullable=False, default=0),
    Column("first_attempt_success_count", Integer, nullable=False, default=0),
    Column("retry_success_count", Integer, nullable=False, default=0),
    Column("stopped_due_to_quota", Boolean, nullable=False, default=False),
    Column("duplicates", JSON, nullable=False, default=list),
    Column("failures", JSON, nullable=False, default=list),
)


def create_db_engine(database_url: str) -> Engine:
    """Engine for database_url with tables created. In-memory SQLite shares one connection across threads."""
    try:
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        elif database_url.startswith("sqlite"):
            # Pooled connections are handed to worker threads one at a time.
            engine = create_engine(database_url, connect_args={"check_same_thread": False, "timeout": 30})
        else:
            engine = create_engine(database_url)
        metadata.create_all(engine)
    except SQLAlchemyError as e:
        raise RegistryError(f"Database initialisation failed for {database_url}: {e}") from e
    logger.info("Database ready: %s", engine.url.render_as_string(hide_password=True))
    return engine
