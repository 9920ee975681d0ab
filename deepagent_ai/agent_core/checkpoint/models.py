from __future__ import annotations

"""SQLAlchemy ORM models for checkpoint persistence.

One row per thread. ``payload`` holds the full JSON-serialized
``Checkpoint``; ``step`` and the timestamps are duplicated into columns for
listing and housekeeping queries.

Table names are prefixed with ``da_`` to avoid collisions in shared databases.
"""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class CheckpointRow(Base):
    """Row model for ``da_checkpoints``."""

    __tablename__ = "da_checkpoints"

    thread_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    step: Mapped[int] = mapped_column(Integer, default=0)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
