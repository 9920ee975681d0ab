from __future__ import annotations

"""SQLAlchemy async checkpoint saver.

Usage
-----

- Create an async engine with ``create_engine``.
- Create tables with ``create_all`` (tests/dev; production typically uses
  migrations).
- Build the saver from a session factory (``create_sessionmaker``), or use
  ``SqlCheckpointSaver.from_url`` for both steps at once.

Transaction model
-----------------

Each method opens an ``AsyncSession``, performs its operation and commits,
so a checkpoint is durable when ``save`` returns and never partially written.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..errors import PersistenceError
from ..schemas.domain import Checkpoint
from .base import stamp
from .models import Base, CheckpointRow


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Postgres URLs are normalized to the asyncpg driver and plain ``sqlite://``
    URLs to aiosqlite.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    url = re.sub(r"^sqlite://", "sqlite+aiosqlite://", url, count=1)
    if url.startswith("postgresql"):
        return create_async_engine(url, pool_pre_ping=True)
    return create_async_engine(url)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _parse(payload: object) -> Optional[Checkpoint]:
    try:
        return Checkpoint.model_validate(payload)
    except ValidationError:
        return None


@dataclass(frozen=True)
class SqlCheckpointSaver:
    """SQL implementation of ``CheckpointSaver``."""

    session_factory: async_sessionmaker[AsyncSession]

    @classmethod
    async def from_url(cls, db_url: str) -> "SqlCheckpointSaver":
        """Create engine, tables and saver for ``db_url``."""
        engine = create_engine(db_url)
        await create_all(engine)
        return cls(session_factory=create_sessionmaker(engine))

    async def save(self, checkpoint: Checkpoint) -> None:
        """
        Insert or replace the checkpoint row for ``checkpoint.thread_id``.

        Args:
            checkpoint: Snapshot to persist.

        Raises:
            PersistenceError: the database rejected the write.
        """
        try:
            async with self.session_factory() as s:
                row = await s.get(CheckpointRow, checkpoint.thread_id)
                previous = _parse(row.payload) if row is not None else None
                cp = stamp(checkpoint, previous)
                payload = cp.model_dump(mode="json")
                if row is None:
                    s.add(
                        CheckpointRow(
                            thread_id=cp.thread_id,
                            step=cp.step,
                            payload=payload,
                            created_at=cp.created_at,
                            updated_at=cp.updated_at,
                        )
                    )
                else:
                    row.step = cp.step
                    row.payload = payload
                    row.updated_at = cp.updated_at
                await s.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to save checkpoint for thread {checkpoint.thread_id}: {exc}") from exc

    async def load(self, thread_id: str) -> Optional[Checkpoint]:
        """
        Load a thread's checkpoint.

        Args:
            thread_id: Thread identifier.

        Returns:
            The checkpoint if present, otherwise None.

        Raises:
            PersistenceError: the row could not be read or does not hold a valid checkpoint.
        """
        try:
            async with self.session_factory() as s:
                row = await s.get(CheckpointRow, thread_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to load checkpoint for thread {thread_id}: {exc}") from exc
        if row is None:
            return None
        cp = _parse(row.payload)
        if cp is None:
            raise PersistenceError(f"stored checkpoint for thread {thread_id} is invalid")
        return cp

    async def list(self) -> List[str]:
        try:
            async with self.session_factory() as s:
                result = await s.execute(select(CheckpointRow.thread_id).order_by(CheckpointRow.updated_at.desc()))
                return [r for r in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to list checkpoints: {exc}") from exc

    async def delete(self, thread_id: str) -> None:
        try:
            async with self.session_factory() as s:
                await s.execute(delete(CheckpointRow).where(CheckpointRow.thread_id == thread_id))
                await s.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to delete checkpoint for thread {thread_id}: {exc}") from exc

    async def exists(self, thread_id: str) -> bool:
        try:
            async with self.session_factory() as s:
                return await s.get(CheckpointRow, thread_id) is not None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to look up checkpoint for thread {thread_id}: {exc}") from exc
