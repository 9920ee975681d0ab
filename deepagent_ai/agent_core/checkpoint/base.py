from __future__ import annotations

"""Checkpoint store contract.

A checkpoint saver persists one ``Checkpoint`` per thread id. Saving the
same thread again overwrites the previous snapshot (its ``created_at`` is
kept, ``updated_at`` is refreshed). Implementations must make ``save``
all-or-nothing: a reader never observes a partially written checkpoint.
"""

from datetime import datetime, timezone
from typing import List, Optional, Protocol

from ..schemas.domain import Checkpoint


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CheckpointSaver(Protocol):
    """Pluggable persistence for run snapshots."""

    async def save(self, checkpoint: Checkpoint) -> None:
        """
        Persist a checkpoint, replacing any previous one for its thread.

        Args:
            checkpoint: Snapshot to store.
        """
        ...

    async def load(self, thread_id: str) -> Optional[Checkpoint]:
        """
        Load the checkpoint of a thread.

        Args:
            thread_id: Opaque thread identifier.

        Returns:
            The checkpoint, or None when the thread has none.
        """
        ...

    async def list(self) -> List[str]:
        """Return the thread ids that currently have a checkpoint."""
        ...

    async def delete(self, thread_id: str) -> None:
        """Remove a thread's checkpoint; missing threads are ignored."""
        ...

    async def exists(self, thread_id: str) -> bool:
        """Return True when ``thread_id`` has a checkpoint."""
        ...


def stamp(checkpoint: Checkpoint, previous: Optional[Checkpoint]) -> Checkpoint:
    """Return a copy with ``updated_at`` refreshed and ``created_at`` kept from ``previous``."""
    update = {"updated_at": _utc_now()}
    if previous is not None:
        update["created_at"] = previous.created_at
    return checkpoint.model_copy(update=update, deep=True)
