from __future__ import annotations

"""Checkpoint saver over a ``KeyValueStore``.

Checkpoints live under the namespace ``(namespace, "checkpoints")`` keyed by
thread id, so the same store instance can also serve ``PersistentBackend``.
"""

from typing import List, Optional, Tuple

from pydantic import ValidationError

from ..backends.persistent import KeyValueStore
from ..errors import PersistenceError
from ..schemas.domain import Checkpoint
from .base import stamp


class KeyValueStoreSaver:
    def __init__(self, store: KeyValueStore, *, namespace: str = "default") -> None:
        self._store = store
        self._namespace: Tuple[str, ...] = (namespace, "checkpoints")

    async def save(self, checkpoint: Checkpoint) -> None:
        try:
            previous = await self.load(checkpoint.thread_id)
        except PersistenceError:
            # An unreadable entry is overwritten.
            previous = None
        await self._store.put(
            self._namespace, checkpoint.thread_id, stamp(checkpoint, previous).model_dump(mode="json")
        )

    async def load(self, thread_id: str) -> Optional[Checkpoint]:
        """
        Load a thread's checkpoint.

        Raises:
            PersistenceError: the stored value is not a valid checkpoint.
        """
        value = await self._store.get(self._namespace, thread_id)
        if value is None:
            return None
        try:
            return Checkpoint.model_validate(value)
        except ValidationError as exc:
            raise PersistenceError(f"stored checkpoint for thread {thread_id} is invalid: {exc}") from exc

    async def list(self) -> List[str]:
        return [key for key, _ in await self._store.list(self._namespace)]

    async def delete(self, thread_id: str) -> None:
        await self._store.delete(self._namespace, thread_id)

    async def exists(self, thread_id: str) -> bool:
        return await self._store.get(self._namespace, thread_id) is not None
