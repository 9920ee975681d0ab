from __future__ import annotations

"""Process-local checkpoint saver.

Keys are ``"{namespace}:{thread_id}"`` so several logical stores can share one
process. Checkpoints are deep-copied on save and load.
"""

from typing import Dict, List, Optional

from ..schemas.domain import Checkpoint
from .base import stamp


class MemorySaver:
    def __init__(self, *, namespace: str = "default") -> None:
        self._namespace = namespace
        self._store: Dict[str, Checkpoint] = {}

    def _key(self, thread_id: str) -> str:
        return f"{self._namespace}:{thread_id}"

    async def save(self, checkpoint: Checkpoint) -> None:
        key = self._key(checkpoint.thread_id)
        self._store[key] = stamp(checkpoint, self._store.get(key))

    async def load(self, thread_id: str) -> Optional[Checkpoint]:
        cp = self._store.get(self._key(thread_id))
        return cp.model_copy(deep=True) if cp is not None else None

    async def list(self) -> List[str]:
        prefix = f"{self._namespace}:"
        return [key[len(prefix) :] for key in self._store if key.startswith(prefix)]

    async def delete(self, thread_id: str) -> None:
        self._store.pop(self._key(thread_id), None)

    async def exists(self, thread_id: str) -> bool:
        return self._key(thread_id) in self._store

    def clear(self) -> None:
        prefix = f"{self._namespace}:"
        for key in [k for k in self._store if k.startswith(prefix)]:
            del self._store[key]

    def size(self) -> int:
        prefix = f"{self._namespace}:"
        return sum(1 for key in self._store if key.startswith(prefix))
