from __future__ import annotations

"""JSON-file checkpoint saver for local development.

Each thread is stored as ``{dir}/{safe_thread_id}.json``. Writes go to a
temporary file first and are moved into place with ``os.replace`` so a crash
never leaves a half-written checkpoint. Unreadable files load as None.
File access runs in a worker thread.
"""

import asyncio
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from ...core.config import settings
from ..errors import PersistenceError
from ..schemas.domain import Checkpoint
from .base import stamp

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")


class FileSaver:
    def __init__(self, directory: Union[str, Path, None] = None) -> None:
        self._dir = Path(directory or settings.checkpoint_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def dir(self) -> Path:
        return self._dir

    def _path(self, thread_id: str) -> Path:
        return self._dir / f"{_UNSAFE.sub('_', thread_id)}.json"

    def _read(self, path: Path) -> Optional[Checkpoint]:
        try:
            return Checkpoint.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as exc:
            logger.warning("ignoring unreadable checkpoint %s: %s", path, exc)
            return None

    async def save(self, checkpoint: Checkpoint) -> None:
        """
        Write the checkpoint atomically.

        Raises:
            PersistenceError: the file could not be written.
        """
        await asyncio.to_thread(self._save_sync, checkpoint)

    def _save_sync(self, checkpoint: Checkpoint) -> None:
        path = self._path(checkpoint.thread_id)
        previous = self._read(path) if path.exists() else None
        data = stamp(checkpoint, previous).model_dump_json(indent=2)

        try:
            fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".tmp-", suffix=".json")
        except OSError as exc:
            raise PersistenceError(f"cannot write checkpoint {path}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
            os.replace(tmp, path)
        except OSError as exc:
            Path(tmp).unlink(missing_ok=True)
            raise PersistenceError(f"cannot write checkpoint {path}: {exc}") from exc
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    async def load(self, thread_id: str) -> Optional[Checkpoint]:
        return await asyncio.to_thread(self._load_sync, thread_id)

    def _load_sync(self, thread_id: str) -> Optional[Checkpoint]:
        path = self._path(thread_id)
        if not path.exists():
            return None
        return self._read(path)

    async def list(self) -> List[str]:
        return await asyncio.to_thread(self._list_sync)

    def _list_sync(self) -> List[str]:
        if not self._dir.exists():
            return []
        thread_ids: List[str] = []
        for path in sorted(self._dir.glob("*.json")):
            if path.name.startswith(".tmp-"):
                continue
            try:
                thread_ids.append(json.loads(path.read_text(encoding="utf-8"))["thread_id"])
            except (OSError, ValueError, KeyError, TypeError):
                thread_ids.append(path.stem)
        return thread_ids

    async def delete(self, thread_id: str) -> None:
        await asyncio.to_thread(self._path(thread_id).unlink, missing_ok=True)

    async def exists(self, thread_id: str) -> bool:
        return await asyncio.to_thread(self._path(thread_id).exists)
