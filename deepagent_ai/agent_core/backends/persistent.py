from __future__ import annotations

"""Backend over a pluggable key-value store.

``KeyValueStore`` is a small async interface keyed by a hierarchical
namespace (a tuple of strings) plus a key. Anything that can implement
``get/put/delete/list`` (Redis, a SQL table, a document store) can hold the
agent's files. ``InMemoryStore`` is the reference implementation.

Files are stored under the namespace ``(namespace, "filesystem")`` with the
file path as key and a serialized ``FileRecord`` as value. The same store can
back ``KeyValueStoreSaver`` under a different namespace.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union

from ..schemas.domain import FileRecord
from .base import EditResult, FileInfo, GrepMatch, WriteResult
from .utils import (
    create_file_record,
    file_record_to_string,
    format_read_response,
    glob_search_files,
    grep_matches_from_files,
    list_directory,
    perform_string_replacement,
    update_file_record,
)

logger = logging.getLogger(__name__)

Namespace = Sequence[str]


class KeyValueStore(Protocol):
    """Async key-value storage with hierarchical namespaces."""

    async def get(self, namespace: Namespace, key: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a value.

        Args:
            namespace: Hierarchical namespace, e.g. ``("project-1", "filesystem")``.
            key: Key inside the namespace.

        Returns:
            The stored mapping, or None when absent.
        """
        ...

    async def put(self, namespace: Namespace, key: str, value: Dict[str, Any]) -> None:
        """Insert or overwrite a value."""
        ...

    async def delete(self, namespace: Namespace, key: str) -> None:
        """Remove a value; missing keys are ignored."""
        ...

    async def list(self, namespace: Namespace) -> List[Tuple[str, Dict[str, Any]]]:
        """Return ``(key, value)`` pairs stored directly in ``namespace`` (no sub-namespaces)."""
        ...


class InMemoryStore:
    """Process-local ``KeyValueStore``; contents vanish with the process."""

    def __init__(self) -> None:
        self._data: Dict[Tuple[Tuple[str, ...], str], Dict[str, Any]] = {}

    async def get(self, namespace: Namespace, key: str) -> Optional[Dict[str, Any]]:
        value = self._data.get((tuple(namespace), key))
        return dict(value) if value is not None else None

    async def put(self, namespace: Namespace, key: str, value: Dict[str, Any]) -> None:
        self._data[(tuple(namespace), key)] = dict(value)

    async def delete(self, namespace: Namespace, key: str) -> None:
        self._data.pop((tuple(namespace), key), None)

    async def list(self, namespace: Namespace) -> List[Tuple[str, Dict[str, Any]]]:
        ns = tuple(namespace)
        return [(key, dict(value)) for (item_ns, key), value in self._data.items() if item_ns == ns]

    def clear(self) -> None:
        self._data.clear()

    def size(self) -> int:
        return len(self._data)


class PersistentBackend:
    """Backend storing ``FileRecord`` values in a ``KeyValueStore``."""

    def __init__(self, store: KeyValueStore, *, namespace: str = "default") -> None:
        self._store = store
        self._namespace: Tuple[str, ...] = (namespace, "filesystem")

    async def _load(self, file_path: str) -> Optional[FileRecord]:
        value = await self._store.get(self._namespace, file_path)
        if value is None:
            return None
        return FileRecord.model_validate(value)

    async def _all(self) -> Dict[str, FileRecord]:
        items = await self._store.list(self._namespace)
        return {key: FileRecord.model_validate(value) for key, value in items}

    async def ls_info(self, path: str) -> List[FileInfo]:
        return list_directory((await self._all()).items(), path)

    async def read(self, file_path: str, offset: int = 0, limit: int = 2000) -> str:
        record = await self._load(file_path)
        if record is None:
            return f"Error: File '{file_path}' not found"
        return format_read_response(record, offset, limit)

    async def read_raw(self, file_path: str) -> FileRecord:
        record = await self._load(file_path)
        if record is None:
            raise FileNotFoundError(f"File '{file_path}' not found")
        return record

    async def write(self, file_path: str, content: str) -> WriteResult:
        if await self._load(file_path) is not None:
            return WriteResult(
                error=(
                    f"Cannot write to {file_path} because it already exists. "
                    "Read and then make an edit, or write to a new path."
                )
            )
        await self._store.put(self._namespace, file_path, create_file_record(content).model_dump())
        return WriteResult(path=file_path)

    async def edit(self, file_path: str, old_string: str, new_string: str, replace_all: bool = False) -> EditResult:
        record = await self._load(file_path)
        if record is None:
            return EditResult(error=f"Error: File '{file_path}' not found")
        result = perform_string_replacement(file_record_to_string(record), old_string, new_string, replace_all)
        if isinstance(result, str):
            return EditResult(error=result)
        new_content, occurrences = result
        await self._store.put(self._namespace, file_path, update_file_record(record, new_content).model_dump())
        return EditResult(path=file_path, occurrences=occurrences)

    async def grep_raw(
        self, pattern: str, path: Optional[str] = None, glob: Optional[str] = None
    ) -> Union[List[GrepMatch], str]:
        return grep_matches_from_files(await self._all(), pattern, path, glob)

    async def glob_info(self, pattern: str, path: str = "/") -> List[FileInfo]:
        return glob_search_files(await self._all(), pattern, path)

    async def delete_file(self, file_path: str) -> Optional[str]:
        """Remove a file; returns an error string when it does not exist."""
        if await self._load(file_path) is None:
            return f"Error: File '{file_path}' not found"
        await self._store.delete(self._namespace, file_path)
        return None
