from __future__ import annotations

"""In-memory backend over ``AgentState.files``.

This is the default backend. Files live in the run's State Store, so they are
checkpointed with the run and shared with subagents by reference.
"""

import logging
from typing import List, Optional, Union

from ..schemas.domain import FileRecord
from ..state import AgentState
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


class StateBackend:
    """Backend whose storage is the ``files`` map of an ``AgentState``."""

    def __init__(self, state: AgentState) -> None:
        self._state = state

    @property
    def state(self) -> AgentState:
        return self._state

    async def ls_info(self, path: str) -> List[FileInfo]:
        return list_directory(self._state.files.items(), path)

    async def read(self, file_path: str, offset: int = 0, limit: int = 2000) -> str:
        record = self._state.files.get(file_path)
        if record is None:
            return f"Error: File '{file_path}' not found"
        return format_read_response(record, offset, limit)

    async def read_raw(self, file_path: str) -> FileRecord:
        record = self._state.files.get(file_path)
        if record is None:
            raise FileNotFoundError(f"File '{file_path}' not found")
        return record

    async def write(self, file_path: str, content: str) -> WriteResult:
        if file_path in self._state.files:
            return WriteResult(
                error=(
                    f"Cannot write to {file_path} because it already exists. "
                    "Read and then make an edit, or write to a new path."
                )
            )
        self._state.files[file_path] = create_file_record(content)
        logger.debug("state backend wrote %s", file_path)
        return WriteResult(path=file_path)

    async def edit(self, file_path: str, old_string: str, new_string: str, replace_all: bool = False) -> EditResult:
        record = self._state.files.get(file_path)
        if record is None:
            return EditResult(error=f"Error: File '{file_path}' not found")

        result = perform_string_replacement(file_record_to_string(record), old_string, new_string, replace_all)
        if isinstance(result, str):
            return EditResult(error=result)

        new_content, occurrences = result
        self._state.files[file_path] = update_file_record(record, new_content)
        return EditResult(path=file_path, occurrences=occurrences)

    async def grep_raw(
        self, pattern: str, path: Optional[str] = None, glob: Optional[str] = None
    ) -> Union[List[GrepMatch], str]:
        return grep_matches_from_files(self._state.files, pattern, path, glob)

    async def glob_info(self, pattern: str, path: str = "/") -> List[FileInfo]:
        return glob_search_files(self._state.files, pattern, path)
