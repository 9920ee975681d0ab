from __future__ import annotations

"""Local filesystem backend.

Reads and writes real files below ``root_dir``. With ``virtual_mode`` enabled
(the default) agent paths such as ``/src/app.py`` are interpreted relative to
the root and can never escape it; results are reported with the same virtual
paths the agent used.

Files are read and written without newline translation so content round-trips
exactly, CRLF and lone CR line endings included. Disk work runs in a worker
thread to keep the event loop responsive.
"""

import asyncio
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Union

from ..schemas.domain import FileRecord
from .base import EditResult, FileInfo, GrepMatch, WriteResult
from .utils import (
    check_empty_content,
    format_content_with_line_numbers,
    glob_match,
    perform_string_replacement,
)

logger = logging.getLogger(__name__)


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _read_text(path: Path) -> str:
    with open(path, "r", encoding="utf-8", newline="") as fh:
        return fh.read()


def _write_text(path: Path, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as fh:
        fh.write(content)


class FilesystemBackend:
    """Backend persisting files to a directory on the local disk."""

    def __init__(
        self,
        root_dir: Union[str, Path, None] = None,
        *,
        virtual_mode: bool = True,
        max_file_size_mb: int = 10,
    ) -> None:
        self._root = Path(root_dir or os.getcwd()).resolve()
        self._virtual = virtual_mode
        self._max_bytes = max_file_size_mb * 1024 * 1024

    @property
    def root_dir(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        if self._virtual:
            candidate = (self._root / path.lstrip("/")).resolve()
            if candidate != self._root and self._root not in candidate.parents:
                raise ValueError(f"Path '{path}' escapes the backend root")
            return candidate
        p = Path(path)
        return (p if p.is_absolute() else self._root / p).resolve()

    def _to_agent_path(self, real: Path) -> str:
        if not self._virtual:
            return str(real)
        rel = real.relative_to(self._root).as_posix()
        return "/" + rel if rel != "." else "/"

    def _walk_files(self, base: Path) -> Iterator[Path]:
        for dirpath, _dirnames, filenames in os.walk(base):
            for name in filenames:
                yield Path(dirpath) / name

    async def ls_info(self, path: str) -> List[FileInfo]:
        return await asyncio.to_thread(self._ls_info_sync, path)

    def _ls_info_sync(self, path: str) -> List[FileInfo]:
        try:
            target = self._resolve(path)
        except ValueError:
            return []
        if not target.is_dir():
            return []

        infos: List[FileInfo] = []
        for child in sorted(target.iterdir()):
            try:
                st = child.stat()
            except OSError:
                continue
            agent_path = self._to_agent_path(child)
            if child.is_dir():
                infos.append(FileInfo(path=agent_path.rstrip("/") + "/", is_dir=True, size=0, modified_at=_iso(st.st_mtime)))
            else:
                infos.append(FileInfo(path=agent_path, is_dir=False, size=st.st_size, modified_at=_iso(st.st_mtime)))
        return infos

    async def read(self, file_path: str, offset: int = 0, limit: int = 2000) -> str:
        return await asyncio.to_thread(self._read_sync, file_path, offset, limit)

    def _read_sync(self, file_path: str, offset: int, limit: int) -> str:
        try:
            target = self._resolve(file_path)
        except ValueError as exc:
            return f"Error: {exc}"
        if not target.is_file():
            return f"Error: File '{file_path}' not found"
        try:
            content = _read_text(target)
        except (OSError, UnicodeDecodeError) as exc:
            return f"Error reading file '{file_path}': {exc}"

        empty = check_empty_content(content)
        if empty:
            return empty
        lines = content.split("\n")
        if offset >= len(lines):
            return f"Error: Line offset {offset} exceeds file length ({len(lines)} lines)"
        return format_content_with_line_numbers(lines[offset : offset + limit], start_line=offset + 1)

    async def read_raw(self, file_path: str) -> FileRecord:
        return await asyncio.to_thread(self._read_raw_sync, file_path)

    def _read_raw_sync(self, file_path: str) -> FileRecord:
        try:
            target = self._resolve(file_path)
        except ValueError as exc:
            raise FileNotFoundError(str(exc)) from exc
        if not target.is_file():
            raise FileNotFoundError(f"File '{file_path}' not found")
        st = target.stat()
        return FileRecord(
            content=_read_text(target).split("\n"),
            created_at=_iso(st.st_ctime),
            modified_at=_iso(st.st_mtime),
        )

    async def write(self, file_path: str, content: str) -> WriteResult:
        return await asyncio.to_thread(self._write_sync, file_path, content)

    def _write_sync(self, file_path: str, content: str) -> WriteResult:
        try:
            target = self._resolve(file_path)
        except ValueError as exc:
            return WriteResult(error=f"Error: {exc}")
        if target.exists():
            return WriteResult(
                error=(
                    f"Cannot write to {file_path} because it already exists. "
                    "Read and then make an edit, or write to a new path."
                )
            )
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            _write_text(target, content)
        except OSError as exc:
            return WriteResult(error=f"Error writing file '{file_path}': {exc}")
        return WriteResult(path=file_path)

    async def edit(self, file_path: str, old_string: str, new_string: str, replace_all: bool = False) -> EditResult:
        return await asyncio.to_thread(self._edit_sync, file_path, old_string, new_string, replace_all)

    def _edit_sync(self, file_path: str, old_string: str, new_string: str, replace_all: bool) -> EditResult:
        try:
            target = self._resolve(file_path)
        except ValueError as exc:
            return EditResult(error=f"Error: {exc}")
        if not target.is_file():
            return EditResult(error=f"Error: File '{file_path}' not found")

        try:
            content = _read_text(target)
        except (OSError, UnicodeDecodeError) as exc:
            return EditResult(error=f"Error reading file '{file_path}': {exc}")

        result = perform_string_replacement(content, old_string, new_string, replace_all)
        if isinstance(result, str):
            return EditResult(error=result)
        new_content, occurrences = result
        try:
            _write_text(target, new_content)
        except OSError as exc:
            return EditResult(error=f"Error writing file '{file_path}': {exc}")
        return EditResult(path=file_path, occurrences=occurrences)

    async def grep_raw(
        self, pattern: str, path: Optional[str] = None, glob: Optional[str] = None
    ) -> Union[List[GrepMatch], str]:
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            return f"Invalid regex pattern: {exc}"
        return await asyncio.to_thread(self._grep_sync, regex, path, glob)

    def _grep_sync(self, regex: "re.Pattern[str]", path: Optional[str], glob: Optional[str]) -> List[GrepMatch]:
        try:
            base = self._resolve(path or "/")
        except ValueError:
            return []
        if not base.exists():
            return []

        candidates = [base] if base.is_file() else sorted(self._walk_files(base))
        matches: List[GrepMatch] = []
        for file in candidates:
            if glob and not glob_match(file.name, glob):
                continue
            try:
                if file.stat().st_size > self._max_bytes:
                    continue
                lines = _read_text(file).split("\n")
            except (OSError, UnicodeDecodeError):
                continue
            agent_path = self._to_agent_path(file)
            for idx, line in enumerate(lines):
                if line and regex.search(line):
                    matches.append(GrepMatch(path=agent_path, line=idx + 1, text=line))
        return matches

    async def glob_info(self, pattern: str, path: str = "/") -> List[FileInfo]:
        return await asyncio.to_thread(self._glob_sync, pattern, path)

    def _glob_sync(self, pattern: str, path: str) -> List[FileInfo]:
        try:
            base = self._resolve(path)
        except ValueError:
            return []
        if not base.is_dir():
            return []

        infos: List[FileInfo] = []
        for file in self._walk_files(base):
            rel = file.relative_to(base).as_posix()
            if not glob_match(rel, pattern):
                continue
            try:
                st = file.stat()
            except OSError:
                continue
            infos.append(
                FileInfo(path=self._to_agent_path(file), is_dir=False, size=st.st_size, modified_at=_iso(st.st_mtime))
            )
        infos.sort(key=lambda info: info.modified_at or "", reverse=True)
        return infos
