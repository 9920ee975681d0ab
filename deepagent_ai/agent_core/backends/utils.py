"""Shared helpers for backend implementations.

Formatting, string replacement, path normalization and in-memory glob/grep
used by every provider that keeps ``FileRecord`` objects.
"""

from __future__ import annotations

import posixpath
import re
from datetime import datetime, timezone
from functools import lru_cache
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..schemas.domain import FileRecord
from .base import FileInfo, GrepMatch

EMPTY_CONTENT_WARNING = "System reminder: File exists but has empty contents"
MAX_LINE_LENGTH = 10_000
LINE_NUMBER_WIDTH = 6
DEFAULT_READ_OFFSET = 0
DEFAULT_READ_LIMIT = 2000


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def format_content_with_line_numbers(content: Union[str, Sequence[str]], start_line: int = 1) -> str:
    """Format lines ``cat -n`` style, splitting over-long lines into ``N.k`` chunks."""
    if isinstance(content, str):
        lines = content.split("\n")
        if lines and lines[-1] == "":
            lines = lines[:-1]
    else:
        lines = list(content)

    out: List[str] = []
    for i, line in enumerate(lines):
        num = i + start_line
        if len(line) <= MAX_LINE_LENGTH:
            out.append(f"{num:>{LINE_NUMBER_WIDTH}}\t{line}")
            continue
        for chunk_idx in range(0, (len(line) + MAX_LINE_LENGTH - 1) // MAX_LINE_LENGTH):
            chunk = line[chunk_idx * MAX_LINE_LENGTH : (chunk_idx + 1) * MAX_LINE_LENGTH]
            label = str(num) if chunk_idx == 0 else f"{num}.{chunk_idx}"
            out.append(f"{label:>{LINE_NUMBER_WIDTH}}\t{chunk}")
    return "\n".join(out)


def check_empty_content(content: str) -> Optional[str]:
    if not content or not content.strip():
        return EMPTY_CONTENT_WARNING
    return None


def file_record_to_string(record: FileRecord) -> str:
    return "\n".join(record.content)


def create_file_record(content: str, created_at: Optional[str] = None) -> FileRecord:
    now = _now_iso()
    return FileRecord(content=content.split("\n"), created_at=created_at or now, modified_at=now)


def update_file_record(record: FileRecord, content: str) -> FileRecord:
    return FileRecord(content=content.split("\n"), created_at=record.created_at, modified_at=_now_iso())


def format_read_response(record: FileRecord, offset: int, limit: int) -> str:
    """Render a slice of ``record`` for the model, or an error/empty reminder."""
    content = file_record_to_string(record)
    empty = check_empty_content(content)
    if empty:
        return empty

    lines = content.split("\n")
    if offset >= len(lines):
        return f"Error: Line offset {offset} exceeds file length ({len(lines)} lines)"
    selected = lines[offset : min(offset + limit, len(lines))]
    return format_content_with_line_numbers(selected, start_line=offset + 1)


def perform_string_replacement(
    content: str, old_string: str, new_string: str, replace_all: bool
) -> Union[Tuple[str, int], str]:
    """Return ``(new_content, occurrences)`` or an error string.

    Zero matches and ambiguous matches (unless ``replace_all``) are errors; the
    edit is never guessed.
    """
    occurrences = content.count(old_string) if old_string else 0
    if occurrences == 0:
        return f"Error: String not found in file: '{old_string}'"
    if occurrences > 1 and not replace_all:
        return (
            f"Error: String '{old_string}' appears {occurrences} times in file. "
            "Use replace_all=True to replace all instances, or provide a more specific string with surrounding context."
        )
    return content.replace(old_string, new_string), occurrences


def validate_path(path: Optional[str]) -> str:
    """Normalize a directory path to start and end with ``/``.

    Raises:
        ValueError: If the path is blank.
    """
    path_str = "/" if path is None else path
    if not path_str.strip():
        raise ValueError("Path cannot be empty")
    normalized = path_str if path_str.startswith("/") else "/" + path_str
    if not normalized.endswith("/"):
        normalized += "/"
    return normalized


def _expand_braces(pattern: str) -> List[str]:
    m = re.search(r"\{([^{}]*)\}", pattern)
    if m is None:
        return [pattern]
    head, tail = pattern[: m.start()], pattern[m.end() :]
    expanded: List[str] = []
    for option in m.group(1).split(","):
        expanded.extend(_expand_braces(head + option + tail))
    return expanded


def _translate_glob(pattern: str) -> str:
    i, n = 0, len(pattern)
    out: List[str] = []
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    # "**/" also matches zero directories
                    out.append("(?:.*/)?")
                    i += 1
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> "re.Pattern[str]":
    """Compile a glob supporting ``*``, ``?``, ``**``, ``[...]`` and ``{a,b}``."""
    alternatives = [_translate_glob(p) for p in _expand_braces(pattern)]
    return re.compile("^(?:" + "|".join(alternatives) + ")$")


def glob_match(path: str, pattern: str) -> bool:
    return compile_glob(pattern).match(path) is not None


def glob_search_files(files: Mapping[str, FileRecord], pattern: str, path: str = "/") -> List[FileInfo]:
    """Match file paths under ``path`` against ``pattern``; newest first."""
    try:
        base = validate_path(path)
    except ValueError:
        return []

    matches: List[Tuple[str, FileRecord]] = []
    for file_path, record in files.items():
        if not file_path.startswith(base):
            continue
        relative = file_path[len(base) :].lstrip("/") or posixpath.basename(file_path)
        if glob_match(relative, pattern):
            matches.append((file_path, record))

    matches.sort(key=lambda item: item[1].modified_at, reverse=True)
    return [
        FileInfo(path=fp, is_dir=False, size=len(file_record_to_string(rec)), modified_at=rec.modified_at)
        for fp, rec in matches
    ]


def grep_matches_from_files(
    files: Mapping[str, FileRecord],
    pattern: str,
    path: Optional[str] = None,
    glob: Optional[str] = None,
) -> Union[List[GrepMatch], str]:
    """Regex search across in-memory files; invalid patterns return an error string."""
    try:
        regex = re.compile(pattern)
    except re.error as exc:
        return f"Invalid regex pattern: {exc}"

    try:
        base = validate_path(path)
    except ValueError:
        return []

    matches: List[GrepMatch] = []
    for file_path, record in files.items():
        if not file_path.startswith(base):
            continue
        if glob and not glob_match(posixpath.basename(file_path), glob):
            continue
        for idx, line in enumerate(record.content):
            if line and regex.search(line):
                matches.append(GrepMatch(path=file_path, line=idx + 1, text=line))
    return matches


def list_directory(paths: Iterable[Tuple[str, Optional[FileRecord]]], path: str) -> List[FileInfo]:
    """Build direct-children listing from flat ``(path, record)`` pairs.

    Subdirectories are synthesized from deeper paths and end with ``/``.
    """
    base = validate_path(path)
    entries: List[FileInfo] = []
    seen_dirs = set()
    for file_path, record in paths:
        if not file_path.startswith(base):
            continue
        relative = file_path[len(base) :]
        if "/" in relative:
            subdir = base + relative.split("/", 1)[0] + "/"
            if subdir not in seen_dirs:
                seen_dirs.add(subdir)
                entries.append(FileInfo(path=subdir, is_dir=True, size=0, modified_at=""))
            continue
        size = len(file_record_to_string(record)) if record is not None else None
        entries.append(
            FileInfo(path=file_path, is_dir=False, size=size, modified_at=record.modified_at if record else None)
        )
    entries.sort(key=lambda info: info.path)
    return entries
