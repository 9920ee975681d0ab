from __future__ import annotations

"""Sandbox backends built on a single ``execute`` primitive.

``BaseSandbox`` implements every file operation of ``BackendProtocol`` (plus
bulk upload/download) by running small Python scripts through
``execute()``. A concrete sandbox (local process, container, remote VM) only
needs to provide ``execute`` and ``id``.

Arguments are embedded into the scripts base64-encoded, so paths and file
contents never go through shell quoting.
"""

import base64
import binascii
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..schemas.domain import FileRecord
from .base import (
    EditResult,
    ExecuteResponse,
    FileDownloadResponse,
    FileInfo,
    FileOperationError,
    FileUploadResponse,
    GrepMatch,
    WriteResult,
)
from .utils import format_read_response, glob_match, perform_string_replacement

logger = logging.getLogger(__name__)

# Exit codes shared by the scripts below.
_EXIT_NOT_FOUND = 3
_EXIT_EXISTS = 4
_EXIT_IS_DIR = 5
_EXIT_PERMISSION = 6
_EXIT_INVALID = 7

_ERROR_BY_EXIT = {
    _EXIT_NOT_FOUND: FileOperationError.file_not_found,
    _EXIT_IS_DIR: FileOperationError.is_directory,
    _EXIT_PERMISSION: FileOperationError.permission_denied,
    _EXIT_INVALID: FileOperationError.invalid_path,
}

_LS_SCRIPT = """
import base64, datetime, json, os
p = base64.b64decode("__PATH__").decode()
try:
    names = sorted(os.listdir(p))
except OSError:
    names = []
for n in names:
    f = os.path.join(p, n)
    try:
        st = os.stat(f)
    except OSError:
        continue
    d = os.path.isdir(f)
    ts = datetime.datetime.fromtimestamp(st.st_mtime, datetime.timezone.utc).isoformat()
    print(json.dumps({"path": f + ("/" if d else ""), "is_dir": d, "size": st.st_size, "modified_at": ts}))
"""

_READ_RAW_SCRIPT = """
import base64, datetime, json, os, sys
p = base64.b64decode("__PATH__").decode()
if not os.path.exists(p):
    sys.exit(3)
if os.path.isdir(p):
    sys.exit(5)
st = os.stat(p)
iso = lambda t: datetime.datetime.fromtimestamp(t, datetime.timezone.utc).isoformat()
with open(p, encoding="utf-8") as fh:
    text = fh.read()
print(json.dumps({"content": text.split(chr(10)), "created_at": iso(st.st_ctime), "modified_at": iso(st.st_mtime)}))
"""

_WRITE_SCRIPT = """
import base64, os, sys
p = base64.b64decode("__PATH__").decode()
data = base64.b64decode("__CONTENT__")
overwrite = base64.b64decode("__OVERWRITE__").decode() == "1"
if not p:
    sys.exit(7)
if os.path.isdir(p):
    sys.exit(5)
if os.path.exists(p) and not overwrite:
    sys.exit(4)
d = os.path.dirname(p)
try:
    if d:
        os.makedirs(d, exist_ok=True)
    with open(p, "wb") as fh:
        fh.write(data)
except PermissionError:
    sys.exit(6)
"""

_DOWNLOAD_SCRIPT = """
import base64, os, sys
p = base64.b64decode("__PATH__").decode()
if not p:
    sys.exit(7)
if not os.path.exists(p):
    sys.exit(3)
if os.path.isdir(p):
    sys.exit(5)
try:
    with open(p, "rb") as fh:
        print(base64.b64encode(fh.read()).decode())
except PermissionError:
    sys.exit(6)
"""

_WALK_SCRIPT = """
import base64, datetime, json, os
base = base64.b64decode("__PATH__").decode()
for root, dirs, files in os.walk(base):
    dirs.sort()
    for n in sorted(files):
        f = os.path.join(root, n)
        try:
            st = os.stat(f)
        except OSError:
            continue
        ts = datetime.datetime.fromtimestamp(st.st_mtime, datetime.timezone.utc).isoformat()
        print(json.dumps({"path": f, "rel": os.path.relpath(f, base), "size": st.st_size, "modified_at": ts}))
"""

_GREP_SCRIPT = """
import base64, json, os, re
pattern = re.compile(base64.b64decode("__PATTERN__").decode())
base = base64.b64decode("__PATH__").decode()
paths = [base] if os.path.isfile(base) else [os.path.join(r, n) for r, _, fs in os.walk(base) for n in sorted(fs)]
for f in paths:
    try:
        with open(f, encoding="utf-8") as fh:
            lines = fh.read().split(chr(10))
    except (OSError, UnicodeDecodeError):
        continue
    for i, line in enumerate(lines):
        if line and pattern.search(line):
            print(json.dumps({"path": f, "line": i + 1, "text": line}))
"""


def _b64(value: Union[str, bytes]) -> str:
    raw = value.encode("utf-8") if isinstance(value, str) else value
    return base64.b64encode(raw).decode("ascii")


def build_python_command(script: str, args: Dict[str, Union[str, bytes]]) -> str:
    """Embed base64-encoded ``args`` into ``script`` and wrap it for ``bash -c``."""
    body = script
    for key, value in args.items():
        body = body.replace(f"__{key}__", _b64(value))
    return f"python3 -c '{body}'"


def _json_lines(output: str) -> List[dict]:
    rows: List[dict] = []
    for line in output.strip().splitlines():
        if not line:
            continue
        try:
            rows.append(json.loads(line))
        except json.JSONDecodeError:
            logger.debug("skipping malformed sandbox output line: %r", line)
    return rows


class BaseSandbox(ABC):
    """Abstract sandbox: file operations are derived from ``execute``."""

    @property
    @abstractmethod
    def id(self) -> str:
        """Unique identifier of this sandbox instance."""

    @abstractmethod
    async def execute(self, command: str) -> ExecuteResponse:
        """Run a shell command inside the sandbox."""

    async def _run(self, script: str, **args: Union[str, bytes]) -> ExecuteResponse:
        return await self.execute(build_python_command(script, args))

    async def ls_info(self, path: str) -> List[FileInfo]:
        result = await self._run(_LS_SCRIPT, PATH=path)
        return [FileInfo.model_validate(row) for row in _json_lines(result.output)]

    async def read(self, file_path: str, offset: int = 0, limit: int = 2000) -> str:
        try:
            record = await self.read_raw(file_path)
        except FileNotFoundError:
            return f"Error: File '{file_path}' not found"
        return format_read_response(record, offset, limit)

    async def read_raw(self, file_path: str) -> FileRecord:
        result = await self._run(_READ_RAW_SCRIPT, PATH=file_path)
        if result.exit_code != 0:
            raise FileNotFoundError(f"File '{file_path}' not found")
        try:
            return FileRecord.model_validate_json(result.output.strip())
        except ValueError as exc:
            raise FileNotFoundError(f"Failed to parse file data for '{file_path}'") from exc

    async def _write_bytes(self, file_path: str, data: bytes, *, overwrite: bool) -> ExecuteResponse:
        return await self._run(_WRITE_SCRIPT, PATH=file_path, CONTENT=data, OVERWRITE="1" if overwrite else "0")

    async def write(self, file_path: str, content: str) -> WriteResult:
        result = await self._write_bytes(file_path, content.encode("utf-8"), overwrite=False)
        if result.exit_code == _EXIT_EXISTS:
            return WriteResult(
                error=(
                    f"Cannot write to {file_path} because it already exists. "
                    "Read and then make an edit, or write to a new path."
                )
            )
        if result.exit_code != 0:
            return WriteResult(error=result.output.strip() or f"Failed to write '{file_path}'")
        return WriteResult(path=file_path)

    async def edit(self, file_path: str, old_string: str, new_string: str, replace_all: bool = False) -> EditResult:
        try:
            record = await self.read_raw(file_path)
        except FileNotFoundError:
            return EditResult(error=f"Error: File '{file_path}' not found")

        replaced = perform_string_replacement("\n".join(record.content), old_string, new_string, replace_all)
        if isinstance(replaced, str):
            return EditResult(error=replaced)
        new_content, occurrences = replaced
        result = await self._write_bytes(file_path, new_content.encode("utf-8"), overwrite=True)
        if result.exit_code != 0:
            return EditResult(error=result.output.strip() or f"Failed to write '{file_path}'")
        return EditResult(path=file_path, occurrences=occurrences)

    async def grep_raw(
        self, pattern: str, path: Optional[str] = None, glob: Optional[str] = None
    ) -> Union[List[GrepMatch], str]:
        try:
            re.compile(pattern)
        except re.error as exc:
            return f"Invalid regex pattern: {exc}"
        result = await self._run(_GREP_SCRIPT, PATTERN=pattern, PATH=path or ".")
        matches = [GrepMatch.model_validate(row) for row in _json_lines(result.output)]
        if glob:
            matches = [m for m in matches if glob_match(m.path.rsplit("/", 1)[-1], glob)]
        return matches

    async def glob_info(self, pattern: str, path: str = "/") -> List[FileInfo]:
        result = await self._run(_WALK_SCRIPT, PATH=path)
        infos = [
            FileInfo(path=row["path"], is_dir=False, size=row.get("size"), modified_at=row.get("modified_at"))
            for row in _json_lines(result.output)
            if glob_match(row["rel"], pattern)
        ]
        infos.sort(key=lambda info: info.modified_at or "", reverse=True)
        return infos

    async def upload_files(self, files: Sequence[Tuple[str, bytes]]) -> List[FileUploadResponse]:
        responses: List[FileUploadResponse] = []
        for path, data in files:
            result = await self._write_bytes(path, data, overwrite=True)
            error = None if result.exit_code == 0 else _ERROR_BY_EXIT.get(result.exit_code or 0, FileOperationError.invalid_path)
            responses.append(FileUploadResponse(path=path, error=error))
        return responses

    async def download_files(self, paths: Sequence[str]) -> List[FileDownloadResponse]:
        responses: List[FileDownloadResponse] = []
        for path in paths:
            result = await self._run(_DOWNLOAD_SCRIPT, PATH=path)
            if result.exit_code != 0:
                error = _ERROR_BY_EXIT.get(result.exit_code or 0, FileOperationError.invalid_path)
                responses.append(FileDownloadResponse(path=path, error=error))
                continue
            try:
                content = base64.b64decode(result.output.strip(), validate=True)
            except (binascii.Error, ValueError):
                responses.append(FileDownloadResponse(path=path, error=FileOperationError.invalid_path))
                continue
            responses.append(FileDownloadResponse(path=path, content=content))
        return responses
