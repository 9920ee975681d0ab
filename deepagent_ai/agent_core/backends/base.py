from __future__ import annotations

"""Backend capability contract.

A backend is where the agent's files live. Every provider implements
``BackendProtocol``; providers that can also run shell commands and move
files in bulk additionally satisfy ``SandboxBackendProtocol``.

Callers never branch on concrete classes. ``is_sandbox_backend`` probes for
the sandbox operations instead, so new providers plug in without touching
tool dispatch.

Error model
-----------

- Read-style operations return human-readable error strings that are handed
  to the model verbatim.
- Write-style operations return ``WriteResult`` / ``EditResult`` carrying
  either success data or an ``error`` string.
- Bulk upload/download reports per-path outcomes with the closed
  ``FileOperationError`` taxonomy; a batch may partially succeed.
"""

from enum import Enum
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple, Union

from ..errors import BackendError
from ..schemas.base import BaseSchema
from ..schemas.domain import FileRecord
from ..state import AgentState


class FileInfo(BaseSchema):
    path: str
    is_dir: bool = False
    size: Optional[int] = None
    modified_at: Optional[str] = None


class GrepMatch(BaseSchema):
    path: str
    line: int
    text: str


class WriteResult(BaseSchema):
    path: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


class EditResult(BaseSchema):
    path: Optional[str] = None
    occurrences: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


class ExecuteResponse(BaseSchema):
    output: str
    exit_code: Optional[int] = None
    truncated: bool = False


class FileOperationError(str, Enum):
    file_not_found = "file_not_found"
    permission_denied = "permission_denied"
    is_directory = "is_directory"
    invalid_path = "invalid_path"


class FileUploadResponse(BaseSchema):
    path: str
    error: Optional[FileOperationError] = None


class FileDownloadResponse(BaseSchema):
    path: str
    content: Optional[bytes] = None
    error: Optional[FileOperationError] = None


class BackendProtocol(Protocol):
    """Uniform file operations offered by every backend."""

    async def ls_info(self, path: str) -> List[FileInfo]:
        """
        List the direct children of a directory.

        Args:
            path: Absolute directory path.

        Returns:
            File and directory entries; directories end with ``/``.
        """
        ...

    async def read(self, file_path: str, offset: int = 0, limit: int = 2000) -> str:
        """
        Read a file with ``cat -n`` style line numbers.

        Args:
            file_path: Absolute file path.
            offset: Zero-based first line to return.
            limit: Maximum number of lines to return.

        Returns:
            Numbered content, or an ``Error: ...`` string.
        """
        ...

    async def read_raw(self, file_path: str) -> FileRecord:
        """
        Return the stored record for a file.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        ...

    async def write(self, file_path: str, content: str) -> WriteResult:
        """Create a new file. Writing to an existing path fails."""
        ...

    async def edit(self, file_path: str, old_string: str, new_string: str, replace_all: bool = False) -> EditResult:
        """Replace ``old_string`` with ``new_string``; ambiguous matches fail unless ``replace_all``."""
        ...

    async def grep_raw(
        self, pattern: str, path: Optional[str] = None, glob: Optional[str] = None
    ) -> Union[List[GrepMatch], str]:
        """Regex search over file lines; returns matches or an error string."""
        ...

    async def glob_info(self, pattern: str, path: str = "/") -> List[FileInfo]:
        """Find files whose path relative to ``path`` matches ``pattern``."""
        ...


class SandboxBackendProtocol(BackendProtocol, Protocol):
    """Backend that can also execute commands and transfer files in bulk."""

    @property
    def id(self) -> str: ...

    async def execute(self, command: str) -> ExecuteResponse: ...

    async def upload_files(self, files: Sequence[Tuple[str, bytes]]) -> List[FileUploadResponse]: ...

    async def download_files(self, paths: Sequence[str]) -> List[FileDownloadResponse]: ...


BackendFactory = Callable[[AgentState], BackendProtocol]
BackendLike = Union[BackendProtocol, BackendFactory]

_SANDBOX_METHODS = ("execute", "upload_files", "download_files")


def is_sandbox_backend(backend: Any) -> bool:
    """Return True when ``backend`` exposes the sandbox extension."""
    if backend is None:
        return False
    for name in _SANDBOX_METHODS:
        if not callable(getattr(backend, name, None)):
            return False
    return isinstance(getattr(backend, "id", None), str)


def resolve_backend(backend: Optional[BackendLike], state: AgentState) -> BackendProtocol:
    """Turn a backend instance or factory into an instance bound to ``state``.

    Raises:
        BackendError: ``backend`` is neither a backend nor a factory returning one.
    """
    from .state import StateBackend

    if backend is None:
        return StateBackend(state)
    if _is_backend_instance(backend):
        return backend  # type: ignore[return-value]
    if not callable(backend):
        raise BackendError(f"not a backend or backend factory: {type(backend).__name__}")
    resolved = backend(state)
    if not _is_backend_instance(resolved):
        raise BackendError(f"backend factory returned {type(resolved).__name__}, not a backend")
    return resolved


def _is_backend_instance(obj: Any) -> bool:
    return callable(getattr(obj, "read", None)) and callable(getattr(obj, "write", None))
