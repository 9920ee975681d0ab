from .base import (
    BackendFactory,
    BackendLike,
    BackendProtocol,
    EditResult,
    ExecuteResponse,
    FileDownloadResponse,
    FileInfo,
    FileOperationError,
    FileUploadResponse,
    GrepMatch,
    SandboxBackendProtocol,
    WriteResult,
    is_sandbox_backend,
    resolve_backend,
)
from .composite import CompositeBackend
from .filesystem import FilesystemBackend
from .local_sandbox import LocalSandbox
from .persistent import InMemoryStore, KeyValueStore, PersistentBackend
from .sandbox import BaseSandbox
from .state import StateBackend

__all__ = [
    "BackendFactory",
    "BackendLike",
    "BackendProtocol",
    "BaseSandbox",
    "CompositeBackend",
    "EditResult",
    "ExecuteResponse",
    "FileDownloadResponse",
    "FileInfo",
    "FileOperationError",
    "FileUploadResponse",
    "FilesystemBackend",
    "GrepMatch",
    "InMemoryStore",
    "KeyValueStore",
    "LocalSandbox",
    "PersistentBackend",
    "SandboxBackendProtocol",
    "StateBackend",
    "WriteResult",
    "is_sandbox_backend",
    "resolve_backend",
]
