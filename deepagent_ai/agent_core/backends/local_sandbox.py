from __future__ import annotations

"""Sandbox that runs commands on the local machine.

Useful for development and tests. Commands run as ``bash -c <command>`` in
``cwd`` with the current environment plus ``env``; stdout and stderr are
merged. Each command runs in its own process group, which is killed as a
whole on timeout or cancellation. File operations are inherited from
``BaseSandbox``, except bulk upload/download which go straight to the local
disk.

Usage
-----

    sandbox = LocalSandbox(cwd="./workspace", timeout=60)
    result = await sandbox.execute("pytest -q")
    if result.exit_code != 0:
        ...
"""

import asyncio
import logging
import os
import secrets
import signal
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ...core.config import settings
from .base import ExecuteResponse, FileDownloadResponse, FileOperationError, FileUploadResponse
from .sandbox import BaseSandbox

logger = logging.getLogger(__name__)


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    """Kill the command together with any background jobs it spawned."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


class LocalSandbox(BaseSandbox):
    def __init__(
        self,
        *,
        cwd: Union[str, Path, None] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        max_output_size: Optional[int] = None,
    ) -> None:
        self._cwd = Path(cwd or os.getcwd())
        self._timeout = timeout if timeout is not None else settings.sandbox_timeout_seconds
        self._env = dict(env or {})
        self._max_output = max_output_size if max_output_size is not None else settings.sandbox_max_output_bytes
        self._id = f"local-{int(time.time() * 1000)}-{secrets.token_hex(3)}"

    @property
    def id(self) -> str:
        return self._id

    @property
    def cwd(self) -> Path:
        return self._cwd

    async def execute(self, command: str) -> ExecuteResponse:
        try:
            proc = await asyncio.create_subprocess_exec(
                "bash",
                "-c",
                command,
                cwd=str(self._cwd),
                env={**os.environ, **self._env},
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as exc:
            return ExecuteResponse(output=f"Error: {exc}", exit_code=1, truncated=False)

        try:
            raw, _ = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            _kill_group(proc)
            raw, _ = await proc.communicate()
            logger.warning("command timed out after %ss in sandbox %s", self._timeout, self._id)
            output, truncated = self._clip(raw or b"")
            return ExecuteResponse(output=output, exit_code=None, truncated=truncated)
        except asyncio.CancelledError:
            # Forward cancellation to every process the command started.
            _kill_group(proc)
            await proc.wait()
            raise

        output, truncated = self._clip(raw or b"")
        return ExecuteResponse(output=output, exit_code=proc.returncode, truncated=truncated)

    def _clip(self, raw: bytes) -> Tuple[str, bool]:
        truncated = len(raw) > self._max_output
        if truncated:
            raw = raw[: self._max_output]
        return raw.decode("utf-8", errors="replace"), truncated

    def _local_path(self, path: str) -> Optional[Path]:
        if not path or "\x00" in path:
            return None
        p = Path(path)
        return p if p.is_absolute() else self._cwd / p

    async def upload_files(self, files: Sequence[Tuple[str, bytes]]) -> List[FileUploadResponse]:
        responses: List[FileUploadResponse] = []
        for path, data in files:
            target = self._local_path(path)
            if target is None:
                responses.append(FileUploadResponse(path=path, error=FileOperationError.invalid_path))
                continue
            if target.is_dir():
                responses.append(FileUploadResponse(path=path, error=FileOperationError.is_directory))
                continue
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
            except PermissionError:
                responses.append(FileUploadResponse(path=path, error=FileOperationError.permission_denied))
                continue
            except OSError:
                responses.append(FileUploadResponse(path=path, error=FileOperationError.invalid_path))
                continue
            responses.append(FileUploadResponse(path=path))
        return responses

    async def download_files(self, paths: Sequence[str]) -> List[FileDownloadResponse]:
        responses: List[FileDownloadResponse] = []
        for path in paths:
            target = self._local_path(path)
            if target is None:
                responses.append(FileDownloadResponse(path=path, error=FileOperationError.invalid_path))
            elif not target.exists():
                responses.append(FileDownloadResponse(path=path, error=FileOperationError.file_not_found))
            elif target.is_dir():
                responses.append(FileDownloadResponse(path=path, error=FileOperationError.is_directory))
            else:
                try:
                    responses.append(FileDownloadResponse(path=path, content=target.read_bytes()))
                except PermissionError:
                    responses.append(FileDownloadResponse(path=path, error=FileOperationError.permission_denied))
                except IsADirectoryError:
                    responses.append(FileDownloadResponse(path=path, error=FileOperationError.is_directory))
                except FileNotFoundError:
                    responses.append(FileDownloadResponse(path=path, error=FileOperationError.file_not_found))
                except OSError:
                    responses.append(FileDownloadResponse(path=path, error=FileOperationError.invalid_path))
        return responses
