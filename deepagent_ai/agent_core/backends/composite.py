from __future__ import annotations

"""Route file operations to different backends by path prefix.

``CompositeBackend(default, {"/memories/": store_backend})`` sends
``/memories/notes.md`` to ``store_backend`` as ``/notes.md`` and everything
else to ``default``. The longest matching prefix wins. Paths in results are
translated back into the caller's namespace.
"""

from typing import Dict, List, Optional, Tuple, Union

from ..schemas.domain import FileRecord
from .base import BackendProtocol, EditResult, FileInfo, GrepMatch, WriteResult


class CompositeBackend:
    def __init__(self, default: BackendProtocol, routes: Dict[str, BackendProtocol]) -> None:
        self._default = default
        normalized = {(p if p.endswith("/") else p + "/"): b for p, b in routes.items()}
        self._routes: List[Tuple[str, BackendProtocol]] = sorted(
            normalized.items(), key=lambda item: len(item[0]), reverse=True
        )

    def _route(self, path: str) -> Tuple[BackendProtocol, str, str]:
        for prefix, backend in self._routes:
            if path.startswith(prefix) or path + "/" == prefix:
                return backend, "/" + path[len(prefix) :], prefix
        return self._default, path, ""

    @staticmethod
    def _restore(prefix: str, path: str) -> str:
        if not prefix:
            return path
        return prefix.rstrip("/") + (path if path.startswith("/") else "/" + path)

    def _restore_info(self, prefix: str, infos: List[FileInfo]) -> List[FileInfo]:
        return [info.model_copy(update={"path": self._restore(prefix, info.path)}) for info in infos]

    async def ls_info(self, path: str) -> List[FileInfo]:
        backend, inner, prefix = self._route(path)
        if prefix:
            return self._restore_info(prefix, await backend.ls_info(inner))

        infos = await self._default.ls_info(path)
        if path in ("", "/"):
            infos = infos + [FileInfo(path=p, is_dir=True, size=0, modified_at="") for p, _ in self._routes]
            infos.sort(key=lambda info: info.path)
        return infos

    async def read(self, file_path: str, offset: int = 0, limit: int = 2000) -> str:
        backend, inner, _ = self._route(file_path)
        return await backend.read(inner, offset, limit)

    async def read_raw(self, file_path: str) -> FileRecord:
        backend, inner, _ = self._route(file_path)
        return await backend.read_raw(inner)

    async def write(self, file_path: str, content: str) -> WriteResult:
        backend, inner, _ = self._route(file_path)
        result = await backend.write(inner, content)
        if result.success:
            return WriteResult(path=file_path)
        return result

    async def edit(self, file_path: str, old_string: str, new_string: str, replace_all: bool = False) -> EditResult:
        backend, inner, _ = self._route(file_path)
        result = await backend.edit(inner, old_string, new_string, replace_all)
        if result.success:
            return result.model_copy(update={"path": file_path})
        return result

    async def grep_raw(
        self, pattern: str, path: Optional[str] = None, glob: Optional[str] = None
    ) -> Union[List[GrepMatch], str]:
        if path and path != "/":
            backend, inner, prefix = self._route(path)
            result = await backend.grep_raw(pattern, inner, glob)
            if isinstance(result, str):
                return result
            return [m.model_copy(update={"path": self._restore(prefix, m.path)}) for m in result]

        combined: List[GrepMatch] = []
        targets = [("", self._default)] + self._routes
        for prefix, backend in targets:
            result = await backend.grep_raw(pattern, "/", glob)
            if isinstance(result, str):
                return result
            combined.extend(m.model_copy(update={"path": self._restore(prefix, m.path)}) for m in result)
        return combined

    async def glob_info(self, pattern: str, path: str = "/") -> List[FileInfo]:
        if path and path != "/":
            backend, inner, prefix = self._route(path)
            return self._restore_info(prefix, await backend.glob_info(pattern, inner))

        combined: List[FileInfo] = list(await self._default.glob_info(pattern, "/"))
        for prefix, backend in self._routes:
            combined.extend(self._restore_info(prefix, await backend.glob_info(pattern, "/")))
        combined.sort(key=lambda info: info.modified_at or "", reverse=True)
        return combined
