from __future__ import annotations

"""Filesystem tools over the active backend.

Every tool delegates to ``ToolContext.backend`` and emits the matching
filesystem event. Backend errors come back as text so the model can correct
itself; only unexpected exceptions propagate to the engine.
"""

from collections import OrderedDict
from typing import Dict, List, Literal, Optional

from pydantic import Field

from ..backends.base import FileInfo, GrepMatch
from ..schemas.events import AgentEventType
from .base import ToolContext, ToolDefinition, ToolInput, ToolOutput

LS_DESCRIPTION = "List files and directories at a path. Directories end with '/'."

READ_FILE_DESCRIPTION = """Read a file. Output is cat -n formatted with line numbers starting at 1.
Use offset and limit to page through long files; lines longer than 10000 characters are split."""

WRITE_FILE_DESCRIPTION = """Create a new file with the given content.
Fails if the file already exists: read it and use edit_file instead."""

EDIT_FILE_DESCRIPTION = """Replace an exact string in a file.
The edit fails if old_string is not found, or if it appears more than once and replace_all is false."""

GLOB_DESCRIPTION = "Find files matching a glob pattern such as '**/*.py' or '/src/*.{ts,tsx}'. Newest files first."

GREP_DESCRIPTION = """Search file contents with a regular expression.
output_mode: 'files_with_matches' (default) lists paths, 'content' shows matching lines, 'count' shows match counts per file."""


class LsArgs(ToolInput):
    path: str = Field(default="/", description="Directory to list")


class ReadFileArgs(ToolInput):
    file_path: str = Field(description="Absolute path of the file to read")
    offset: int = Field(default=0, ge=0, description="Line offset to start reading from (0-based)")
    limit: int = Field(default=2000, gt=0, description="Maximum number of lines to read")


class WriteFileArgs(ToolInput):
    file_path: str = Field(description="Absolute path of the file to create")
    content: str = Field(description="Full file content")


class EditFileArgs(ToolInput):
    file_path: str = Field(description="Absolute path of the file to edit")
    old_string: str = Field(description="Exact text to replace")
    new_string: str = Field(description="Replacement text")
    replace_all: bool = Field(default=False, description="Replace every occurrence")


class GlobArgs(ToolInput):
    pattern: str = Field(description="Glob pattern")
    path: str = Field(default="/", description="Directory to search from")


class GrepArgs(ToolInput):
    pattern: str = Field(description="Regular expression to search for")
    path: Optional[str] = Field(default=None, description="Directory or file to search")
    glob: Optional[str] = Field(default=None, description="Only search files matching this glob")
    output_mode: Literal["files_with_matches", "content", "count"] = "files_with_matches"


def _format_entries(entries: List[FileInfo]) -> List[str]:
    return [e.path.rstrip("/") + "/" if e.is_dir else e.path for e in entries]


def format_grep_matches(matches: List[GrepMatch], output_mode: str) -> str:
    if output_mode == "content":
        return "\n".join(f"{m.path}:{m.line}: {m.text}" for m in matches)

    grouped: Dict[str, int] = OrderedDict()
    for m in matches:
        grouped[m.path] = grouped.get(m.path, 0) + 1
    if output_mode == "count":
        return "\n".join(f"{path}: {n}" for path, n in grouped.items())
    return "\n".join(grouped)


async def _ls(ctx: ToolContext, args: LsArgs) -> str:
    entries = await ctx.backend.ls_info(args.path)
    await ctx.emit(AgentEventType.ls, path=args.path, count=len(entries))
    if not entries:
        return f"No files found in {args.path}"
    return "\n".join(_format_entries(entries))


async def _read_file(ctx: ToolContext, args: ReadFileArgs) -> str:
    content = await ctx.backend.read(args.file_path, args.offset, args.limit)
    await ctx.emit(AgentEventType.file_read, path=args.file_path, lines=len(content.split("\n")))
    return content


async def _write_file(ctx: ToolContext, args: WriteFileArgs) -> ToolOutput:
    await ctx.emit(AgentEventType.file_write_start, path=args.file_path, content=args.content)
    result = await ctx.backend.write(args.file_path, args.content)
    if not result.success:
        return ToolOutput(content=str(result.error), is_error=True)
    await ctx.emit(AgentEventType.file_written, path=args.file_path, content=args.content)
    return ToolOutput(content=f"Successfully wrote to '{args.file_path}'")


async def _edit_file(ctx: ToolContext, args: EditFileArgs) -> ToolOutput:
    result = await ctx.backend.edit(args.file_path, args.old_string, args.new_string, args.replace_all)
    if not result.success:
        return ToolOutput(content=str(result.error), is_error=True)
    await ctx.emit(AgentEventType.file_edited, path=args.file_path, occurrences=result.occurrences)
    return ToolOutput(content=f"Successfully replaced {result.occurrences} instance(s) of the string in '{args.file_path}'")


async def _glob(ctx: ToolContext, args: GlobArgs) -> str:
    entries = await ctx.backend.glob_info(args.pattern, args.path)
    await ctx.emit(AgentEventType.glob, pattern=args.pattern, path=args.path, count=len(entries))
    if not entries:
        return "No files found"
    return "\n".join(_format_entries(entries))


async def _grep(ctx: ToolContext, args: GrepArgs) -> ToolOutput:
    matches = await ctx.backend.grep_raw(args.pattern, args.path, args.glob)
    if isinstance(matches, str):
        await ctx.emit(AgentEventType.grep, pattern=args.pattern, path=args.path, count=0)
        return ToolOutput(content=matches, is_error=True)

    await ctx.emit(AgentEventType.grep, pattern=args.pattern, path=args.path, count=len(matches))
    if not matches:
        return ToolOutput(content=f"No matches found for pattern '{args.pattern}'")
    return ToolOutput(content=format_grep_matches(matches, args.output_mode))


ls = ToolDefinition(name="ls", description=LS_DESCRIPTION, input_model=LsArgs, handler=_ls)
read_file = ToolDefinition(name="read_file", description=READ_FILE_DESCRIPTION, input_model=ReadFileArgs, handler=_read_file)
write_file = ToolDefinition(
    name="write_file", description=WRITE_FILE_DESCRIPTION, input_model=WriteFileArgs, handler=_write_file
)
edit_file = ToolDefinition(name="edit_file", description=EDIT_FILE_DESCRIPTION, input_model=EditFileArgs, handler=_edit_file)
glob = ToolDefinition(name="glob", description=GLOB_DESCRIPTION, input_model=GlobArgs, handler=_glob)
grep = ToolDefinition(name="grep", description=GREP_DESCRIPTION, input_model=GrepArgs, handler=_grep)

FILESYSTEM_TOOLS = (ls, read_file, write_file, edit_file, glob, grep)
