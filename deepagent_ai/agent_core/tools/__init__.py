"""Tool definitions, registry and builtin tools.

Builtins:

- ``write_todos`` (planning),
- ``ls`` / ``read_file`` / ``write_file`` / ``edit_file`` / ``glob`` / ``grep`` (filesystem),
- ``execute`` (sandbox backends only),
- ``web_search`` / ``http_request`` / ``fetch_url`` (opt-in via ``WebTools``),
- ``task`` (subagent dispatch via ``SubAgentDispatcher``).
"""

from typing import List

from .base import ToolContext, ToolDefinition, ToolInput, ToolOutput, ToolRegistry, tool
from .execute import execute, format_execute_response
from .filesystem import FILESYSTEM_TOOLS, edit_file, glob, grep, ls, read_file, write_file
from .subagent import GENERAL_PURPOSE, TASK_TOOL_NAME, SubAgentDispatcher, SubAgentSpec
from .todos import write_todos
from .web import SearchResult, WebTools


def builtin_tools(*, include_execute: bool = False) -> List[ToolDefinition]:
    """Planning and filesystem tools, plus ``execute`` when requested."""
    tools = [write_todos, *FILESYSTEM_TOOLS]
    if include_execute:
        tools.append(execute)
    return tools


__all__ = [
    "FILESYSTEM_TOOLS",
    "GENERAL_PURPOSE",
    "SearchResult",
    "SubAgentDispatcher",
    "SubAgentSpec",
    "TASK_TOOL_NAME",
    "ToolContext",
    "ToolDefinition",
    "ToolInput",
    "ToolOutput",
    "ToolRegistry",
    "WebTools",
    "builtin_tools",
    "edit_file",
    "execute",
    "format_execute_response",
    "glob",
    "grep",
    "ls",
    "read_file",
    "tool",
    "write_file",
    "write_todos",
]
