from __future__ import annotations

from typing import Dict, List

from pydantic import Field

from ..schemas.domain import TodoItem
from ..schemas.events import AgentEventType
from .base import ToolContext, ToolDefinition, ToolInput

WRITE_TODOS_DESCRIPTION = """Manage and plan tasks using a structured todo list. Use this tool for:
- Complex multi-step tasks (3+ steps)
- After receiving new instructions - capture requirements
- When starting tasks - mark as in_progress (only one at a time)
- After completing tasks - mark complete immediately

Task states: pending, in_progress, completed, cancelled

When merge=true, updates are merged with existing todos by id.
When merge=false, the new todos replace all existing todos."""


class WriteTodosArgs(ToolInput):
    todos: List[TodoItem] = Field(min_length=1, description="Array of todo items to write")
    merge: bool = Field(default=True, description="Merge with existing todos (true) or replace all (false)")


def merge_todos(existing: List[TodoItem], updates: List[TodoItem]) -> List[TodoItem]:
    """Merge ``updates`` into ``existing`` by id, keeping first-seen order."""
    merged: Dict[str, TodoItem] = {t.id: t for t in existing}
    for item in updates:
        merged[item.id] = item
    return list(merged.values())


def format_todos(todos: List[TodoItem]) -> str:
    lines = "\n".join(f"- [{t.status.value}] {t.id}: {t.content}" for t in todos)
    return f"Todo list updated successfully.\n\nCurrent todos:\n{lines}"


async def _write_todos(ctx: ToolContext, args: WriteTodosArgs) -> str:
    if args.merge:
        ctx.state.todos = merge_todos(ctx.state.todos, args.todos)
    else:
        ctx.state.todos = list(args.todos)

    await ctx.emit(AgentEventType.todos_changed, todos=[t.model_dump(mode="json") for t in ctx.state.todos])
    return format_todos(ctx.state.todos)


write_todos = ToolDefinition(
    name="write_todos",
    description=WRITE_TODOS_DESCRIPTION,
    input_model=WriteTodosArgs,
    handler=_write_todos,
)
