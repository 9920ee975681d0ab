from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest
from pydantic import Field

from deepagent_ai.agent_core.backends import BaseSandbox, ExecuteResponse, StateBackend
from deepagent_ai.agent_core.errors import ToolValidationError
from deepagent_ai.agent_core.runtime import CancellationToken
from deepagent_ai.agent_core.schemas.domain import TodoStatus
from deepagent_ai.agent_core.schemas.events import AgentEventType
from deepagent_ai.agent_core.state import AgentState
from deepagent_ai.agent_core.tools import (
    ToolContext,
    ToolInput,
    ToolOutput,
    ToolRegistry,
    builtin_tools,
    edit_file,
    execute,
    format_execute_response,
    glob,
    grep,
    ls,
    read_file,
    tool,
    write_file,
    write_todos,
)


class _Recorder:
    def __init__(self) -> None:
        self.events: List[Tuple[AgentEventType, Dict[str, Any]]] = []

    async def __call__(self, type: AgentEventType, **payload: Any) -> None:
        self.events.append((type, payload))

    def types(self) -> List[AgentEventType]:
        return [t for t, _ in self.events]


def _ctx(state: Optional[AgentState] = None, backend: Any = None) -> Tuple[ToolContext, _Recorder]:
    state = state or AgentState()
    rec = _Recorder()
    ctx = ToolContext(
        state=state,
        backend=backend or StateBackend(state),
        emit=rec,
        cancel=CancellationToken(),
        tool_call_id="call_1",
    )
    return ctx, rec


# --------------------------------------------------------------------------
# Registry and definitions
# --------------------------------------------------------------------------


class _EchoArgs(ToolInput):
    text: str = Field(description="Text to echo")
    times: int = 1


@tool("echo", "Echo text back", _EchoArgs)
async def echo(ctx: ToolContext, args: _EchoArgs) -> str:
    return args.text * args.times


def test_registry_operations() -> None:
    reg = ToolRegistry(builtin_tools())
    assert reg.names() == ["write_todos", "ls", "read_file", "write_file", "edit_file", "glob", "grep"]
    assert "execute" not in reg
    assert "execute" in ToolRegistry(builtin_tools(include_execute=True))

    reg.register(echo)
    assert reg.has("echo") and len(reg) == 8
    assert reg.get("echo") is echo
    with pytest.raises(KeyError):
        reg.get("missing")

    trimmed = reg.without("echo", "grep")
    assert "echo" not in trimmed and "grep" not in trimmed
    assert "echo" in reg


def test_tool_spec_uses_input_model_schema() -> None:
    spec = echo.spec()
    assert spec.name == "echo"
    assert spec.description == "Echo text back"
    assert set(spec.parameters["properties"]) == {"text", "times"}
    assert spec.parameters["required"] == ["text"]


@pytest.mark.asyncio
async def test_invoke_validates_arguments() -> None:
    ctx, _ = _ctx()
    out = await echo.invoke(ctx, {"text": "ab", "times": 2})
    assert out == ToolOutput(content="abab")

    with pytest.raises(ToolValidationError) as err:
        await echo.invoke(ctx, {"times": "many"})
    message = str(err.value)
    assert message.startswith("invalid arguments for tool 'echo'")
    assert "text" in message and "times" in message

    with pytest.raises(ToolValidationError):
        await echo.invoke(ctx, {"text": "a", "unexpected": 1})


# --------------------------------------------------------------------------
# write_todos
# --------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_write_todos_merges_by_id_and_emits() -> None:
    ctx, rec = _ctx()
    await write_todos.invoke(ctx, {"todos": [{"id": "1", "content": "plan"}, {"id": "2", "content": "build"}]})
    out = await write_todos.invoke(
        ctx, {"todos": [{"id": "1", "content": "plan", "status": "completed"}, {"id": "3", "content": "ship"}]}
    )

    assert [(t.id, t.status) for t in ctx.state.todos] == [
        ("1", TodoStatus.completed),
        ("2", TodoStatus.pending),
        ("3", TodoStatus.pending),
    ]
    assert "- [completed] 1: plan" in out.content
    assert rec.types() == [AgentEventType.todos_changed, AgentEventType.todos_changed]
    assert rec.events[-1][1]["todos"][0] == {"id": "1", "content": "plan", "status": "completed"}


@pytest.mark.asyncio
async def test_write_todos_replace_and_validation() -> None:
    ctx, _ = _ctx()
    await write_todos.invoke(ctx, {"todos": [{"id": "1", "content": "a"}, {"id": "2", "content": "b"}]})
    await write_todos.invoke(ctx, {"todos": [{"id": "9", "content": "only"}], "merge": False})
    assert [t.id for t in ctx.state.todos] == ["9"]

    with pytest.raises(ToolValidationError):
        await write_todos.invoke(ctx, {"todos": []})
    with pytest.raises(ToolValidationError):
        await write_todos.invoke(ctx, {"todos": [{"id": "1", "content": "x" * 101}]})
    with pytest.raises(ToolValidationError):
        await write_todos.invoke(ctx, {"todos": [{"id": "1", "content": "x", "status": "blocked"}]})


# --------------------------------------------------------------------------
# Filesystem tools
# --------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_write_read_edit_cycle_emits_file_events() -> None:
    ctx, rec = _ctx()

    written = await write_file.invoke(ctx, {"file_path": "/app.py", "content": "x = 1\nprint(x)"})
    assert written == ToolOutput(content="Successfully wrote to '/app.py'")

    again = await write_file.invoke(ctx, {"file_path": "/app.py", "content": "other"})
    assert again.is_error and "already exists" in again.content

    read = await read_file.invoke(ctx, {"file_path": "/app.py"})
    assert read.content == "     1\tx = 1\n     2\tprint(x)"

    edited = await edit_file.invoke(ctx, {"file_path": "/app.py", "old_string": "x = 1", "new_string": "x = 2"})
    assert edited.content == "Successfully replaced 1 instance(s) of the string in '/app.py'"

    failed = await edit_file.invoke(ctx, {"file_path": "/app.py", "old_string": "nope", "new_string": "x"})
    assert failed.is_error

    assert rec.types() == [
        AgentEventType.file_write_start,
        AgentEventType.file_written,
        AgentEventType.file_write_start,
        AgentEventType.file_read,
        AgentEventType.file_edited,
    ]
    assert rec.events[3][1] == {"path": "/app.py", "lines": 2}
    assert rec.events[4][1] == {"path": "/app.py", "occurrences": 1}


@pytest.mark.asyncio
async def test_ls_glob_and_grep_formatting() -> None:
    ctx, rec = _ctx()
    await write_file.invoke(ctx, {"file_path": "/src/a.py", "content": "import os\nimport sys"})
    await write_file.invoke(ctx, {"file_path": "/readme.md", "content": "no imports here"})

    listing = await ls.invoke(ctx, {"path": "/"})
    assert listing.content == "/readme.md\n/src/"
    empty = await ls.invoke(ctx, {"path": "/nothing"})
    assert empty.content == "No files found in /nothing"

    globbed = await glob.invoke(ctx, {"pattern": "**/*.py"})
    assert globbed.content == "/src/a.py"
    assert (await glob.invoke(ctx, {"pattern": "*.rs"})).content == "No files found"

    files = await grep.invoke(ctx, {"pattern": "^import"})
    assert files.content == "/src/a.py"
    content = await grep.invoke(ctx, {"pattern": "^import", "output_mode": "content"})
    assert content.content == "/src/a.py:1: import os\n/src/a.py:2: import sys"
    count = await grep.invoke(ctx, {"pattern": "import", "output_mode": "count"})
    assert count.content == "/src/a.py: 2\n/readme.md: 1"

    none = await grep.invoke(ctx, {"pattern": "zzz"})
    assert none.content == "No matches found for pattern 'zzz'"
    bad = await grep.invoke(ctx, {"pattern": "("})
    assert bad.is_error and bad.content.startswith("Invalid regex pattern")

    grep_events = [p for t, p in rec.events if t == AgentEventType.grep]
    assert grep_events[0] == {"pattern": "^import", "path": None, "count": 2}


# --------------------------------------------------------------------------
# execute
# --------------------------------------------------------------------------


class _FakeSandbox(BaseSandbox):
    def __init__(self, response: ExecuteResponse) -> None:
        self.response = response
        self.commands: List[str] = []

    @property
    def id(self) -> str:
        return "sbx-1"

    async def execute(self, command: str) -> ExecuteResponse:
        self.commands.append(command)
        return self.response


@pytest.mark.parametrize(
    "response,expected",
    [
        (ExecuteResponse(output="ok", exit_code=0), "ok\n[Exit code: 0 (success)]"),
        (ExecuteResponse(output="boom", exit_code=2), "boom\n[Exit code: 2 (failure)]"),
        (ExecuteResponse(output="", exit_code=None), "\n[Exit code: unknown (possibly timed out)]"),
        (
            ExecuteResponse(output="abc", exit_code=0, truncated=True),
            "abc\n[Exit code: 0 (success)][Output truncated due to size limit]",
        ),
    ],
)
def test_format_execute_response(response, expected) -> None:
    assert format_execute_response(response) == expected


@pytest.mark.asyncio
async def test_execute_runs_on_sandbox_backend() -> None:
    sandbox = _FakeSandbox(ExecuteResponse(output="3 passed", exit_code=1))
    ctx, rec = _ctx(backend=sandbox)

    out = await execute.invoke(ctx, {"command": "pytest -q"})
    assert sandbox.commands == ["pytest -q"]
    assert out.content == "3 passed\n[Exit code: 1 (failure)]"
    assert out.is_error is False
    assert rec.types() == [AgentEventType.execute_start, AgentEventType.execute_finish]
    assert rec.events[1][1] == {"command": "pytest -q", "exit_code": 1, "truncated": False, "sandbox_id": "sbx-1"}


@pytest.mark.asyncio
async def test_execute_requires_sandbox_backend() -> None:
    ctx, rec = _ctx()
    out = await execute.invoke(ctx, {"command": "ls"})
    assert out.is_error is True
    assert "does not support command execution" in out.content
    assert rec.events == []
