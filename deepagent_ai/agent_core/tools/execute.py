from __future__ import annotations

from pydantic import Field

from ..backends.base import ExecuteResponse, is_sandbox_backend
from ..schemas.events import AgentEventType
from .base import ToolContext, ToolDefinition, ToolInput, ToolOutput

EXECUTE_DESCRIPTION = """Execute a shell command in the sandbox and return its combined stdout/stderr.

The command runs in the sandbox working directory with a timeout. Output that
exceeds the size limit is truncated. The exit code is reported after the output."""


class ExecuteArgs(ToolInput):
    command: str = Field(description="The shell command to execute (e.g. 'ls -la', 'pytest -q')")


def format_execute_response(result: ExecuteResponse) -> str:
    parts = []
    if result.output:
        parts.append(result.output)

    if result.exit_code == 0:
        parts.append("\n[Exit code: 0 (success)]")
    elif result.exit_code is not None:
        parts.append(f"\n[Exit code: {result.exit_code} (failure)]")
    else:
        parts.append("\n[Exit code: unknown (possibly timed out)]")

    if result.truncated:
        parts.append("[Output truncated due to size limit]")
    return "".join(parts)


async def _execute(ctx: ToolContext, args: ExecuteArgs) -> ToolOutput:
    backend = ctx.backend
    if not is_sandbox_backend(backend):
        return ToolOutput(content="Error: the active backend does not support command execution", is_error=True)

    sandbox_id = backend.id  # type: ignore[attr-defined]
    await ctx.emit(AgentEventType.execute_start, command=args.command, sandbox_id=sandbox_id)
    result: ExecuteResponse = await backend.execute(args.command)  # type: ignore[attr-defined]
    await ctx.emit(
        AgentEventType.execute_finish,
        command=args.command,
        exit_code=result.exit_code,
        truncated=result.truncated,
        sandbox_id=sandbox_id,
    )
    return ToolOutput(content=format_execute_response(result))


execute = ToolDefinition(name="execute", description=EXECUTE_DESCRIPTION, input_model=ExecuteArgs, handler=_execute)
