from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator, Optional, Sequence

import pytest

from deepagent_ai.agent_core import (
    DeepAgent,
    DeepAgentError,
    RunCancelled,
    TransportError,
    build_system_prompt,
    build_tool_registry,
    create_deep_agent,
    resolve_model,
)
from deepagent_ai.agent_core.backends import BaseSandbox, ExecuteResponse
from deepagent_ai.agent_core.model.base import ChatModel, ModelChunk, ToolSpec
from deepagent_ai.agent_core.model.pydantic_ai import PydanticAIChatModel
from deepagent_ai.agent_core.runtime.models import DEFAULT_SYSTEM_PROMPT
from deepagent_ai.agent_core.schemas.events import AgentEvent, AgentEventType
from deepagent_ai.agent_core.schemas.messages import Message, MessageRole
from deepagent_ai.agent_core.service import _error_from_event
from deepagent_ai.agent_core.tools import ToolContext, ToolInput, tool
from deepagent_ai.core.config import Settings


class _EchoModel(ChatModel):
    name = "echo"

    async def stream(
        self, messages: Sequence[Message], tools: Sequence[ToolSpec] = (), *, settings: Optional[dict] = None
    ) -> AsyncIterator[ModelChunk]:
        yield ModelChunk.delta(f"echo: {messages[-1].content}")
        yield ModelChunk.finish()


class _ReadArgs(ToolInput):
    file_path: str


@tool("read_file", "Custom reader", _ReadArgs)
async def custom_read(ctx: ToolContext, args: _ReadArgs) -> str:
    return "custom"


class _Sandbox(BaseSandbox):
    @property
    def id(self) -> str:
        return "sbx"

    async def execute(self, command: str) -> ExecuteResponse:
        return ExecuteResponse(output="", exit_code=0)


# --------------------------------------------------------------------------
# Factory
# --------------------------------------------------------------------------


def test_build_tool_registry_defaults() -> None:
    registry = build_tool_registry()
    assert registry.names() == ["write_todos", "ls", "read_file", "write_file", "edit_file", "glob", "grep", "task"]

    assert "execute" in build_tool_registry(include_execute=True)
    assert "task" not in build_tool_registry(include_general_purpose_agent=False)


def test_user_tools_override_builtins() -> None:
    registry = build_tool_registry(tools=[custom_read])
    assert registry.get("read_file") is custom_read
    assert registry.names().count("read_file") == 1


def test_create_deep_agent_wires_config() -> None:
    settings = Settings(max_steps=11, tool_result_eviction_limit=500)
    agent = create_deep_agent(
        _EchoModel(),
        system_prompt="Be terse.",
        summarization=False,
        parallel_tool_calls=True,
        settings=settings,
    )
    config = agent.engine.config
    assert config.system_prompt == f"Be terse.\n\n{DEFAULT_SYSTEM_PROMPT}"
    assert config.summarization is None
    assert config.max_steps == 11
    assert config.tool_result_eviction_limit == 500
    assert config.parallel_tool_calls is True
    assert "execute" not in agent.engine.deps.tools


def test_create_deep_agent_overrides() -> None:
    agent = create_deep_agent(_EchoModel(), tool_result_eviction_limit=0, max_steps=3, backend=_Sandbox())
    assert agent.engine.config.tool_result_eviction_limit is None
    assert agent.engine.config.max_steps == 3
    assert agent.engine.config.summarization is not None
    assert "execute" in agent.engine.deps.tools


def test_create_deep_agent_loads_memory_and_skills(tmp_path: Path) -> None:
    home = tmp_path / "home"
    (home / "coder" / "skills" / "review").mkdir(parents=True)
    (home / "coder" / "agent.md").write_text("Always answer in English.", encoding="utf-8")
    (home / "coder" / "skills" / "review" / "SKILL.md").write_text(
        "---\nname: code-review\ndescription: Review a diff\n---\nSteps\n", encoding="utf-8"
    )
    workdir = tmp_path / "work"
    workdir.mkdir()

    agent = create_deep_agent(
        _EchoModel(),
        system_prompt="Be terse.",
        agent_id="coder",
        working_directory=workdir,
        summarization=False,
        settings=Settings(agent_home_dir=str(home)),
    )
    prompt = agent.engine.config.system_prompt

    assert prompt.startswith(f"Be terse.\n\n{DEFAULT_SYSTEM_PROMPT}\n\n<agent_memory>")
    assert "Always answer in English." in prompt
    assert prompt.index("</agent_memory>") < prompt.index("## Skills")
    assert "- **code-review**: Review a diff" in prompt


def test_build_system_prompt_with_skills_dir_only(tmp_path: Path) -> None:
    (tmp_path / "deploy").mkdir()
    (tmp_path / "deploy" / "SKILL.md").write_text("---\nname: deploy\ndescription: Ship it\n---\n", encoding="utf-8")

    prompt = build_system_prompt(skills_dir=tmp_path)
    assert prompt.startswith(DEFAULT_SYSTEM_PROMPT)
    assert "<agent_memory>" not in prompt
    assert "- **deploy**: Ship it" in prompt
    assert build_system_prompt() == DEFAULT_SYSTEM_PROMPT


def test_resolve_model() -> None:
    model = _EchoModel()
    assert resolve_model(model) is model

    adapted = resolve_model("test")
    assert isinstance(adapted, PydanticAIChatModel)
    assert adapted.name == "test"

    default = resolve_model(None, settings=Settings(default_model="openai:gpt-4o"))
    assert default.name == "openai:gpt-4o"


# --------------------------------------------------------------------------
# Service
# --------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_generate_returns_result() -> None:
    agent = create_deep_agent(_EchoModel(), summarization=False)
    result = await agent.generate("ping")

    assert result.text == "echo: ping"
    assert result.steps == 1
    assert [m.role for m in result.messages] == [MessageRole.user, MessageRole.assistant]
    assert result.output is None
    assert result.events[-1].type == AgentEventType.done
    assert DeepAgent.snapshot_of(result.events[-1]) == result.state.snapshot()


@pytest.mark.asyncio
async def test_stream_yields_terminal_done() -> None:
    agent = create_deep_agent(_EchoModel(), summarization=False)
    events = [event async for event in agent.stream("ping")]
    assert events[-1].type == AgentEventType.done
    assert sum(1 for e in events if e.is_terminal) == 1


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"error": "stop", "kind": "cancelled", "cancelled": True}, RunCancelled),
        ({"error": "503", "kind": "transport", "cancelled": False}, TransportError),
        ({"error": "bad", "kind": "ValueError", "cancelled": False}, DeepAgentError),
    ],
)
def test_error_events_map_to_exceptions(payload, expected) -> None:
    err = _error_from_event(AgentEvent(type=AgentEventType.error, payload=payload))
    assert type(err) is expected
    assert str(err) == payload["error"]
