from __future__ import annotations

"""Event protocol emitted by the step loop.

Every observable unit of progress is an ``AgentEvent`` with a ``type`` drawn
from ``AgentEventType`` and a free-form ``payload``. Events are produced by the
runtime engine and consumed immediately by the host; the core does not retain
them.

Payload keys per type
---------------------

- ``step-start`` / ``step-finish``: ``step``; ``step-finish`` adds ``tool_calls``
  (list of ``{tool_name, args, result}``) and ``usage``.
- ``text``: ``text`` (delta). ``text-segment``: ``text`` (full closed segment).
- ``tool-call``: ``tool_call_id``, ``tool_name``, ``args``.
- ``tool-result``: ``tool_call_id``, ``tool_name``, ``result``, ``is_error``.
- ``todos-changed``: ``todos``.
- filesystem: ``path`` plus ``content`` / ``occurrences`` / ``lines`` / ``count`` / ``pattern``.
- ``execute-start`` / ``execute-finish``: ``command``, ``sandbox_id``, ``exit_code``, ``truncated``.
- web: ``query`` / ``url`` / ``method`` plus ``result_count`` / ``status_code`` / ``success``.
- subagent: ``name``, ``task``, ``step_index``, ``tool_calls``, ``result``.
- approval: ``approval_id``, ``tool_call_id``, ``tool_name``, ``args``, ``approved``.
- checkpoint: ``thread_id``, ``step``, ``messages_count``, ``error``.
- ``done``: ``state``, ``text``, ``messages``, ``output``, ``step``.
- ``error``: ``error`` (message), ``kind``, ``cancelled``.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import Field

from .base import BaseSchema


class AgentEventType(str, Enum):
    step_start = "step-start"
    step_finish = "step-finish"

    text = "text"
    text_segment = "text-segment"

    tool_call = "tool-call"
    tool_result = "tool-result"

    todos_changed = "todos-changed"

    file_write_start = "file-write-start"
    file_written = "file-written"
    file_edited = "file-edited"
    file_read = "file-read"
    ls = "list"
    glob = "glob"
    grep = "search"

    execute_start = "execute-start"
    execute_finish = "execute-finish"

    web_search_start = "web-search-start"
    web_search_finish = "web-search-finish"
    http_request_start = "http-request-start"
    http_request_finish = "http-request-finish"
    fetch_url_start = "fetch-url-start"
    fetch_url_finish = "fetch-url-finish"

    subagent_start = "subagent-start"
    subagent_step = "subagent-step"
    subagent_finish = "subagent-finish"

    approval_requested = "approval-requested"
    approval_response = "approval-response"

    checkpoint_saved = "checkpoint-saved"
    checkpoint_loaded = "checkpoint-loaded"
    checkpoint_error = "checkpoint-error"

    done = "done"
    error = "error"


TERMINAL_EVENT_TYPES = frozenset({AgentEventType.done, AgentEventType.error})

# Events a nested subagent run forwards to its parent stream.
FORWARDED_SUBAGENT_EVENT_TYPES = frozenset(
    {
        AgentEventType.file_write_start,
        AgentEventType.file_written,
        AgentEventType.file_edited,
        AgentEventType.file_read,
        AgentEventType.ls,
        AgentEventType.glob,
        AgentEventType.grep,
        AgentEventType.execute_start,
        AgentEventType.execute_finish,
        AgentEventType.web_search_start,
        AgentEventType.web_search_finish,
        AgentEventType.http_request_start,
        AgentEventType.http_request_finish,
        AgentEventType.fetch_url_start,
        AgentEventType.fetch_url_finish,
        AgentEventType.approval_requested,
        AgentEventType.approval_response,
    }
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AgentEvent(BaseSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    type: AgentEventType

    thread_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utc_now)

    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES
