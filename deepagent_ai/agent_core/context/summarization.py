from __future__ import annotations

"""History summarization.

Before a model call, if the estimated token total of the pending history is
above ``token_threshold``, everything except the ``keep_messages`` most recent
messages is replaced with one synthetic summary message produced by an
auxiliary model call. Fewer than ``keep_messages + 1`` messages is a no-op.

A failed summarization call is not fatal: the original history is returned
and the failure is logged.
"""

import logging
from typing import List, Optional, Sequence

from pydantic import Field

from ..model.base import ChatModel
from ..schemas.base import BaseSchema
from ..schemas.messages import Message, MessageRole
from .tokens import estimate_messages_tokens, message_text

logger = logging.getLogger(__name__)

DEFAULT_SUMMARIZATION_THRESHOLD = 170_000
DEFAULT_KEEP_MESSAGES = 6

SUMMARY_PREFIX = "[Summary of earlier conversation]\n"

SUMMARIZATION_SYSTEM_PROMPT = (
    "You condense conversations between a user and an AI agent. Write a concise summary that "
    "preserves the user's goals, decisions made, files created or modified, tool results that "
    "matter for future steps, and any open tasks. Do not invent details."
)


class SummarizationConfig(BaseSchema):
    enabled: bool = True
    token_threshold: int = Field(default=DEFAULT_SUMMARIZATION_THRESHOLD, ge=0)
    keep_messages: int = Field(default=DEFAULT_KEEP_MESSAGES, ge=0)


class SummarizationResult(BaseSchema):
    summarized: bool
    messages: List[Message]
    tokens_before: int
    tokens_after: Optional[int] = None


def needs_summarization(messages: Sequence[Message], token_threshold: int = DEFAULT_SUMMARIZATION_THRESHOLD) -> bool:
    return estimate_messages_tokens(messages) > token_threshold


def _transcript(messages: Sequence[Message]) -> str:
    lines = []
    for m in messages:
        label = m.role.value if m.role != MessageRole.tool else f"tool:{m.tool_name}"
        lines.append(f"{label}: {message_text(m)}")
    return "\n\n".join(lines)


async def summarize_if_needed(
    messages: Sequence[Message],
    *,
    model: ChatModel,
    token_threshold: int = DEFAULT_SUMMARIZATION_THRESHOLD,
    keep_messages: int = DEFAULT_KEEP_MESSAGES,
) -> SummarizationResult:
    """
    Collapse old history into a summary when it is too large.

    Args:
        messages: History excluding the system prompt.
        model: Model used for the auxiliary summary call.
        token_threshold: Estimated token total above which summarization runs.
        keep_messages: Number of most recent messages kept verbatim.

    Returns:
        ``SummarizationResult``; when ``summarized`` is True the history has
        exactly ``keep_messages + 1`` messages.
    """
    history = list(messages)
    tokens_before = estimate_messages_tokens(history)
    if tokens_before <= token_threshold or len(history) <= keep_messages:
        return SummarizationResult(summarized=False, messages=history, tokens_before=tokens_before)

    split = len(history) - keep_messages
    older, recent = history[:split], history[split:]
    try:
        response = await model.complete(
            [
                Message.system(SUMMARIZATION_SYSTEM_PROMPT),
                Message.user(f"Summarize this conversation:\n\n{_transcript(older)}"),
            ]
        )
    except Exception:
        logger.exception("summarization call failed; continuing with full history")
        return SummarizationResult(summarized=False, messages=history, tokens_before=tokens_before)

    summary = Message.user(SUMMARY_PREFIX + response.text.strip())
    new_history = [summary] + recent
    tokens_after = estimate_messages_tokens(new_history)
    logger.info(
        "summarized %d messages (~%d tokens -> ~%d tokens)", len(older), tokens_before, tokens_after
    )
    return SummarizationResult(
        summarized=True, messages=new_history, tokens_before=tokens_before, tokens_after=tokens_after
    )
