"""Character-based token estimation.

A coarse proxy (about four characters per token) used for eviction and
summarization thresholds; no tokenizer dependency.
"""

from __future__ import annotations

import json
import math
from typing import Iterable

from ..schemas.messages import Message

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def message_text(message: Message) -> str:
    parts = [message.content] if message.content else []
    for call in message.tool_calls:
        parts.append(call.tool_name)
        parts.append(json.dumps(call.args, ensure_ascii=False, default=str))
    return "\n".join(parts)


def estimate_messages_tokens(messages: Iterable[Message]) -> int:
    return sum(estimate_tokens(message_text(m)) for m in messages)
