from __future__ import annotations

"""Eviction of oversized tool results.

When a tool result is estimated to exceed the token limit, the full text is
written to ``/large_tool_results/{tool_name}_{sanitized_call_id}.txt`` on the
active backend and a short pointer replaces it in history. If the write
fails, the original content is returned unchanged; data is never lost.
"""

import logging
import re
from typing import Optional

from pydantic import Field

from ..backends.base import BackendProtocol
from ..schemas.base import BaseSchema
from .tokens import estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_EVICTION_TOKEN_LIMIT = 20_000
EVICTION_DIR = "/large_tool_results/"

_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


class EvictResult(BaseSchema):
    evicted: bool = False
    content: str
    evicted_path: Optional[str] = Field(default=None)


def sanitize_tool_call_id(tool_call_id: str) -> str:
    return _UNSAFE_ID_CHARS.sub("_", tool_call_id)[:100]


def eviction_path(tool_name: str, tool_call_id: str) -> str:
    return f"{EVICTION_DIR}{tool_name}_{sanitize_tool_call_id(tool_call_id)}.txt"


def should_evict(result: str, token_limit: int = DEFAULT_EVICTION_TOKEN_LIMIT) -> bool:
    return estimate_tokens(result) > token_limit


async def evict_tool_result(
    *,
    result: str,
    tool_call_id: str,
    tool_name: str,
    backend: BackendProtocol,
    token_limit: int = DEFAULT_EVICTION_TOKEN_LIMIT,
) -> EvictResult:
    """
    Move ``result`` to the backend if it is too large.

    Args:
        result: Tool output as produced.
        tool_call_id: Call id; sanitized into the file name.
        tool_name: Tool name; prefixes the file name.
        backend: Where the full content is written.
        token_limit: Estimated token count above which eviction happens.

    Returns:
        ``EvictResult`` with either the original content or the pointer text.
    """
    if not should_evict(result, token_limit):
        return EvictResult(evicted=False, content=result)

    path = eviction_path(tool_name, tool_call_id)
    try:
        write = await backend.write(path, result)
    except Exception as exc:
        logger.warning("Failed to evict tool result for %s: %s", tool_name, exc)
        return EvictResult(evicted=False, content=result)
    if write.error:
        logger.warning("Failed to evict tool result for %s: %s", tool_name, write.error)
        return EvictResult(evicted=False, content=result)

    tokens = estimate_tokens(result)
    logger.info("evicted %s result (~%d tokens) to %s", tool_name, tokens, path)
    return EvictResult(
        evicted=True,
        content=(
            f"Tool result too large (~{tokens} tokens). Content saved to {path}. "
            "Use read_file to access the full content."
        ),
        evicted_path=path,
    )
