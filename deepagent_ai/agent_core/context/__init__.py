from .eviction import (
    DEFAULT_EVICTION_TOKEN_LIMIT,
    EvictResult,
    evict_tool_result,
    eviction_path,
    sanitize_tool_call_id,
    should_evict,
)
from .memory import MEMORY_FILE, load_agent_memory
from .patching import dangling_tool_calls, has_dangling_tool_calls, patch_tool_calls
from .skills import (
    SKILL_FILE,
    SkillMetadata,
    find_git_root,
    list_skills,
    list_skills_in_directory,
    parse_skill_metadata,
    skills_prompt_section,
)
from .summarization import (
    DEFAULT_KEEP_MESSAGES,
    DEFAULT_SUMMARIZATION_THRESHOLD,
    SummarizationConfig,
    SummarizationResult,
    needs_summarization,
    summarize_if_needed,
)
from .tokens import CHARS_PER_TOKEN, estimate_messages_tokens, estimate_tokens

__all__ = [
    "CHARS_PER_TOKEN",
    "DEFAULT_EVICTION_TOKEN_LIMIT",
    "DEFAULT_KEEP_MESSAGES",
    "DEFAULT_SUMMARIZATION_THRESHOLD",
    "EvictResult",
    "MEMORY_FILE",
    "SKILL_FILE",
    "SkillMetadata",
    "SummarizationConfig",
    "SummarizationResult",
    "dangling_tool_calls",
    "estimate_messages_tokens",
    "estimate_tokens",
    "evict_tool_result",
    "eviction_path",
    "find_git_root",
    "has_dangling_tool_calls",
    "list_skills",
    "list_skills_in_directory",
    "load_agent_memory",
    "needs_summarization",
    "parse_skill_metadata",
    "patch_tool_calls",
    "sanitize_tool_call_id",
    "should_evict",
    "skills_prompt_section",
    "summarize_if_needed",
]
