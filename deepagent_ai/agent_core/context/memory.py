from __future__ import annotations

"""Long-term agent memory.

Memory is plain markdown kept on disk and injected into the system prompt:

- user level: ``{agent_home_dir}/{agent_id}/agent.md`` plus any other
  ``*.md`` file in that directory;
- project level: ``{git_root}/.deepagents/agent.md`` when the project has a
  ``.deepagents`` directory.

The agent updates its memory with the ordinary file tools, so the section
also tells it where the files live.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from ...core.config import settings
from .skills import PathLike, find_git_root

logger = logging.getLogger(__name__)

MEMORY_FILE = "agent.md"

_MEMORY_GUIDE = """## How to use this memory

- User memory ({user_path}) holds preferences, working style and context that applies across projects.
- Project memory ({project_path}) holds conventions and decisions specific to this project.
- The content above is already loaded; read the files again only to check their current state.
- When you learn something worth keeping, update the matching file with `write_file` or `edit_file`.
- Keep entries short and organized under headings, and remove information that is out of date.
- Memory is for long-lived knowledge, not for tracking the current task."""


def _read_memory(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return ""
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("cannot read memory file %s: %s", path, exc)
        return ""


def _additional_files(agent_dir: Path) -> List[Tuple[str, str]]:
    if not agent_dir.is_dir():
        return []
    files: List[Tuple[str, str]] = []
    for path in sorted(agent_dir.glob("*.md")):
        if path.name == MEMORY_FILE:
            continue
        content = _read_memory(path)
        if content:
            files.append((path.name, content))
    return files


def load_agent_memory(
    agent_id: str,
    *,
    home_dir: Optional[PathLike] = None,
    working_directory: Optional[PathLike] = None,
) -> str:
    """
    Build the memory section of the system prompt for ``agent_id``.

    The user-level agent directory is created when missing so the agent can
    write its first memory file there.

    Args:
        agent_id: Agent identifier naming the user-level memory directory.
        home_dir: User-level agent home; defaults to ``Settings.agent_home_dir``.
        working_directory: Where the git root search starts.

    Returns:
        The prompt section, or an empty string when no memory exists yet.
    """
    agent_dir = Path(home_dir or settings.agent_home_dir).expanduser() / agent_id
    user_path = agent_dir / MEMORY_FILE
    user_memory = _read_memory(user_path)
    if not user_memory:
        try:
            agent_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("cannot create memory directory %s: %s", agent_dir, exc)
    extra = _additional_files(agent_dir)

    project_path: Optional[Path] = None
    project_memory = ""
    git_root = find_git_root(working_directory)
    if git_root is not None:
        project_path = git_root / ".deepagents" / MEMORY_FILE
        if project_path.parent.is_dir():
            project_memory = _read_memory(project_path)

    sections: List[str] = []
    if user_memory:
        sections.append(f"# Agent memory (user)\n\nStored at {user_path}:\n\n{user_memory}")
    if project_memory:
        sections.append(f"# Agent memory (project)\n\nStored at {project_path}:\n\n{project_memory}")
    if extra:
        body = "\n\n".join(f"## {name}\n\n{content}" for name, content in extra)
        sections.append(f"# Additional context files\n\n{body}")
    if not sections:
        return ""

    logger.debug("loaded memory for agent %s (%d section(s))", agent_id, len(sections))
    guide = _MEMORY_GUIDE.format(
        user_path=user_path, project_path=project_path if project_path is not None else "not available"
    )
    return "<agent_memory>\n" + "\n\n---\n\n".join(sections) + f"\n\n---\n\n{guide}\n</agent_memory>"
