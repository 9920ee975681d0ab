from __future__ import annotations

"""Skill discovery.

A skill is a directory holding a ``SKILL.md`` file whose YAML frontmatter
names and describes it::

    ---
    name: release-notes
    description: Draft release notes from merged pull requests
    ---

    # Instructions
    ...

Only the metadata is loaded up front; the agent reads the full file with
``read_file`` when a skill is relevant.

Two layouts are supported:

- Agent mode (``agent_id`` given): user skills come from
  ``{agent_home_dir}/{agent_id}/skills/`` and project skills from
  ``{git_root}/.deepagents/skills/``.
- Directory mode: explicit ``user_skills_dir`` / ``project_skills_dir``.

Project skills override user skills with the same name. Loading never fails
the caller: unreadable or malformed skills are skipped with a warning.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Literal, Optional, Sequence, Union

import yaml

from ...core.config import settings
from ..schemas.base import BaseSchema

logger = logging.getLogger(__name__)

SKILL_FILE = "SKILL.md"

_FRONTMATTER = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)", re.DOTALL)

SkillSource = Literal["user", "project"]
PathLike = Union[str, Path]


class SkillMetadata(BaseSchema):
    name: str
    description: str
    path: str
    source: SkillSource


def find_git_root(start: Optional[PathLike] = None) -> Optional[Path]:
    """Return the closest directory at or above ``start`` that contains ``.git``."""
    current = Path(start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / ".git").exists():
            return candidate
    return None


def parse_skill_metadata(skill_md: PathLike, source: SkillSource) -> Optional[SkillMetadata]:
    """
    Read the frontmatter of one ``SKILL.md``.

    Args:
        skill_md: Path of the ``SKILL.md`` file.
        source: Whether the skill came from the user or the project directory.

    Returns:
        The skill metadata, or None when the file is unreadable, has no
        frontmatter or lacks ``name``/``description``.
    """
    path = Path(skill_md)
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("cannot read skill file %s: %s", path, exc)
        return None

    match = _FRONTMATTER.match(content)
    if not match:
        logger.warning("no frontmatter in skill file %s", path)
        return None
    try:
        meta = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        logger.warning("invalid frontmatter in skill file %s: %s", path, exc)
        return None
    if not isinstance(meta, dict):
        logger.warning("frontmatter in skill file %s is not a mapping", path)
        return None

    name, description = meta.get("name"), meta.get("description")
    if not name or not description:
        logger.warning("skill file %s is missing name or description", path)
        return None
    return SkillMetadata(name=str(name).strip(), description=str(description).strip(), path=str(path), source=source)


def list_skills_in_directory(skills_dir: PathLike, source: SkillSource) -> List[SkillMetadata]:
    """List skills in the direct subdirectories of ``skills_dir``.

    Hidden directories and symlinks are skipped.
    """
    base = Path(skills_dir).expanduser().resolve()
    if not base.is_dir():
        return []

    skills: List[SkillMetadata] = []
    try:
        entries = sorted(base.iterdir())
    except OSError as exc:
        logger.warning("cannot list skills in %s: %s", base, exc)
        return []
    for entry in entries:
        if entry.name.startswith(".") or entry.is_symlink() or not entry.is_dir():
            continue
        skill_md = entry / SKILL_FILE
        if not skill_md.is_file():
            continue
        meta = parse_skill_metadata(skill_md, source)
        if meta is not None:
            skills.append(meta)
    return skills


def list_skills(
    *,
    agent_id: Optional[str] = None,
    user_skills_dir: Optional[PathLike] = None,
    project_skills_dir: Optional[PathLike] = None,
    working_directory: Optional[PathLike] = None,
    home_dir: Optional[PathLike] = None,
) -> List[SkillMetadata]:
    """
    Collect skills from the user and project directories.

    Args:
        agent_id: Enables agent mode; takes precedence over explicit directories.
        user_skills_dir: User-level skills directory in directory mode.
        project_skills_dir: Project-level skills directory in directory mode.
        working_directory: Where the git root search starts in agent mode.
        home_dir: User-level agent home; defaults to ``Settings.agent_home_dir``.

    Returns:
        Skills ordered by name, project entries replacing user entries.
    """
    if agent_id:
        if user_skills_dir or project_skills_dir:
            logger.warning("agent_id given; ignoring explicit skills directories")
        user_skills_dir = Path(home_dir or settings.agent_home_dir).expanduser() / agent_id / "skills"
        git_root = find_git_root(working_directory)
        project_skills_dir = git_root / ".deepagents" / "skills" if git_root is not None else None

    by_name: Dict[str, SkillMetadata] = {}
    if user_skills_dir:
        for skill in list_skills_in_directory(user_skills_dir, "user"):
            by_name[skill.name] = skill
    if project_skills_dir:
        for skill in list_skills_in_directory(project_skills_dir, "project"):
            by_name[skill.name] = skill
    return [by_name[name] for name in sorted(by_name)]


def skills_prompt_section(skills: Sequence[SkillMetadata]) -> str:
    """Render the system prompt section announcing ``skills``; empty when there are none."""
    if not skills:
        return ""
    lines = [
        "## Skills",
        "",
        "The following skills are available. Each one has detailed instructions in its SKILL.md file.",
        "When a task matches a skill, read that file with `read_file` before starting and follow it.",
        "",
    ]
    lines.extend(f"- **{s.name}**: {s.description} ({s.path})" for s in skills)
    return "\n".join(lines)
