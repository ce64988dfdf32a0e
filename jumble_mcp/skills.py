"""Skill (prompt) discovery with layered precedence.

A project's skill index is merged from an ordered table of source roots.
The first source to claim a key wins; later sources offering the same key
are dropped, never merged. Project-local roots always come before the
matching global (home directory) root.

Two resource forms:
- Flat: `<dir>/*.md`, key = file stem
- Structured: `<dir>/**/SKILL.md`, key = frontmatter `name` or the
  parent directory name. The parent directory may carry companion
  subdirectories (scripts/, references/, ...) listed when served.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, field_validator
from pydantic import ValidationError as PydanticValidationError

from jumble_mcp.config import DEFAULT_PREVIEW_LINES
from jumble_mcp.errors import ToolError

log = logging.getLogger("jumble_mcp.skills")

SKILL_FILENAME = "SKILL.md"
FRONTMATTER_MARKER = "---"

# Companion subdirectories of a structured skill, in display order
COMPANION_DIRS = ("scripts", "references", "docs", "assets", "examples", "templates")


class SkillFrontmatter(BaseModel):
    """Optional YAML header of a skill file.

        ---
        name: explaining-code
        description: Explains code with visual diagrams and analogies
        tags: [explain, diagram]
        ---
    """

    name: str | None = None
    description: str | None = None
    tags: list[str] = []

    @field_validator("tags", mode="before")
    @classmethod
    def single_tag_as_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


@dataclass(frozen=True)
class SkillRoot:
    """One discovery source: a directory relative to the project or home dir."""

    label: str
    relative: str
    scope: Literal["project", "global"]
    structured: bool


# Precedence order. Insert new ecosystems as (project, global) pairs.
SKILL_ROOTS: tuple[SkillRoot, ...] = (
    SkillRoot("jumble", ".jumble/skills", "project", structured=False),
    SkillRoot("jumble-prompts", ".jumble/prompts", "project", structured=False),
    SkillRoot("jumble", ".jumble/skills", "global", structured=False),
    SkillRoot("claude", ".claude/skills", "project", structured=True),
    SkillRoot("claude", ".claude/skills", "global", structured=True),
    SkillRoot("codex", ".codex/skills", "project", structured=True),
    SkillRoot("codex", ".codex/skills", "global", structured=True),
)


@dataclass(frozen=True)
class SkillInfo:
    """Cached metadata for one resolved skill."""

    key: str
    path: Path
    source: str  # e.g. "project:claude", "global:jumble"
    frontmatter: SkillFrontmatter | None = None
    preview: str = ""
    skill_dir: Path | None = None  # structured skills only
    companions: dict[str, list[Path]] = field(default_factory=dict)

    @property
    def summary(self) -> str:
        """Frontmatter description, else the first non-blank preview line."""
        if self.frontmatter and self.frontmatter.description:
            return self.frontmatter.description.strip()
        for line in self.preview.splitlines():
            if line.strip():
                return line.strip()
        return ""


# =============================================================================
# FRONTMATTER
# =============================================================================


def extract_frontmatter_and_preview(
    content: str,
    max_lines: int = DEFAULT_PREVIEW_LINES,
) -> tuple[SkillFrontmatter | None, str]:
    """Split optional YAML frontmatter from a skill file and build a preview.

    Frontmatter is only recognized when the first line is exactly `---`;
    the block up to the next `---` line is YAML. Unparseable YAML means
    "no frontmatter" (the body still starts after the block). Without a
    closing marker the whole file is treated as body.

    Returns:
        (frontmatter or None, first `max_lines` lines of the body)
    """
    lines = content.splitlines()
    body_lines = lines
    frontmatter = None

    if lines and lines[0] == FRONTMATTER_MARKER:
        try:
            close_idx = lines.index(FRONTMATTER_MARKER, 1)
        except ValueError:
            close_idx = None

        if close_idx is not None:
            body_lines = lines[close_idx + 1:]
            frontmatter = _parse_frontmatter("\n".join(lines[1:close_idx]))

    return frontmatter, "\n".join(body_lines[:max_lines])


def _parse_frontmatter(block: str) -> SkillFrontmatter | None:
    try:
        raw = yaml.safe_load(block)
    except yaml.YAMLError as e:
        log.debug(f"Ignoring unparseable frontmatter: {e}")
        return None
    if not isinstance(raw, dict):
        return None
    try:
        return SkillFrontmatter.model_validate(raw)
    except PydanticValidationError as e:
        log.debug(f"Ignoring invalid frontmatter: {e.error_count()} error(s)")
        return None


def _read_skill_file(path: Path, max_lines: int) -> tuple[SkillFrontmatter | None, str]:
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        log.warning(f"Could not read skill file {path}: {e}")
        return None, ""
    return extract_frontmatter_and_preview(content, max_lines)


# =============================================================================
# DISCOVERY
# =============================================================================


def discover_skills(
    project_root: Path,
    home_dir: Path | None,
    roots: tuple[SkillRoot, ...] = SKILL_ROOTS,
    preview_lines: int = DEFAULT_PREVIEW_LINES,
) -> dict[str, SkillInfo]:
    """Build the merged skill index for one project.

    Pure function of the filesystem: no state is kept between calls.

    Args:
        project_root: Directory containing the project's `.jumble/`
        home_dir: Home directory for global roots (None = skip globals)
        roots: Sources in precedence order
        preview_lines: Preview length in lines

    Returns:
        Mapping of skill key to SkillInfo, in claim order
    """
    skills: dict[str, SkillInfo] = {}

    for root in roots:
        base = project_root if root.scope == "project" else home_dir
        if base is None:
            continue
        directory = base / root.relative
        if not directory.is_dir():
            continue

        source = f"{root.scope}:{root.label}"
        if root.structured:
            _discover_structured(directory, source, skills, preview_lines)
        else:
            _discover_flat(directory, source, skills, preview_lines)

    return skills


def _discover_flat(
    directory: Path,
    source: str,
    skills: dict[str, SkillInfo],
    preview_lines: int,
) -> None:
    """Add `<directory>/*.md` files, keyed by file stem."""
    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        log.warning(f"Could not list skills directory {directory}: {e}")
        return

    for path in entries:
        if path.suffix != ".md" or not path.is_file():
            continue
        key = path.stem
        if not key or key in skills:
            continue

        frontmatter, preview = _read_skill_file(path, preview_lines)
        skills[key] = SkillInfo(
            key=key,
            path=path,
            source=source,
            frontmatter=frontmatter,
            preview=preview,
        )


def _discover_structured(
    directory: Path,
    source: str,
    skills: dict[str, SkillInfo],
    preview_lines: int,
) -> None:
    """Add every SKILL.md (case-insensitive) found below `directory`."""
    for path in _walk_skill_files(directory):
        frontmatter, preview = _read_skill_file(path, preview_lines)

        key = ""
        if frontmatter and frontmatter.name:
            key = frontmatter.name.strip()
        if not key:
            key = path.parent.name

        if not key:
            continue
        if key in skills:
            log.debug(f"Skill '{key}' from {path} shadowed by {skills[key].path}")
            continue

        skills[key] = SkillInfo(
            key=key,
            path=path,
            source=source,
            frontmatter=frontmatter,
            preview=preview,
            skill_dir=path.parent,
            companions=find_companions(path.parent),
        )


def _walk_skill_files(directory: Path):
    """Yield SKILL.md files below `directory` in sorted order, following symlinks once."""
    seen: set[str] = set()
    for root, dirs, files in os.walk(directory, followlinks=True):
        real = os.path.realpath(root)
        if real in seen:
            dirs[:] = []
            continue
        seen.add(real)
        dirs.sort()

        for filename in sorted(files):
            if filename.lower() == SKILL_FILENAME.lower():
                path = Path(root) / filename
                if path.is_file():
                    yield path


def find_companions(skill_dir: Path) -> dict[str, list[Path]]:
    """Collect known companion subdirectories and their direct files."""
    companions: dict[str, list[Path]] = {}
    for name in COMPANION_DIRS:
        sub = skill_dir / name
        if not sub.is_dir():
            continue
        try:
            companions[name] = sorted(p for p in sub.iterdir() if p.is_file())
        except OSError as e:
            log.warning(f"Could not list companion directory {sub}: {e}")
    return companions


# =============================================================================
# SERVING
# =============================================================================


def render_skill(info: SkillInfo) -> str:
    """Full skill text with companion resources appended.

    Raises:
        ToolError: If the skill file can no longer be read
    """
    try:
        content = info.path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ToolError(f"Failed to read skill '{info.key}': {e}") from e

    if not info.companions:
        return content

    parts = [content.rstrip("\n"), "", "---", "", "## Companion resources", ""]
    parts.append(f"Skill directory: {info.skill_dir}")
    for name, files in info.companions.items():
        parts.append("")
        parts.append(f"### {name}/")
        if not files:
            parts.append("(empty)")
        for file in files:
            parts.append(f"- {file}")
    return "\n".join(parts) + "\n"
