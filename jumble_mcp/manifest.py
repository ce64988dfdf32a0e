"""Project manifest models and loaders.

ARCHITECTURE:
- Every project is declared by `<project>/.jumble/project.toml`
- Project identity is the manifest-declared name, never the path
- Optional companions live next to the manifest:
    conventions.toml - [conventions] / [gotchas] tables
    docs.toml        - [docs.<topic>] path + summary
- The workspace root may carry `.jumble/workspace.toml`

A broken manifest raises ManifestError (the project is skipped by the
caller). Broken companion files degrade to empty defaults.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from jumble_mcp import JUMBLE_DIR
from jumble_mcp.errors import ManifestError

log = logging.getLogger("jumble_mcp.manifest")

CONVENTIONS_FILE = "conventions.toml"
DOCS_FILE = "docs.toml"
WORKSPACE_FILE = "workspace.toml"


# =============================================================================
# PROJECT MANIFEST MODELS
# =============================================================================


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ProjectInfo(_Frozen):
    """The required [project] table."""

    name: str
    description: str
    language: str | None = None
    version: str | None = None
    repository: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        """Project names are identities; blank names are rejected."""
        v = v.strip()
        if not v:
            raise ValueError("project name cannot be empty")
        return v


class Dependencies(_Frozen):
    internal: list[str] = Field(default_factory=list)
    external: list[str] = Field(default_factory=list)


class RelatedProjects(_Frozen):
    upstream: list[str] = Field(default_factory=list)
    downstream: list[str] = Field(default_factory=list)


class ApiInfo(_Frozen):
    openapi: str | None = None
    base_url: str | None = None
    endpoints: list[str] = Field(default_factory=list)


class Concept(_Frozen):
    """An architectural area: the files implementing it and a summary."""

    files: list[str]
    summary: str


class ProjectConfig(_Frozen):
    """Pydantic model for `.jumble/project.toml`.

    Only [project].name and [project].description are required; every other
    table resolves to an empty default.
    """

    project: ProjectInfo
    commands: dict[str, str] = Field(default_factory=dict)
    entry_points: dict[str, str] = Field(default_factory=dict)
    dependencies: Dependencies = Field(default_factory=Dependencies)
    related_projects: RelatedProjects = Field(default_factory=RelatedProjects)
    api: ApiInfo | None = None
    concepts: dict[str, Concept] = Field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.project.name


# =============================================================================
# COMPANION FILE MODELS
# =============================================================================


class ProjectConventions(_Frozen):
    """Conventions and gotchas (from `.jumble/conventions.toml`)."""

    conventions: dict[str, str] = Field(default_factory=dict)
    gotchas: dict[str, str] = Field(default_factory=dict)


class DocEntry(_Frozen):
    path: str
    summary: str


class ProjectDocs(_Frozen):
    """Documentation index (from `.jumble/docs.toml`)."""

    docs: dict[str, DocEntry] = Field(default_factory=dict)


class WorkspaceInfo(_Frozen):
    name: str | None = None
    description: str | None = None


class WorkspaceConfig(_Frozen):
    """Workspace-level config (from `<root>/.jumble/workspace.toml`)."""

    workspace: WorkspaceInfo = Field(default_factory=WorkspaceInfo)
    conventions: dict[str, str] = Field(default_factory=dict)
    gotchas: dict[str, str] = Field(default_factory=dict)


# =============================================================================
# LOADERS
# =============================================================================


def parse_project_manifest(content: str, source: str | Path = "<string>") -> ProjectConfig:
    """Parse manifest text into a ProjectConfig.

    Args:
        content: TOML text of the manifest
        source: Path or label used in error messages

    Raises:
        ManifestError: If the text is not TOML or lacks the required shape
    """
    try:
        raw = tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        raise ManifestError(source, f"invalid TOML: {e}") from e

    try:
        return ProjectConfig.model_validate(raw)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ManifestError(source, problems) from e


def load_project_manifest(path: str | Path) -> ProjectConfig:
    """Read and parse a `.jumble/project.toml` file.

    Raises:
        ManifestError: If the file is unreadable or invalid
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ManifestError(path, f"unreadable: {e}") from e
    return parse_project_manifest(content, path)


_M = TypeVar("_M", bound=BaseModel)


def _load_optional_toml(path: Path, model: type[_M]) -> _M | None:
    """Load an optional TOML file into `model`; None when absent or invalid."""
    if not path.is_file():
        return None
    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
        return model.model_validate(raw)
    except OSError as e:
        log.warning(f"Failed to read {path}: {e}")
    except tomllib.TOMLDecodeError as e:
        log.warning(f"Failed to parse TOML {path}: {e}")
    except PydanticValidationError as e:
        log.warning(f"Invalid content in {path}: {e.error_count()} error(s)")
    return None


def load_conventions(jumble_dir: Path) -> ProjectConventions:
    """Load `<jumble_dir>/conventions.toml`, empty if missing or invalid."""
    return _load_optional_toml(jumble_dir / CONVENTIONS_FILE, ProjectConventions) or ProjectConventions()


def load_docs(jumble_dir: Path) -> ProjectDocs:
    """Load `<jumble_dir>/docs.toml`, empty if missing or invalid."""
    return _load_optional_toml(jumble_dir / DOCS_FILE, ProjectDocs) or ProjectDocs()


def load_workspace_config(root: Path) -> WorkspaceConfig | None:
    """Load `<root>/.jumble/workspace.toml` if present and valid."""
    return _load_optional_toml(root / JUMBLE_DIR / WORKSPACE_FILE, WorkspaceConfig)
