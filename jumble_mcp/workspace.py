"""Workspace index: every discovered project plus the workspace config.

The index is an immutable snapshot. `build_workspace_index()` walks the
root from scratch each time; the server swaps its single reference to the
new snapshot on reload, so no caller ever sees a half-built index.

Duplicate project names are resolved first-found-wins over a sorted walk.
Later duplicates are excluded and recorded in `WorkspaceIndex.conflicts`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Iterator, Mapping

import pathspec

from jumble_mcp import JUMBLE_DIR, PROJECT_MANIFEST
from jumble_mcp.config import Settings
from jumble_mcp.errors import ManifestError, NotFoundError, PersistenceError
from jumble_mcp.manifest import (
    ProjectConfig,
    ProjectConventions,
    ProjectDocs,
    WorkspaceConfig,
    load_conventions,
    load_docs,
    load_project_manifest,
    load_workspace_config,
)
from jumble_mcp.memory import MemoryStore
from jumble_mcp.skills import SkillInfo, discover_skills

log = logging.getLogger("jumble_mcp.workspace")

# Directories never descended into while looking for manifests (gitignore-style)
SKIP_DIRS = [
    ".git/",
    ".hg/",
    ".svn/",
    ".venv/",
    "venv/",
    "node_modules/",
    "__pycache__/",
    ".mypy_cache/",
    ".pytest_cache/",
    ".ruff_cache/",
    ".tox/",
    ".next/",
    "*.egg-info/",
]

_BUILTIN_SPEC = pathspec.PathSpec.from_lines("gitwildmatch", SKIP_DIRS)

MANIFEST_NAME = Path(PROJECT_MANIFEST).name

MemoryOpener = Callable[[Path, str], MemoryStore]


@dataclass(frozen=True)
class ProjectData:
    """Everything resolved for one project."""

    root: Path
    config: ProjectConfig
    skills: Mapping[str, SkillInfo]
    conventions: ProjectConventions
    docs: ProjectDocs
    memory: MemoryStore

    @property
    def name(self) -> str:
        return self.config.project.name


@dataclass(frozen=True)
class ProjectConflict:
    """A manifest excluded because its name was already claimed."""

    name: str
    kept: Path
    skipped: Path


@dataclass(frozen=True)
class WorkspaceIndex:
    """Immutable snapshot of a workspace."""

    root: Path
    workspace: WorkspaceConfig | None = None
    projects: Mapping[str, ProjectData] = field(default_factory=lambda: MappingProxyType({}))
    conflicts: tuple[ProjectConflict, ...] = ()
    skipped_manifests: tuple[Path, ...] = ()

    def project_names(self) -> list[str]:
        return sorted(self.projects)

    def get_project(self, name: str) -> ProjectData:
        """Look up a project by its declared name.

        Raises:
            NotFoundError: Listing the known project names
        """
        try:
            return self.projects[name]
        except KeyError:
            raise NotFoundError("Project", name, self.project_names()) from None


# =============================================================================
# DISCOVERY
# =============================================================================


def _should_skip_dir(dir_name: str, extra_spec: pathspec.PathSpec | None) -> bool:
    dir_with_slash = dir_name + "/"
    if _BUILTIN_SPEC.match_file(dir_with_slash):
        return True
    return bool(extra_spec and extra_spec.match_file(dir_with_slash))


def find_manifests(root: Path, skip_dirs: list[str] | None = None) -> Iterator[Path]:
    """Yield every `.jumble/project.toml` below `root` in sorted walk order.

    Uses os.walk() with in-place pruning of SKIP_DIRS (plus `skip_dirs`).
    Symlinked directories are followed once; cycles are cut.
    """
    extra_spec = pathspec.PathSpec.from_lines("gitwildmatch", skip_dirs) if skip_dirs else None
    seen: set[str] = set()

    for current, dirs, files in os.walk(root, followlinks=True):
        real = os.path.realpath(current)
        if real in seen:
            dirs[:] = []
            continue
        seen.add(real)

        current_path = Path(current)
        if current_path.name == JUMBLE_DIR:
            # Nothing below .jumble/ can hold another project's manifest
            dirs[:] = []
            if MANIFEST_NAME in files:
                manifest = current_path / MANIFEST_NAME
                if manifest.is_file():
                    yield manifest
            continue

        dirs[:] = sorted(d for d in dirs if not _should_skip_dir(d, extra_spec))


def open_project_memory(project_root: Path, name: str) -> MemoryStore:
    """Open the project's memory store, falling back to an in-memory store."""
    try:
        return MemoryStore.open_for_project(project_root)
    except PersistenceError as e:
        log.warning(f"Failed to load memory for project '{name}': {e}; using in-memory store")
        return MemoryStore()


def load_project(
    manifest_path: Path,
    settings: Settings,
    memory_opener: MemoryOpener = open_project_memory,
    config: ProjectConfig | None = None,
) -> ProjectData:
    """Load one project and all of its companion resources.

    Args:
        manifest_path: Path to `.jumble/project.toml`
        settings: Home dir and preview length for skill discovery
        memory_opener: Callable returning the project's memory store
        config: Already-parsed manifest (read from disk when None)

    Raises:
        ManifestError: If the manifest is unusable
    """
    if config is None:
        config = load_project_manifest(manifest_path)
    jumble_dir = manifest_path.parent
    project_root = jumble_dir.parent

    skills = discover_skills(
        project_root,
        settings.home_dir,
        preview_lines=settings.preview_lines,
    )
    return ProjectData(
        root=project_root,
        config=config,
        skills=MappingProxyType(skills),
        conventions=load_conventions(jumble_dir),
        docs=load_docs(jumble_dir),
        memory=memory_opener(project_root, config.project.name),
    )


def build_workspace_index(
    settings: Settings,
    memory_opener: MemoryOpener = open_project_memory,
) -> WorkspaceIndex:
    """Walk the workspace and build a fresh snapshot.

    Never raises for per-project problems: bad manifests are skipped and
    logged, duplicate names are recorded as conflicts.
    """
    root = settings.root
    projects: dict[str, ProjectData] = {}
    conflicts: list[ProjectConflict] = []
    skipped: list[Path] = []

    if not root.is_dir():
        log.warning(f"Workspace root does not exist: {root}")

    for manifest_path in find_manifests(root, settings.skip_dirs):
        try:
            config = load_project_manifest(manifest_path)
        except ManifestError as e:
            log.warning(f"Skipping project: {e}")
            skipped.append(manifest_path)
            continue

        name = config.project.name
        project_root = manifest_path.parent.parent
        if name in projects:
            kept = projects[name].root
            log.warning(
                f"Duplicate project name '{name}' at {project_root} "
                f"(already defined at {kept}); keeping the first"
            )
            conflicts.append(ProjectConflict(name=name, kept=kept, skipped=project_root))
            continue

        projects[name] = load_project(manifest_path, settings, memory_opener, config=config)

    index = WorkspaceIndex(
        root=root,
        workspace=load_workspace_config(root),
        projects=MappingProxyType(projects),
        conflicts=tuple(conflicts),
        skipped_manifests=tuple(skipped),
    )
    log.info(
        f"Indexed {len(projects)} project(s) under {root}"
        + (f" ({len(conflicts)} name conflict(s))" if conflicts else "")
    )
    return index
