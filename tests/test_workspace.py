"""Tests for workspace discovery and index building."""

import pytest

from jumble_mcp.config import Settings
from jumble_mcp.errors import NotFoundError
from jumble_mcp.memory import MemoryStore
from jumble_mcp.workspace import build_workspace_index, find_manifests, open_project_memory


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "ws"
    root.mkdir()
    return root


@pytest.fixture
def settings(workspace, tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    return Settings(root=workspace, home_dir=home)


def make_project(root, rel, name, description="A project"):
    jumble_dir = root / rel / ".jumble"
    jumble_dir.mkdir(parents=True, exist_ok=True)
    (jumble_dir / "project.toml").write_text(
        f'[project]\nname = "{name}"\ndescription = "{description}"\n'
    )
    return root / rel


class TestFindManifests:
    """Tests for find_manifests."""

    def test_finds_nested_manifests_sorted(self, workspace):
        make_project(workspace, "b", "b")
        make_project(workspace, "a/inner", "inner")
        make_project(workspace, "a", "a")

        found = [p.relative_to(workspace).as_posix() for p in find_manifests(workspace)]

        assert found == ["a/.jumble/project.toml", "a/inner/.jumble/project.toml", "b/.jumble/project.toml"]

    def test_skips_vendor_and_cache_dirs(self, workspace):
        make_project(workspace, "node_modules/pkg", "pkg")
        make_project(workspace, ".git/hooks", "git")
        make_project(workspace, ".venv/lib", "venv")
        make_project(workspace, "real", "real")

        found = list(find_manifests(workspace))

        assert found == [workspace / "real" / ".jumble" / "project.toml"]

    def test_build_named_dirs_are_walked(self, workspace, settings):
        """Projects often live in dirs called build, target or dist."""
        make_project(workspace, "tools/build", "build-tool")
        make_project(workspace, "services/target", "target-svc")
        make_project(workspace, "dist", "dist-pkg")
        make_project(workspace, "app", "app")

        index = build_workspace_index(settings)

        assert index.project_names() == ["app", "build-tool", "dist-pkg", "target-svc"]
        assert index.get_project("target-svc").root == workspace / "services" / "target"

    def test_extra_skip_dirs(self, workspace):
        make_project(workspace, "vendor/x", "x")
        make_project(workspace, "src", "src")
        found = list(find_manifests(workspace, ["vendor/"]))
        assert found == [workspace / "src" / ".jumble" / "project.toml"]

    def test_jumble_dir_without_manifest(self, workspace):
        (workspace / "p" / ".jumble").mkdir(parents=True)
        assert list(find_manifests(workspace)) == []


class TestBuildWorkspaceIndex:
    """Tests for build_workspace_index."""

    def test_indexes_projects_by_declared_name(self, workspace, settings):
        make_project(workspace, "services/api", "api-server")

        index = build_workspace_index(settings)

        assert index.project_names() == ["api-server"]
        project = index.get_project("api-server")
        assert project.root == workspace / "services" / "api"
        assert project.memory.persistent

    def test_bad_manifest_is_skipped(self, workspace, settings):
        make_project(workspace, "good", "good")
        bad = workspace / "bad" / ".jumble"
        bad.mkdir(parents=True)
        (bad / "project.toml").write_text("[project]\nname = \n")

        index = build_workspace_index(settings)

        assert index.project_names() == ["good"]
        assert index.skipped_manifests == (bad / "project.toml",)

    def test_duplicate_names_first_found_wins(self, workspace, settings):
        make_project(workspace, "a", "dup", description="first")
        make_project(workspace, "b", "dup", description="second")

        index = build_workspace_index(settings)

        assert index.get_project("dup").config.project.description == "first"
        assert len(index.conflicts) == 1
        conflict = index.conflicts[0]
        assert conflict.kept == workspace / "a"
        assert conflict.skipped == workspace / "b"

    def test_unknown_project_lists_available(self, workspace, settings):
        make_project(workspace, "x", "alpha")
        make_project(workspace, "y", "beta")
        index = build_workspace_index(settings)

        with pytest.raises(NotFoundError, match="Available: alpha, beta"):
            index.get_project("gamma")

    def test_empty_workspace(self, settings):
        index = build_workspace_index(settings)
        assert index.projects == {}
        assert index.workspace is None

    def test_missing_root(self, tmp_path):
        index = build_workspace_index(Settings(root=tmp_path / "nowhere"))
        assert index.projects == {}

    def test_loads_companions_and_workspace(self, workspace, settings):
        root = make_project(workspace, "p", "p")
        (root / ".jumble" / "conventions.toml").write_text('[gotchas]\nx = "y"\n')
        (root / ".jumble" / "skills").mkdir()
        (root / ".jumble" / "skills" / "debug.md").write_text("Debugging\n")
        (workspace / ".jumble").mkdir()
        (workspace / ".jumble" / "workspace.toml").write_text('[workspace]\nname = "WS"\n')

        index = build_workspace_index(settings)

        project = index.get_project("p")
        assert project.conventions.gotchas == {"x": "y"}
        assert list(project.skills) == ["debug"]
        assert index.workspace.workspace.name == "WS"

    def test_rebuild_sees_added_and_removed_projects(self, workspace, settings):
        old = make_project(workspace, "old", "old")
        first = build_workspace_index(settings)

        (old / ".jumble" / "project.toml").unlink()
        make_project(workspace, "new", "new")
        second = build_workspace_index(settings)

        assert first.project_names() == ["old"]
        assert second.project_names() == ["new"]

    def test_projects_mapping_is_read_only(self, workspace, settings):
        make_project(workspace, "p", "p")
        index = build_workspace_index(settings)
        with pytest.raises(TypeError):
            index.projects["q"] = index.projects["p"]

    def test_memory_opener_is_used(self, workspace, settings):
        make_project(workspace, "p", "p")
        opened = []

        def opener(project_root, name):
            opened.append(name)
            return MemoryStore()

        index = build_workspace_index(settings, opener)

        assert opened == ["p"]
        assert not index.get_project("p").memory.persistent


class TestOpenProjectMemory:
    """Tests for the in-memory fallback."""

    def test_corrupt_store_falls_back_to_memory(self, tmp_path):
        (tmp_path / ".jumble").mkdir()
        (tmp_path / ".jumble" / "memory.json").write_text("garbage{")

        store = open_project_memory(tmp_path, "p")

        assert not store.persistent
        store.store("k", "v")
        assert store.get("k").value == "v"
