"""Tests for the jumble-mcp CLI."""

import pytest
from typer.testing import CliRunner

from jumble_mcp import __version__
from jumble_mcp.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("JUMBLE_HOME", str(home))
    monkeypatch.delenv("JUMBLE_ROOT", raising=False)
    monkeypatch.delenv("JUMBLE_DEBUG", raising=False)
    return home


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "ws"
    jumble_dir = root / "svc" / ".jumble"
    (jumble_dir / "skills").mkdir(parents=True)
    (jumble_dir / "project.toml").write_text('[project]\nname = "svc"\ndescription = "Service"\nlanguage = "go"\n')
    (jumble_dir / "skills" / "deploy.md").write_text("Deploy it\n")
    return root


class TestCommands:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_projects(self, workspace):
        result = runner.invoke(app, ["projects", "--root", str(workspace)])

        assert result.exit_code == 0
        assert "svc" in result.output
        assert "go" in result.output

    def test_projects_does_not_create_memory_files(self, workspace):
        runner.invoke(app, ["projects", "--root", str(workspace)])
        assert not (workspace / "svc" / ".jumble" / "memory.json").exists()

    def test_projects_empty(self, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        result = runner.invoke(app, ["projects", "--root", str(empty)])

        assert result.exit_code == 0
        assert "No projects found" in result.output

    def test_skills(self, workspace):
        result = runner.invoke(app, ["skills", "svc", "--root", str(workspace)])

        assert result.exit_code == 0
        assert "deploy" in result.output

    def test_skills_unknown_project(self, workspace):
        result = runner.invoke(app, ["skills", "nope", "--root", str(workspace)])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_config_creates_global_config(self, workspace, isolated_home):
        result = runner.invoke(app, ["config", "--root", str(workspace)])

        assert result.exit_code == 0
        assert "Preview lines" in result.output
        assert (isolated_home / ".jumble" / "jumble.toml").exists()

    def test_config_reads_preview_lines(self, workspace, isolated_home):
        (isolated_home / ".jumble").mkdir()
        (isolated_home / ".jumble" / "jumble.toml").write_text("[jumble]\npreview_lines = 4\n")

        result = runner.invoke(app, ["config", "--root", str(workspace)])

        assert "4" in result.output
