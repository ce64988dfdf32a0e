"""Tests for settings resolution."""

from pathlib import Path

import pytest

from jumble_mcp.config import DEFAULT_PREVIEW_LINES, Settings, load_global_config, resolve_home_dir


@pytest.fixture
def clean_env(monkeypatch):
    for var in ("JUMBLE_HOME", "JUMBLE_ROOT", "JUMBLE_DEBUG", "HOME", "USERPROFILE", "HOMEDRIVE", "HOMEPATH"):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestResolveHomeDir:
    def test_jumble_home_wins(self, clean_env):
        clean_env.setenv("HOME", "/home/user")
        clean_env.setenv("JUMBLE_HOME", "/custom")
        assert resolve_home_dir() == Path("/custom")

    def test_falls_back_to_userprofile(self, clean_env):
        clean_env.setenv("USERPROFILE", "/profile")
        assert resolve_home_dir() == Path("/profile")

    def test_homedrive_and_homepath(self, clean_env):
        clean_env.setenv("HOMEDRIVE", "C:")
        clean_env.setenv("HOMEPATH", "\\Users\\dev")
        assert resolve_home_dir() == Path("C:\\Users\\dev")

    def test_nothing_set(self, clean_env):
        assert resolve_home_dir() is None


class TestGlobalConfig:
    def test_creates_default(self, tmp_path):
        assert load_global_config(tmp_path) == {}
        assert (tmp_path / ".jumble" / "jumble.toml").read_text().startswith("# Global configuration")

    def test_invalid_toml_is_empty(self, tmp_path):
        (tmp_path / ".jumble").mkdir()
        (tmp_path / ".jumble" / "jumble.toml").write_text("[jumble\n")
        assert load_global_config(tmp_path) == {}

    def test_no_home(self):
        assert load_global_config(None) == {}


class TestSettingsFromEnv:
    def test_env_root_and_debug(self, clean_env, tmp_path):
        clean_env.setenv("JUMBLE_HOME", str(tmp_path / "home"))
        clean_env.setenv("JUMBLE_ROOT", str(tmp_path))
        clean_env.setenv("JUMBLE_DEBUG", "1")

        settings = Settings.from_env()

        assert settings.root == tmp_path.resolve()
        assert settings.home_dir == tmp_path / "home"
        assert settings.debug is True
        assert settings.preview_lines == DEFAULT_PREVIEW_LINES

    def test_explicit_root_beats_env(self, clean_env, tmp_path):
        clean_env.setenv("JUMBLE_ROOT", "/elsewhere")
        assert Settings.from_env(tmp_path).root == tmp_path.resolve()

    def test_global_config_values(self, clean_env, tmp_path):
        home = tmp_path / "home"
        (home / ".jumble").mkdir(parents=True)
        (home / ".jumble" / "jumble.toml").write_text('[jumble]\npreview_lines = 3\nskip_dirs = ["vendor/"]\n')
        clean_env.setenv("JUMBLE_HOME", str(home))

        settings = Settings.from_env(tmp_path)

        assert settings.preview_lines == 3
        assert settings.skip_dirs == ["vendor/"]

    def test_invalid_preview_lines_ignored(self, clean_env, tmp_path):
        home = tmp_path / "home"
        (home / ".jumble").mkdir(parents=True)
        (home / ".jumble" / "jumble.toml").write_text("[jumble]\npreview_lines = 0\n")
        clean_env.setenv("JUMBLE_HOME", str(home))

        assert Settings.from_env(tmp_path).preview_lines == DEFAULT_PREVIEW_LINES
