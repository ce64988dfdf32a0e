"""Runtime settings from environment variables and ~/.jumble/jumble.toml.

Environment:
    JUMBLE_ROOT   - Workspace root to scan (default: cwd)
    JUMBLE_HOME   - Home directory used for global skills and config
    JUMBLE_DEBUG  - Enable debug logging when set
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from jumble_mcp import JUMBLE_DIR

log = logging.getLogger("jumble_mcp.config")

GLOBAL_CONFIG_NAME = "jumble.toml"

DEFAULT_PREVIEW_LINES = 16

DEFAULT_GLOBAL_CONFIG = """# Global configuration for the Jumble MCP server.

[jumble]
# Number of body lines cached as a skill preview
# preview_lines = 16

# Extra gitignore-style directory patterns to skip when scanning the workspace
# skip_dirs = ["vendor/"]
"""


def resolve_home_dir() -> Path | None:
    """Resolve the home directory used for global resources.

    Prefers JUMBLE_HOME, then HOME, then USERPROFILE, then HOMEDRIVE+HOMEPATH.
    Empty values are ignored.
    """
    for var in ("JUMBLE_HOME", "HOME", "USERPROFILE"):
        value = os.environ.get(var)
        if value:
            return Path(value)

    drive = os.environ.get("HOMEDRIVE", "")
    path = os.environ.get("HOMEPATH", "")
    if drive and path:
        return Path(drive + path)
    return None


def load_global_config(home_dir: Path | None) -> dict:
    """Load `<home>/.jumble/jumble.toml`, creating a default one if missing.

    Failures to create, read or parse the file are logged and an empty
    config is returned; they never prevent the server from starting.
    """
    if home_dir is None:
        return {}

    config_dir = home_dir / JUMBLE_DIR
    config_path = config_dir / GLOBAL_CONFIG_NAME

    if not config_path.exists():
        try:
            config_dir.mkdir(parents=True, exist_ok=True)
            config_path.write_text(DEFAULT_GLOBAL_CONFIG, encoding="utf-8")
            log.info(f"Created default global config at {config_path}")
        except OSError as e:
            log.warning(f"Failed to create default config at {config_path}: {e}")
            return {}

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        log.warning(f"Failed to read global config at {config_path}: {e}")
        return {}
    except tomllib.TOMLDecodeError as e:
        log.warning(f"Failed to parse global config at {config_path}: {e}")
        return {}

    section = data.get("jumble", {})
    return section if isinstance(section, dict) else {}


@dataclass
class Settings:
    """Resolved server settings."""

    root: Path
    home_dir: Path | None = None
    debug: bool = False
    preview_lines: int = DEFAULT_PREVIEW_LINES
    skip_dirs: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, root: str | Path | None = None) -> "Settings":
        """Build settings from an explicit root, the environment and the global config."""
        if root is None:
            root = os.environ.get("JUMBLE_ROOT") or Path.cwd()
        home_dir = resolve_home_dir()
        global_config = load_global_config(home_dir)

        preview_lines = global_config.get("preview_lines", DEFAULT_PREVIEW_LINES)
        if not isinstance(preview_lines, int) or preview_lines <= 0:
            log.warning(f"Ignoring invalid preview_lines={preview_lines!r}")
            preview_lines = DEFAULT_PREVIEW_LINES

        skip_dirs = global_config.get("skip_dirs", [])
        if not isinstance(skip_dirs, list):
            log.warning(f"Ignoring invalid skip_dirs={skip_dirs!r}")
            skip_dirs = []

        return cls(
            root=Path(root).expanduser().resolve(),
            home_dir=home_dir,
            debug=bool(os.environ.get("JUMBLE_DEBUG")),
            preview_lines=preview_lines,
            skip_dirs=[str(p) for p in skip_dirs],
        )
