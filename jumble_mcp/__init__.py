"""Jumble MCP - Queryable project context for LLM agents.

Indexes `.jumble/` project manifests across a workspace and serves them,
together with skills, conventions, docs and a per-project memory store,
over a line-delimited JSON-RPC (MCP) stdio protocol.
"""

__version__ = "0.6.0"

# Per-project metadata directory
JUMBLE_DIR = ".jumble"

# Manifest path relative to a project root
PROJECT_MANIFEST = f"{JUMBLE_DIR}/project.toml"
