"""Markdown formatting helpers for tool output.

Pure functions: structured data in, string out. Mappings are rendered in
sorted key order so output is stable across reloads.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from jumble_mcp.manifest import ApiInfo, Concept, Dependencies, RelatedProjects
from jumble_mcp.memory import MemoryEntry

# Characters of a memory value shown in listings
MEMORY_PREVIEW_CHARS = 120


def format_commands(commands: Mapping[str, str]) -> str:
    if not commands:
        return "No commands defined."
    return "".join(f"- **{name}**: `{cmd}`\n" for name, cmd in sorted(commands.items()))


def format_entry_points(entry_points: Mapping[str, str]) -> str:
    if not entry_points:
        return "No entry points defined."
    return "".join(f"- **{name}**: {path}\n" for name, path in sorted(entry_points.items()))


def _bullets(title: str, items: list[str]) -> str:
    if not items:
        return ""
    return f"**{title}:**\n" + "".join(f"- {item}\n" for item in items)


def format_dependencies(deps: Dependencies) -> str:
    output = _bullets("Internal dependencies", deps.internal)
    output += _bullets("External dependencies", deps.external)
    return output or "No dependencies defined."


def format_related_projects(related: RelatedProjects) -> str:
    output = _bullets("Upstream (this project depends on)", related.upstream)
    output += _bullets("Downstream (depends on this project)", related.downstream)
    return output or "No related projects defined."


def format_api(api: ApiInfo | None) -> str:
    if api is None:
        return "No API information defined."
    output = ""
    if api.openapi:
        output += f"**OpenAPI spec:** {api.openapi}\n"
    if api.base_url:
        output += f"**Base URL:** {api.base_url}\n"
    output += _bullets("Endpoints", api.endpoints)
    return output or "API section defined but empty."


def format_concept(project_path: Path, name: str, concept: Concept) -> str:
    output = f"## {name}\n\n{concept.summary}\n\n**Files:**\n"
    for file in concept.files:
        output += f"- {project_path / file}\n"
    return output


def format_sections(title: str, entries: Mapping[str, str]) -> str:
    """`# title` followed by one `## name` section per entry."""
    output = f"# {title}\n\n"
    for name, text in sorted(entries.items()):
        output += f"## {name}\n{text}\n\n"
    return output


def format_memory_entry(key: str, entry: MemoryEntry) -> str:
    output = f"## {key}\n\n{entry.value}\n\n**Updated:** {entry.timestamp}\n"
    if entry.source:
        output += f"**Source:** {entry.source}\n"
    return output


def format_memory_list(entries: list[tuple[str, MemoryEntry]]) -> str:
    """One bullet per memory with a single-line, truncated value."""
    lines = []
    for key, entry in entries:
        value = " ".join(entry.value.split())
        if len(value) > MEMORY_PREVIEW_CHARS:
            value = value[: MEMORY_PREVIEW_CHARS - 3] + "..."
        line = f"- **{key}**: {value} _({entry.timestamp}"
        if entry.source:
            line += f", source: {entry.source}"
        lines.append(line + ")_")
    return "\n".join(lines) + "\n"
