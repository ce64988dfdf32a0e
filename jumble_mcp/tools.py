"""MCP tool definitions and implementations.

TOOL SURFACE:
- Projects: list_projects, get_project_info, get_commands,
  get_architecture, get_related_files
- Skills: list_skills, get_skill (list_prompts / get_prompt aliases)
- Context: get_conventions, get_docs, get_workspace_overview,
  get_workspace_conventions, get_jumble_authoring_prompt
- Lifecycle: reload_workspace
- Memory: store_memory, get_memory, list_memories, search_memories,
  delete_memory, clear_memories

Every handler receives the raw `arguments` dict, validates it into a
pydantic model, and returns Markdown text or raises a ToolError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Literal

from mcp.types import Tool
from pydantic import BaseModel, ConfigDict, Field, StrictBool
from pydantic import ValidationError as PydanticValidationError

from jumble_mcp.errors import NotFoundError, ValidationError
from jumble_mcp.formatting import (
    format_api,
    format_commands,
    format_concept,
    format_dependencies,
    format_entry_points,
    format_memory_entry,
    format_memory_list,
    format_related_projects,
    format_sections,
)
from jumble_mcp.skills import render_skill

if TYPE_CHECKING:
    from jumble_mcp.server import JumbleServer

log = logging.getLogger("jumble_mcp.tools")


# =============================================================================
# ARGUMENT MODELS
# =============================================================================


class _Args(BaseModel):
    model_config = ConfigDict(extra="ignore")


class NoArgs(_Args):
    pass


class ProjectArgs(_Args):
    project: str = Field(description="The project name")


class ProjectInfoArgs(ProjectArgs):
    field: Literal["commands", "entry_points", "dependencies", "api", "related_projects"] | None = Field(
        default=None,
        description="Optional specific field to retrieve",
    )


class CommandsArgs(ProjectArgs):
    command_type: str | None = Field(
        default=None,
        description="Optional specific command type: 'build', 'test', 'lint', 'run', 'dev'",
    )


class ArchitectureArgs(ProjectArgs):
    concept: str = Field(
        description="The architectural concept to look up (e.g., 'authentication', 'routing', 'database')",
    )


class RelatedFilesArgs(ProjectArgs):
    query: str = Field(min_length=1, description="Search query to match against concept names and summaries")


class SkillArgs(ProjectArgs):
    topic: str = Field(description="The skill topic (e.g., 'add-endpoint', 'debug-auth')")


class ConventionsArgs(ProjectArgs):
    category: Literal["conventions", "gotchas"] | None = Field(
        default=None,
        description="Optional: 'conventions' or 'gotchas' to filter results",
    )


class DocsArgs(ProjectArgs):
    topic: str | None = Field(default=None, description="Optional: specific doc topic to get the path for")


class WorkspaceConventionsArgs(_Args):
    category: Literal["conventions", "gotchas"] | None = Field(
        default=None,
        description="Optional: 'conventions' or 'gotchas' to filter results",
    )


class StoreMemoryArgs(ProjectArgs):
    key: str = Field(min_length=1, description="Unique key for this memory within the project")
    value: str = Field(description="The content to remember")
    source: str | None = Field(default=None, description="Optional source tag (e.g., agent or tool name)")


class MemoryKeyArgs(ProjectArgs):
    key: str = Field(description="The memory key")


class ListMemoriesArgs(ProjectArgs):
    pattern: str | None = Field(default=None, description="Optional case-insensitive substring filter on keys")


class SearchMemoriesArgs(ProjectArgs):
    query: str = Field(min_length=1, description="Case-insensitive text to find in keys or values")


class ClearMemoriesArgs(ProjectArgs):
    pattern: str | None = Field(
        default=None,
        description="Optional key substring; only matching memories are removed",
    )
    confirm: StrictBool = Field(description="Must be true to actually delete memories")


def parse_arguments(model: type[_Args], arguments: dict[str, Any]) -> Any:
    """Validate raw tool arguments into `model`.

    Raises:
        ValidationError: Naming the first missing or ill-typed argument
    """
    try:
        return model.model_validate(arguments)
    except PydanticValidationError as e:
        err = e.errors()[0]
        name = ".".join(str(part) for part in err["loc"]) or "arguments"
        if err["type"] == "missing":
            raise ValidationError(f"Missing '{name}' argument") from None
        raise ValidationError(f"Invalid '{name}' argument: {err['msg']}") from None


def _input_schema(model: type[_Args]) -> dict[str, Any]:
    """JSON schema for `model`, flattened for MCP clients.

    Drops pydantic titles and null defaults, and collapses `X | None`
    into plain `X` (optionality is expressed by `required`).
    """
    schema = model.model_json_schema()
    properties: dict[str, Any] = {}
    for name, prop in schema.get("properties", {}).items():
        prop = {k: v for k, v in prop.items() if k != "title"}
        variants = prop.pop("anyOf", None)
        if variants:
            non_null = [v for v in variants if v.get("type") != "null"]
            if len(non_null) == 1:
                prop.update(non_null[0])
        if prop.get("default", ...) is None:
            del prop["default"]
        properties[name] = prop
    return {
        "type": "object",
        "properties": properties,
        "required": schema.get("required", []),
    }


# =============================================================================
# REGISTRY
# =============================================================================


Handler = Callable[["JumbleServer", Any], str]


@dataclass(frozen=True)
class RegisteredTool:
    name: str
    description: str
    args_model: type[_Args]
    handler: Handler

    def definition(self) -> Tool:
        return Tool(name=self.name, description=self.description, inputSchema=_input_schema(self.args_model))

    def call(self, server: "JumbleServer", arguments: dict[str, Any]) -> str:
        return self.handler(server, parse_arguments(self.args_model, arguments))


TOOLS: dict[str, RegisteredTool] = {}


def tool(name: str, description: str, args_model: type[_Args] = NoArgs):
    """Register a handler under `name` (decorator)."""

    def decorator(fn: Handler) -> Handler:
        TOOLS[name] = RegisteredTool(name=name, description=description, args_model=args_model, handler=fn)
        return fn

    return decorator


def tools_list() -> list[Tool]:
    """Definitions of every registered tool, in registration order."""
    return [registered.definition() for registered in TOOLS.values()]


# =============================================================================
# PROJECT TOOLS
# =============================================================================


@tool(
    "list_projects",
    "Lists all projects with their descriptions. Use this to discover what projects exist in the workspace.",
)
def list_projects(server: "JumbleServer", args: NoArgs) -> str:
    index = server.index
    if not index.projects:
        return "No projects found. Make sure .jumble/project.toml files exist in your workspace."

    output = ""
    for name in index.project_names():
        project = index.projects[name]
        info = project.config.project
        output += f"- **{name}** ({info.language or 'unknown'}): {info.description}\n  Path: {project.root}\n"

    if index.conflicts:
        output += "\n**Name conflicts (later manifests ignored):**\n"
        for conflict in index.conflicts:
            output += f"- {conflict.name}: kept {conflict.kept}, ignored {conflict.skipped}\n"
    return output


@tool(
    "get_project_info",
    "Returns metadata about a specific project including description, language, version, entry points, and dependencies.",
    ProjectInfoArgs,
)
def get_project_info(server: "JumbleServer", args: ProjectInfoArgs) -> str:
    project = server.index.get_project(args.project)
    config = project.config

    if args.field == "commands":
        return format_commands(config.commands)
    if args.field == "entry_points":
        return format_entry_points(config.entry_points)
    if args.field == "dependencies":
        return format_dependencies(config.dependencies)
    if args.field == "api":
        return format_api(config.api)
    if args.field == "related_projects":
        return format_related_projects(config.related_projects)

    info = config.project
    output = f"# {info.name}\n\n**Description:** {info.description}\n"
    if info.language:
        output += f"**Language:** {info.language}\n"
    if info.version:
        output += f"**Version:** {info.version}\n"
    if info.repository:
        output += f"**Repository:** {info.repository}\n"
    output += f"**Path:** {project.root}\n"

    if config.entry_points:
        output += "\n## Entry Points\n" + format_entry_points(config.entry_points)

    if config.concepts:
        output += "\n## Concepts\n"
        for name, concept in sorted(config.concepts.items()):
            output += f"- **{name}**: {concept.summary}\n"

    return output


@tool(
    "get_commands",
    "Returns build, test, lint, run, and dev commands for a project.",
    CommandsArgs,
)
def get_commands(server: "JumbleServer", args: CommandsArgs) -> str:
    commands = server.index.get_project(args.project).config.commands
    if args.command_type is None:
        return format_commands(commands)
    if args.command_type not in commands:
        raise NotFoundError(f"Command for project '{args.project}'", args.command_type, sorted(commands))
    return f"{args.command_type}: {commands[args.command_type]}"


@tool(
    "get_architecture",
    "Returns architectural info for a specific concept/area of a project, including relevant files and a summary.",
    ArchitectureArgs,
)
def get_architecture(server: "JumbleServer", args: ArchitectureArgs) -> str:
    project = server.index.get_project(args.project)
    concepts = project.config.concepts
    names = sorted(concepts)

    # Exact, then case-insensitive, then substring of name or summary
    if args.concept in concepts:
        return format_concept(project.root, args.concept, concepts[args.concept])

    wanted = args.concept.lower()
    for name in names:
        if name.lower() == wanted:
            return format_concept(project.root, name, concepts[name])

    for name in names:
        if wanted in name.lower() or wanted in concepts[name].summary.lower():
            return format_concept(project.root, name, concepts[name])

    raise NotFoundError("Concept", args.concept, names)


@tool(
    "get_related_files",
    "Finds files related to a concept or feature by searching through all defined concepts.",
    RelatedFilesArgs,
)
def get_related_files(server: "JumbleServer", args: RelatedFilesArgs) -> str:
    project = server.index.get_project(args.project)
    concepts = project.config.concepts
    wanted = args.query.lower()

    matched = [
        name
        for name in sorted(concepts)
        if wanted in name.lower() or wanted in concepts[name].summary.lower()
    ]
    if not matched:
        raise NotFoundError("Concepts matching", args.query, sorted(concepts))

    output = f"Files related to '{args.query}':\n\n"
    for name in matched:
        concept = concepts[name]
        output += f"## {name}\n{concept.summary}\n\nFiles:\n"
        for file in concept.files:
            output += f"- {project.root / file}\n"
        output += "\n"
    return output


# =============================================================================
# SKILL TOOLS
# =============================================================================


def _list_skills(server: "JumbleServer", args: ProjectArgs, noun: str) -> str:
    project = server.index.get_project(args.project)
    if not project.skills:
        return (
            f"No {noun}s found for '{args.project}'. Create .jumble/skills/*.md files or "
            f".claude/skills/<name>/SKILL.md to add task-specific context."
        )

    output = f"Available {noun}s for '{args.project}':\n\n"
    for key in sorted(project.skills):
        summary = project.skills[key].summary
        output += f"- {key}: {summary}\n" if summary else f"- {key}\n"
    output += f"\nUse get_{noun}(project, topic) to retrieve a specific {noun}."
    return output


def _get_skill(server: "JumbleServer", args: SkillArgs, noun: str) -> str:
    project = server.index.get_project(args.project)
    info = project.skills.get(args.topic)
    if info is None:
        raise NotFoundError(noun.capitalize(), args.topic, sorted(project.skills))
    return render_skill(info)


@tool(
    "list_skills",
    "Lists available task-specific skills for a project. Skills provide focused context for specific tasks like adding endpoints, debugging, etc.",
    ProjectArgs,
)
def list_skills(server: "JumbleServer", args: ProjectArgs) -> str:
    return _list_skills(server, args, "skill")


@tool(
    "get_skill",
    "Retrieves a task-specific skill containing focused context and instructions, plus any companion resources.",
    SkillArgs,
)
def get_skill(server: "JumbleServer", args: SkillArgs) -> str:
    return _get_skill(server, args, "skill")


@tool(
    "list_prompts",
    "Alias of list_skills: lists task-specific prompts for a project.",
    ProjectArgs,
)
def list_prompts(server: "JumbleServer", args: ProjectArgs) -> str:
    return _list_skills(server, args, "prompt")


@tool(
    "get_prompt",
    "Alias of get_skill: retrieves a task-specific prompt by topic.",
    SkillArgs,
)
def get_prompt(server: "JumbleServer", args: SkillArgs) -> str:
    return _get_skill(server, args, "prompt")


# =============================================================================
# CONTEXT TOOLS
# =============================================================================


def _render_conventions(
    title: str,
    conventions: dict[str, str],
    gotchas: dict[str, str],
    category: str | None,
    empty: str,
) -> str:
    if category == "conventions":
        return format_sections(f"{title} Conventions", conventions) if conventions else f"No {empty}conventions defined."
    if category == "gotchas":
        return format_sections(f"{title} Gotchas", gotchas) if gotchas else f"No {empty}gotchas defined."

    output = ""
    if conventions:
        output += format_sections(f"{title} Conventions", conventions)
    if gotchas:
        output += format_sections(f"{title} Gotchas", gotchas)
    return output


@tool(
    "get_conventions",
    "Returns project-specific coding conventions and gotchas. Conventions are architectural patterns and standards; gotchas are common mistakes to avoid.",
    ConventionsArgs,
)
def get_conventions(server: "JumbleServer", args: ConventionsArgs) -> str:
    conventions = server.index.get_project(args.project).conventions
    if not conventions.conventions and not conventions.gotchas:
        return (
            f"No conventions found for '{args.project}'. Create .jumble/conventions.toml "
            "to add project-specific conventions and gotchas."
        )
    return _render_conventions(
        f"'{args.project}'", conventions.conventions, conventions.gotchas, args.category, ""
    )


@tool(
    "get_docs",
    "Returns a documentation index for a project, listing available docs with summaries. Optionally retrieves the path to a specific doc.",
    DocsArgs,
)
def get_docs(server: "JumbleServer", args: DocsArgs) -> str:
    project = server.index.get_project(args.project)
    docs = project.docs.docs
    if not docs:
        return (
            f"No documentation index found for '{args.project}'. "
            "Create .jumble/docs.toml to index project documentation."
        )

    if args.topic is not None:
        doc = docs.get(args.topic)
        if doc is None:
            raise NotFoundError("Doc", args.topic, sorted(docs))
        return f"## {args.topic}\n**Summary:** {doc.summary}\n**Path:** {project.root / doc.path}"

    output = f"# Documentation for '{args.project}'\n\n"
    for name, doc in sorted(docs.items()):
        output += f"- **{name}**: {doc.summary}\n"
    output += "\nUse get_docs(project, topic) to get the path to a specific doc."
    return output


@tool(
    "get_workspace_overview",
    "Returns a high-level overview of the entire workspace: workspace info, all projects with descriptions, and their dependency relationships. Call this first to understand the workspace structure.",
)
def get_workspace_overview(server: "JumbleServer", args: NoArgs) -> str:
    index = server.index
    workspace = index.workspace

    title = (workspace.workspace.name if workspace else None) or "Workspace Overview"
    output = f"# {title}\n\n"
    if workspace and workspace.workspace.description:
        output += f"{workspace.workspace.description}\n\n"
    output += f"**Root:** {index.root}\n\n"

    if not index.projects:
        return output + "No projects found.\n"

    names = index.project_names()
    output += "## Projects\n\n"
    for name in names:
        info = index.projects[name].config.project
        output += f"- **{name}** ({info.language or 'unknown'}): {info.description}\n"

    output += "\n## Dependencies\n\n"
    has_deps = False
    for name in names:
        related = index.projects[name].config.related_projects
        if not related.upstream and not related.downstream:
            continue
        has_deps = True
        output += f"**{name}**:\n"
        if related.upstream:
            output += f"  ← depends on: {', '.join(related.upstream)}\n"
        if related.downstream:
            output += f"  → used by: {', '.join(related.downstream)}\n"
    if not has_deps:
        output += "No cross-project dependencies defined.\n"

    if index.conflicts:
        output += "\n## Conflicts\n\n"
        for conflict in index.conflicts:
            output += f"- **{conflict.name}** declared twice: using {conflict.kept}, ignoring {conflict.skipped}\n"

    if workspace is not None:
        output += "\n*Use get_workspace_conventions() for workspace-wide coding standards.*"
    return output


@tool(
    "get_workspace_conventions",
    "Returns workspace-level conventions and gotchas that apply across all projects in the workspace.",
    WorkspaceConventionsArgs,
)
def get_workspace_conventions(server: "JumbleServer", args: WorkspaceConventionsArgs) -> str:
    workspace = server.index.workspace
    if workspace is None:
        raise NotFoundError(
            "Workspace config",
            ".jumble/workspace.toml",
            hint="Create .jumble/workspace.toml at the workspace root to define workspace-level conventions.",
        )
    if not workspace.conventions and not workspace.gotchas:
        return "Workspace config exists but no conventions or gotchas defined."

    title = workspace.workspace.name or "Workspace"
    return _render_conventions(title, workspace.conventions, workspace.gotchas, args.category, "workspace ")


AUTHORING_PROMPT = """# Authoring .jumble context files

Create a `.jumble/` directory at the root of each project.

## .jumble/project.toml (required)

```toml
[project]
name = "my-service"            # unique across the workspace
description = "One-line purpose of the project"
language = "python"            # optional
version = "1.2.0"              # optional
repository = "https://..."     # optional

[commands]
build = "make build"
test = "pytest"

[entry_points]
main = "src/my_service/__main__.py"

[dependencies]
internal = ["shared-lib"]
external = ["httpx", "pydantic"]

[related_projects]
upstream = ["shared-lib"]
downstream = ["web-frontend"]

[api]
openapi = "docs/openapi.yaml"
base_url = "/api/v1"
endpoints = ["GET /users", "POST /users"]

[concepts.authentication]
files = ["src/my_service/auth.py"]
summary = "JWT validation and session handling"
```

## .jumble/conventions.toml (optional)

```toml
[conventions]
error_handling = "Raise domain errors; translate at the API boundary"

[gotchas]
timezones = "All timestamps are UTC; never use naive datetimes"
```

## .jumble/docs.toml (optional)

```toml
[docs.architecture]
path = "docs/architecture.md"
summary = "Component overview and data flow"
```

## Skills (optional)

- Flat: `.jumble/skills/<topic>.md`
- Structured: `.claude/skills/<topic>/SKILL.md` or `.codex/skills/<topic>/SKILL.md`,
  optionally with `scripts/`, `references/`, `docs/`, `assets/`, `examples/`
  or `templates/` next to `SKILL.md`.

Skill files may start with YAML frontmatter:

```markdown
---
name: add-endpoint
description: Steps for adding a new REST endpoint
tags: [api, http]
---
```

## Workspace (optional)

`.jumble/workspace.toml` at the workspace root holds `[workspace]` name and
description plus workspace-wide `[conventions]` and `[gotchas]`.

Guidelines: keep summaries to one sentence, list only the files an agent
needs to read first, and call reload_workspace() after editing.
"""


@tool(
    "get_jumble_authoring_prompt",
    "Returns instructions for creating .jumble context files (project.toml, conventions.toml, docs.toml, skills) for a project.",
)
def get_jumble_authoring_prompt(server: "JumbleServer", args: NoArgs) -> str:
    return AUTHORING_PROMPT


@tool(
    "reload_workspace",
    "Reloads workspace and project metadata from disk. Use this after editing .jumble files to pick up changes without restarting the server.",
)
def reload_workspace(server: "JumbleServer", args: NoArgs) -> str:
    index = server.reload()
    return f"Workspace and projects reloaded from disk. {len(index.projects)} project(s) indexed."


# =============================================================================
# MEMORY TOOLS
# =============================================================================


@tool(
    "store_memory",
    "Stores a key-value memory for a project, persisted across sessions. Storing an existing key overwrites it.",
    StoreMemoryArgs,
)
def store_memory(server: "JumbleServer", args: StoreMemoryArgs) -> str:
    memory = server.index.get_project(args.project).memory
    entry, replaced = memory.store(args.key, args.value, args.source)
    verb = "Updated" if replaced else "Stored"
    log.info(f"{verb} memory '{args.key}' for project '{args.project}'")
    return f"{verb} memory '{args.key}' for project '{args.project}' at {entry.timestamp}."


@tool(
    "get_memory",
    "Retrieves a stored memory by exact key.",
    MemoryKeyArgs,
)
def get_memory(server: "JumbleServer", args: MemoryKeyArgs) -> str:
    memory = server.index.get_project(args.project).memory
    return format_memory_entry(args.key, memory.get(args.key))


@tool(
    "list_memories",
    "Lists all memories for a project, optionally filtered by a case-insensitive key substring.",
    ListMemoriesArgs,
)
def list_memories(server: "JumbleServer", args: ListMemoriesArgs) -> str:
    memory = server.index.get_project(args.project).memory
    entries = memory.list(args.pattern)
    if not entries:
        if args.pattern:
            return f"No memories matching '{args.pattern}' in '{args.project}'."
        return f"No memories stored for '{args.project}'. Use store_memory to add one."
    return f"# Memories for '{args.project}' ({len(entries)})\n\n" + format_memory_list(entries)


@tool(
    "search_memories",
    "Searches memory keys and values for a case-insensitive substring.",
    SearchMemoriesArgs,
)
def search_memories(server: "JumbleServer", args: SearchMemoriesArgs) -> str:
    memory = server.index.get_project(args.project).memory
    entries = memory.search(args.query)
    if not entries:
        return f"No memories matching '{args.query}' in '{args.project}'."
    return f"# Memories matching '{args.query}' in '{args.project}' ({len(entries)})\n\n" + format_memory_list(entries)


@tool(
    "delete_memory",
    "Deletes a single memory by key.",
    MemoryKeyArgs,
)
def delete_memory(server: "JumbleServer", args: MemoryKeyArgs) -> str:
    memory = server.index.get_project(args.project).memory
    memory.delete(args.key)
    log.info(f"Deleted memory '{args.key}' from project '{args.project}'")
    return f"Deleted memory '{args.key}' from project '{args.project}'."


@tool(
    "clear_memories",
    "Deletes all memories for a project (or only keys containing `pattern`). Requires confirm=true.",
    ClearMemoriesArgs,
)
def clear_memories(server: "JumbleServer", args: ClearMemoriesArgs) -> str:
    memory = server.index.get_project(args.project).memory
    removed = memory.clear(args.pattern, confirm=args.confirm)
    log.info(f"Cleared {removed} memories from project '{args.project}'")
    scope = f" matching '{args.pattern}'" if args.pattern else ""
    return f"Cleared {removed} memories{scope} from project '{args.project}'."
