"""CLI for Jumble MCP.

Commands:
    serve     - Run MCP server (stdio mode)
    projects  - List discovered projects
    skills    - List the resolved skills of one project
    config    - Show resolved settings
    version   - Show version information
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from jumble_mcp import JUMBLE_DIR
from jumble_mcp.config import GLOBAL_CONFIG_NAME, Settings
from jumble_mcp.errors import NotFoundError, PersistenceError
from jumble_mcp.memory import MEMORY_FILE, MemoryStore
from jumble_mcp.workspace import build_workspace_index

app = typer.Typer(
    name="jumble-mcp",
    help="Queryable project context for LLM agents - MCP server",
    no_args_is_help=True,
)
console = Console()

ROOT_OPTION = typer.Option(None, "--root", "-r", help="Workspace root (default: $JUMBLE_ROOT or cwd)")


def _peek_memory(project_root: Path, name: str) -> MemoryStore:
    """Open an existing memory file without creating one."""
    path = project_root / JUMBLE_DIR / MEMORY_FILE
    if not path.exists():
        return MemoryStore()
    try:
        return MemoryStore.open(path)
    except PersistenceError as e:
        console.print(f"[yellow]![/yellow] {name}: {e}")
        return MemoryStore()


@app.command()
def serve(root: Path = ROOT_OPTION):
    """Run the MCP server on stdio."""
    from jumble_mcp.server import main as server_main

    server_main(root)


@app.command()
def projects(root: Path = ROOT_OPTION):
    """List projects discovered under the workspace root."""
    settings = Settings.from_env(root)
    index = build_workspace_index(settings, _peek_memory)

    if not index.projects:
        console.print(f"[yellow]No projects found under {settings.root}[/yellow]")
        console.print("[dim]Create .jumble/project.toml in each project directory.[/dim]")
        return

    table = Table(title=f"Projects in {settings.root}")
    table.add_column("Name", style="cyan")
    table.add_column("Language")
    table.add_column("Path")
    table.add_column("Skills", justify="right")
    table.add_column("Memories", justify="right")

    for name in index.project_names():
        project = index.projects[name]
        table.add_row(
            name,
            project.config.project.language or "unknown",
            str(project.root),
            str(len(project.skills)),
            str(len(project.memory)),
        )
    console.print(table)

    for conflict in index.conflicts:
        console.print(
            f"[yellow]![/yellow] Duplicate name '{conflict.name}': "
            f"using {conflict.kept}, ignoring {conflict.skipped}"
        )
    for path in index.skipped_manifests:
        console.print(f"[red]✗[/red] Invalid manifest skipped: {path}")


@app.command()
def skills(
    project: str = typer.Argument(..., help="Project name"),
    root: Path = ROOT_OPTION,
):
    """List the resolved skills of a project, in precedence order."""
    settings = Settings.from_env(root)
    index = build_workspace_index(settings, _peek_memory)

    try:
        data = index.get_project(project)
    except NotFoundError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    if not data.skills:
        console.print(f"[yellow]No skills found for '{project}'[/yellow]")
        return

    table = Table(title=f"Skills for {project}")
    table.add_column("Key", style="cyan")
    table.add_column("Source")
    table.add_column("Path")
    for key, info in data.skills.items():
        table.add_row(key, info.source, str(info.path))
    console.print(table)


@app.command()
def config(root: Path = ROOT_OPTION):
    """Show resolved configuration."""
    settings = Settings.from_env(root)

    console.print("[bold blue]Jumble Configuration[/bold blue]")
    console.print()
    console.print(f"[bold]Workspace root:[/bold] {settings.root}")
    if settings.home_dir:
        console.print(f"[bold]Home directory:[/bold] {settings.home_dir}")
        console.print(f"[bold]Global config:[/bold] {settings.home_dir / JUMBLE_DIR / GLOBAL_CONFIG_NAME}")
    else:
        console.print("[bold]Home directory:[/bold] [yellow]not set[/yellow] (global skills disabled)")
    console.print(f"[bold]Preview lines:[/bold] {settings.preview_lines}")
    console.print(f"[bold]Extra skip dirs:[/bold] {', '.join(settings.skip_dirs) or '(none)'}")
    console.print(f"[bold]Debug logging:[/bold] {'on' if settings.debug else 'off'}")


@app.command()
def version():
    """Show version information."""
    from jumble_mcp import __version__
    console.print(f"jumble-mcp version {__version__}")


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
