"""Main CLI for ticketport."""

import logging
import typer
from pathlib import Path
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from typing import Optional

from .config import create_config, resolve_settings, CONFIG_DIR, CONFIG_FILE
from .output import format_response, render_cli
from .services import (
    CONFLICT_MODES,
    open_store,
    resolve_settings_info,
    export_epic_archive as svc_export_epic,
    export_project_archive as svc_export_project,
    preview_archive as svc_preview,
    import_archive as svc_import,
    create_project_and_import as svc_create_and_import,
    list_projects as svc_list_projects,
    list_epics as svc_list_epics,
)

app = typer.Typer(
    name="ticketport",
    help="ticketport - move epics and projects between ticket trackers",
)
console = Console()

FORMAT_HELP = "Output format (toon|json|text)"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log transfer progress to stderr"),
):
    """Export, preview and import ticket archives."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )


def _open(db_path: Optional[Path]):
    settings = resolve_settings()
    db, attachments = open_store(settings, db_path)
    return settings, db, attachments


def _emit(result: dict, output_format: str) -> None:
    """Print a service result, or its error and exit 1."""
    if "error" in result:
        console.print(f"[red]Error:[/red] {result['message']}")
        raise typer.Exit(1)
    response = format_response(result, output_format)
    console.print(render_cli(response))


# ============================================================================
# Config Commands
# ============================================================================


@app.command("config")
def show_config(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Path to resolve settings for"),
    output_format: str = typer.Option("toon", "--format", "-f", help=FORMAT_HELP),
):
    """Show resolved settings for current or specified directory.

    Displays:
    - Config source (directory, parent, user, none)
    - Database and attachment locations
    - Archive size limit and compression level
    """
    data = resolve_settings_info(path or Path.cwd())
    response = format_response(data, output_format)
    console.print(render_cli(response))


@app.command("init")
def init_config(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Directory to initialize"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="Database location to record"),
    exported_by: Optional[str] = typer.Option(None, "--user", help="Name recorded on exports"),
):
    """Initialize .ticketport/config.json in current or specified directory."""
    target_path = Path(path) if path else Path.cwd()

    if not target_path.exists():
        console.print(f"[red]Error:[/red] Directory not found: {target_path}")
        raise typer.Exit(1)

    existing_config = target_path / CONFIG_DIR / CONFIG_FILE
    if existing_config.exists():
        if not typer.confirm(f"Config already exists at {existing_config}. Overwrite?"):
            raise typer.Exit(0)

    config_path = create_config(target_path, db_path=db_path, exported_by=exported_by)
    console.print(f"\n[green]Created:[/green] {config_path}")
    console.print("\n[dim]Config contents:[/dim]")
    console.print(config_path.read_text())


# ============================================================================
# Discovery Commands
# ============================================================================


@app.command("projects")
def projects_list(
    db_path: Optional[Path] = typer.Option(None, "--db", help="Database path"),
    output_format: str = typer.Option("toon", "--format", "-f", help=FORMAT_HELP),
):
    """List projects in the store (use the IDs with export/import)."""
    _, db, _ = _open(db_path)
    _emit(svc_list_projects(db), output_format)


@app.command("epics")
def epics_list(
    project_id: str = typer.Option(..., "--project", help="Project ID"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="Database path"),
    output_format: str = typer.Option("toon", "--format", "-f", help=FORMAT_HELP),
):
    """List epics of a project with their ticket counts."""
    _, db, _ = _open(db_path)
    _emit(svc_list_epics(db, project_id), output_format)


# ============================================================================
# Transfer Commands
# ============================================================================

transfer_app = typer.Typer(help="Export and import ticket archives")
app.add_typer(transfer_app, name="transfer")


@transfer_app.command("export-epic")
def transfer_export_epic(
    epic_id: str = typer.Option(..., "--epic", help="Epic ID to export"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Archive path (default: <epic-title>.ticketport)"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="Database path"),
    output_format: str = typer.Option("toon", "--format", "-f", help=FORMAT_HELP),
):
    """Export one epic with its tickets, comments and attachments."""
    settings, db, attachments = _open(db_path)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Exporting epic {epic_id}...", total=None)
        result = svc_export_epic(db, attachments, settings, epic_id, output)
    _emit(result, output_format)


@transfer_app.command("export-project")
def transfer_export_project(
    project_id: str = typer.Option(..., "--project", help="Project ID to export"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Archive path (default: <project-name>.ticketport)"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="Database path"),
    output_format: str = typer.Option("toon", "--format", "-f", help=FORMAT_HELP),
):
    """Export every epic and ticket of a project."""
    settings, db, attachments = _open(db_path)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Exporting project {project_id}...", total=None)
        result = svc_export_project(db, attachments, settings, project_id, output)
    _emit(result, output_format)


@transfer_app.command("preview")
def transfer_preview(
    file: Path = typer.Option(..., "--file", help="Archive to inspect"),
    output_format: str = typer.Option("toon", "--format", "-f", help=FORMAT_HELP),
):
    """Show what an archive contains without importing it."""
    settings = resolve_settings()
    _emit(svc_preview(settings, file_path=file), output_format)


@transfer_app.command("import")
def transfer_import(
    file: Path = typer.Option(..., "--file", help="Archive to import"),
    target_project: Optional[str] = typer.Option(None, "--target-project", help="Existing project ID to import into"),
    new_project: Optional[str] = typer.Option(None, "--new-project", help="Create a project with this name and import into it"),
    project_path: Optional[str] = typer.Option(None, "--project-path", help="Directory for --new-project"),
    reset_statuses: bool = typer.Option(False, "--reset-statuses", help="Put every imported ticket in backlog"),
    conflict: str = typer.Option("create-new", "--conflict", help="Epic conflict mode (create-new|replace|merge)"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="Database path"),
    output_format: str = typer.Option("toon", "--format", "-f", help=FORMAT_HELP),
):
    """Import an archive into a project.

    Conflict modes for epics whose title already exists:

    \b
    - create-new: add a second epic titled "<title> (from <user>)"
    - replace:    drop the existing epic's tickets and import fresh ones
    - merge:      update tickets with matching titles, add the rest
    """
    if conflict not in CONFLICT_MODES:
        console.print(f"[red]Error:[/red] Unknown conflict mode '{conflict}'. Use one of: {', '.join(CONFLICT_MODES)}")
        raise typer.Exit(1)
    if bool(target_project) == bool(new_project):
        console.print("[red]Error:[/red] Pass exactly one of --target-project or --new-project")
        raise typer.Exit(1)

    settings, db, attachments = _open(db_path)
    if new_project:
        if not project_path:
            console.print("[red]Error:[/red] --project-path is required with --new-project")
            raise typer.Exit(1)
        result = svc_create_and_import(
            db,
            attachments,
            settings,
            new_project,
            project_path,
            file_path=file,
            reset_statuses=reset_statuses,
            conflict_resolution=conflict,
        )
    else:
        result = svc_import(
            db,
            attachments,
            settings,
            target_project,
            file_path=file,
            reset_statuses=reset_statuses,
            conflict_resolution=conflict,
        )
    _emit(result, output_format)


if __name__ == "__main__":
    app()
