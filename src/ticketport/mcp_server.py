"""MCP Server for ticketport - epic and project transfer between trackers.

Exposes export, preview and import of ``.ticketport`` archives to AI
assistants. Archives can be passed as file paths or as base64 strings.

Supports directory-based configuration via .ticketport/config.json files.
"""

from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import TransferSettings, resolve_settings
from .db import Database
from .attachments import AttachmentStore
from .errors import TransferError
from .output import format_response
from .services import (
    open_store,
    decode_archive_payload,
    export_epic_archive as svc_export_epic,
    export_project_archive as svc_export_project,
    preview_archive as svc_preview,
    import_archive as svc_import,
    create_project_and_import as svc_create_and_import,
    list_projects as svc_list_projects,
    list_epics as svc_list_epics,
)

mcp = FastMCP(
    "ticketport",
    instructions="""ticketport - move epics between projects and machines.

## Typical flow
1. `transfer_list_projects` to find project IDs
2. `transfer_list_epics(project_id)` to find epic IDs
3. `transfer_export_epic(epic_id)` or `transfer_export_project(project_id)`
4. `transfer_preview(file_path)` before importing somewhere else
5. `transfer_import(file_path, target_project_id, conflict_resolution)`

## Conflict resolution
- `create-new` (default): same-titled epic becomes "<title> (from <user>)"
- `replace`: existing epic's tickets are deleted and re-imported
- `merge`: tickets with matching titles are updated, the rest added

## Config
- Uses `.ticketport/config.json` per directory
- `path` selects the directory whose config applies""",
)


def _settings_for_path(path: Optional[str] = None) -> TransferSettings:
    return resolve_settings(Path(path) if path else None)


def _store_for_path(
    path: Optional[str] = None,
    db_path: Optional[str] = None,
) -> tuple[TransferSettings, Database, AttachmentStore]:
    """Resolve settings and open the store for a path.

    Returns (settings, db, attachments) tuple.
    """
    settings = _settings_for_path(path)
    db, attachments = open_store(settings, Path(db_path) if db_path else None)
    return settings, db, attachments


@mcp.tool()
def transfer_list_projects(
    path: Optional[str] = None,
    db_path: Optional[str] = None,
    format: str = "toon",
) -> dict:
    """List projects in the local store.

    Args:
        path: Directory whose .ticketport config applies (defaults to cwd)
        db_path: Explicit database path overriding the config

    Returns id, name and path for each project.
    """
    try:
        _, db, _ = _store_for_path(path, db_path)
    except Exception as e:
        return format_response({"error": "database_error", "message": str(e)}, format)
    return format_response(svc_list_projects(db), format)


@mcp.tool()
def transfer_list_epics(
    project_id: str,
    path: Optional[str] = None,
    db_path: Optional[str] = None,
    format: str = "toon",
) -> dict:
    """List epics of a project with their ticket counts.

    Args:
        project_id: Project to list
        path: Directory whose .ticketport config applies
        db_path: Explicit database path overriding the config
    """
    try:
        _, db, _ = _store_for_path(path, db_path)
    except Exception as e:
        return format_response({"error": "database_error", "message": str(e)}, format)
    return format_response(svc_list_epics(db, project_id), format)


@mcp.tool()
def transfer_export_epic(
    epic_id: str,
    output_path: Optional[str] = None,
    path: Optional[str] = None,
    db_path: Optional[str] = None,
    format: str = "toon",
) -> dict:
    """Export one epic to a .ticketport archive.

    Args:
        epic_id: Epic to export
        output_path: Archive file to write (default: <epic-title>.ticketport)
        path: Directory whose .ticketport config applies
        db_path: Explicit database path overriding the config

    Returns the archive path, its size, entity counts and any warnings
    (e.g. attachment files that could not be read).
    """
    try:
        settings, db, attachments = _store_for_path(path, db_path)
    except Exception as e:
        return format_response({"error": "database_error", "message": str(e)}, format)
    target = Path(output_path) if output_path else None
    return format_response(svc_export_epic(db, attachments, settings, epic_id, target), format)


@mcp.tool()
def transfer_export_project(
    project_id: str,
    output_path: Optional[str] = None,
    path: Optional[str] = None,
    db_path: Optional[str] = None,
    format: str = "toon",
) -> dict:
    """Export every epic and ticket of a project to a .ticketport archive.

    Args:
        project_id: Project to export
        output_path: Archive file to write (default: <project-name>.ticketport)
        path: Directory whose .ticketport config applies
        db_path: Explicit database path overriding the config
    """
    try:
        settings, db, attachments = _store_for_path(path, db_path)
    except Exception as e:
        return format_response({"error": "database_error", "message": str(e)}, format)
    target = Path(output_path) if output_path else None
    return format_response(svc_export_project(db, attachments, settings, project_id, target), format)


@mcp.tool()
def transfer_preview(
    file_path: Optional[str] = None,
    archive_base64: Optional[str] = None,
    path: Optional[str] = None,
    format: str = "toon",
) -> dict:
    """Summarize an archive without importing it.

    Pass either file_path or archive_base64. Attachments are not extracted.

    Returns source project, exporter, export date, epic names and counts.
    """
    settings = _settings_for_path(path)
    try:
        data = decode_archive_payload(archive_base64) if archive_base64 else None
    except TransferError as e:
        return format_response(e.to_dict(), format)
    result = svc_preview(settings, file_path=Path(file_path) if file_path else None, data=data)
    return format_response(result, format)


@mcp.tool()
def transfer_import(
    target_project_id: Optional[str] = None,
    file_path: Optional[str] = None,
    archive_base64: Optional[str] = None,
    conflict_resolution: str = "create-new",
    reset_statuses: bool = False,
    new_project_name: Optional[str] = None,
    new_project_path: Optional[str] = None,
    path: Optional[str] = None,
    db_path: Optional[str] = None,
    format: str = "toon",
) -> dict:
    """Import an archive into a project.

    Args:
        target_project_id: Existing project to import into
        file_path: Archive file (or pass archive_base64)
        archive_base64: Archive bytes as base64
        conflict_resolution: "create-new", "replace" or "merge"
        reset_statuses: Put every imported ticket in backlog
        new_project_name: Create a project with this name instead of
            using target_project_id (requires new_project_path)
        new_project_path: Existing directory for the new project
        path: Directory whose .ticketport config applies
        db_path: Explicit database path overriding the config

    The import is all-or-nothing. Returns counts, warnings and the
    old-to-new ID map.
    """
    if bool(target_project_id) == bool(new_project_name):
        return format_response(
            {
                "error": "VALIDATION_ERROR",
                "message": "Pass exactly one of target_project_id or new_project_name",
            },
            format,
        )

    try:
        settings, db, attachments = _store_for_path(path, db_path)
    except Exception as e:
        return format_response({"error": "database_error", "message": str(e)}, format)

    try:
        data = decode_archive_payload(archive_base64) if archive_base64 else None
    except TransferError as e:
        return format_response(e.to_dict(), format)
    archive_file = Path(file_path) if file_path else None

    if new_project_name:
        result = svc_create_and_import(
            db,
            attachments,
            settings,
            new_project_name,
            new_project_path or "",
            file_path=archive_file,
            data=data,
            reset_statuses=reset_statuses,
            conflict_resolution=conflict_resolution,
        )
    else:
        result = svc_import(
            db,
            attachments,
            settings,
            target_project_id,
            file_path=archive_file,
            data=data,
            reset_statuses=reset_statuses,
            conflict_resolution=conflict_resolution,
        )
    return format_response(result, format)


def main():
    """Run the MCP server."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
