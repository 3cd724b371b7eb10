"""Shared export/import operations for CLI and MCP.

Every function returns a plain dict. Transfer errors come back as
``{"error": code, "message": ...}`` payloads instead of being raised.
"""

from __future__ import annotations

import base64
import binascii
import re
from pathlib import Path
from typing import Optional

from ..archive import ArchiveCodec
from ..attachments import AttachmentStore
from ..config import TransferSettings
from ..db import Database
from ..errors import TransferError
from ..exporter import ManifestExporter
from ..importer import ManifestImporter
from ..manifest import ARCHIVE_EXTENSION, ConflictResolution, ExportResult
from ..store import TrackerStore

CONFLICT_MODES = tuple(mode.value for mode in ConflictResolution)


def default_output_path(name: str) -> Path:
    """Slugify an epic/project name into ``<slug>.ticketport``."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "export"
    return Path(f"{slug}{ARCHIVE_EXTENSION}")


def decode_archive_payload(base64_data: str) -> bytes:
    """Decode a base64 archive sent over MCP."""
    try:
        return base64.b64decode(base64_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise TransferError(f"Archive data is not valid base64: {e}", code="INVALID_PAYLOAD") from e


def _codec(settings: TransferSettings) -> ArchiveCodec:
    return ArchiveCodec(
        max_size_bytes=settings.max_archive_size_bytes,
        compression_level=settings.compression_level,
    )


def _exporter(db: Database, attachments: AttachmentStore, settings: TransferSettings) -> ManifestExporter:
    return ManifestExporter(
        db,
        attachments,
        exported_by=settings.get_exported_by(),
        max_size_bytes=settings.max_archive_size_bytes,
    )


def _read_archive(
    codec: ArchiveCodec,
    file_path: Optional[Path],
    data: Optional[bytes],
) -> ExportResult:
    if data is not None:
        return codec.extract(data)
    if file_path is None:
        raise TransferError("Either an archive file or archive data is required", code="MISSING_ARCHIVE")
    return codec.read_file(Path(file_path))


def _parse_conflict_mode(value: str) -> ConflictResolution:
    try:
        return ConflictResolution(value)
    except ValueError as e:
        raise TransferError(
            f"Unknown conflict resolution '{value}'. Valid modes: {', '.join(CONFLICT_MODES)}.",
            code="INVALID_CONFLICT_MODE",
        ) from e


def _run_import(
    db: Database,
    attachments: AttachmentStore,
    export: ExportResult,
    project_id: str,
    reset_statuses: bool,
    mode: ConflictResolution,
) -> dict:
    result = ManifestImporter(db, attachments).import_manifest(
        export.manifest,
        project_id,
        export.attachment_buffers,
        reset_statuses=reset_statuses,
        conflict_resolution=mode,
    )
    # Entries skipped while extracting come first.
    result.warnings[:0] = export.warnings
    return {"success": True, "project_id": project_id, "result": result.to_dict()}


def _write_export(
    export: ExportResult,
    settings: TransferSettings,
    default_name: str,
    output_path: Optional[Path],
) -> dict:
    target = Path(output_path) if output_path else default_output_path(default_name)
    size = _codec(settings).write_file(export, target)
    manifest = export.manifest
    return {
        "success": True,
        "file": str(target.resolve()),
        "size_bytes": size,
        "export_type": manifest.export_type,
        "epic_count": len(manifest.epics),
        "ticket_count": len(manifest.tickets),
        "comment_count": len(manifest.comments),
        "finding_count": len(manifest.review_findings),
        "demo_script_count": len(manifest.demo_scripts),
        "attachment_count": len(manifest.attachment_files),
        "warnings": list(export.warnings),
    }


# ============================================================================
# Export
# ============================================================================


def export_epic_archive(
    db: Database,
    attachments: AttachmentStore,
    settings: TransferSettings,
    epic_id: str,
    output_path: Optional[Path] = None,
) -> dict:
    """Export one epic to an archive file."""
    try:
        export = _exporter(db, attachments, settings).export_epic(epic_id)
        name = export.manifest.epics[0].title if export.manifest.epics else "export"
        return _write_export(export, settings, name, output_path)
    except TransferError as e:
        return e.to_dict()


def export_project_archive(
    db: Database,
    attachments: AttachmentStore,
    settings: TransferSettings,
    project_id: str,
    output_path: Optional[Path] = None,
) -> dict:
    """Export a whole project to an archive file."""
    try:
        export = _exporter(db, attachments, settings).export_project(project_id)
        return _write_export(export, settings, export.manifest.source_project_name, output_path)
    except TransferError as e:
        return e.to_dict()


# ============================================================================
# Preview / import
# ============================================================================


def preview_archive(
    settings: TransferSettings,
    file_path: Optional[Path] = None,
    data: Optional[bytes] = None,
) -> dict:
    """Summarize an archive without extracting attachments."""
    codec = _codec(settings)
    try:
        if data is not None:
            preview = codec.preview(data)
        elif file_path is not None:
            preview = codec.preview_file(Path(file_path))
        else:
            raise TransferError("Either an archive file or archive data is required", code="MISSING_ARCHIVE")
    except TransferError as e:
        return e.to_dict()
    return {"success": True, "preview": preview.to_dict()}


def import_archive(
    db: Database,
    attachments: AttachmentStore,
    settings: TransferSettings,
    target_project_id: str,
    file_path: Optional[Path] = None,
    data: Optional[bytes] = None,
    reset_statuses: bool = False,
    conflict_resolution: str = ConflictResolution.CREATE_NEW.value,
) -> dict:
    """Extract an archive and import it into an existing project."""
    try:
        mode = _parse_conflict_mode(conflict_resolution)
        export = _read_archive(_codec(settings), file_path, data)
        return _run_import(db, attachments, export, target_project_id, reset_statuses, mode)
    except TransferError as e:
        return e.to_dict()


def create_project_and_import(
    db: Database,
    attachments: AttachmentStore,
    settings: TransferSettings,
    project_name: str,
    project_path: str,
    file_path: Optional[Path] = None,
    data: Optional[bytes] = None,
    reset_statuses: bool = False,
    conflict_resolution: str = ConflictResolution.CREATE_NEW.value,
    project_color: Optional[str] = None,
) -> dict:
    """Create a new project and import an archive into it.

    The archive is validated before the project is created; if the import
    itself fails the new project is removed again.
    """
    if not project_name or not project_name.strip():
        return {"error": "VALIDATION_ERROR", "message": "Project name is required"}
    if not project_path or not project_path.strip():
        return {"error": "VALIDATION_ERROR", "message": "Project path is required"}
    path = project_path.strip()
    if not Path(path).is_dir():
        return {"error": "VALIDATION_ERROR", "message": f"Directory does not exist: {path}"}
    with db.connection() as conn:
        existing = TrackerStore(conn).get_project_by_path(path)
    if existing:
        return {
            "error": "VALIDATION_ERROR",
            "message": f"Project '{existing['name']}' already uses directory: {path}",
        }

    try:
        mode = _parse_conflict_mode(conflict_resolution)
        export = _read_archive(_codec(settings), file_path, data)
    except TransferError as e:
        return e.to_dict()

    with db.transaction() as conn:
        project_id = TrackerStore(conn).insert_project(
            project_name.strip(), path, project_color
        )

    try:
        return _run_import(db, attachments, export, project_id, reset_statuses, mode)
    except TransferError as e:
        with db.transaction() as conn:
            TrackerStore(conn).delete_project(project_id)
        return e.to_dict()


# ============================================================================
# Listings
# ============================================================================


def list_projects(db: Database) -> dict:
    with db.connection() as conn:
        rows = TrackerStore(conn).list_projects()
    projects = [{"id": r["id"], "name": r["name"], "path": r["path"]} for r in rows]
    return {"count": len(projects), "projects": projects}


def list_epics(db: Database, project_id: str) -> dict:
    with db.connection() as conn:
        store = TrackerStore(conn)
        if not store.get_project(project_id):
            return {
                "error": "PROJECT_NOT_FOUND",
                "message": f"Project not found: {project_id}",
            }
        rows = store.list_epics(project_id)
        epics = [
            {
                "id": r["id"],
                "title": r["title"],
                "ticket_count": len(store.list_tickets_for_epic(r["id"])),
            }
            for r in rows
        ]
    return {"project_id": project_id, "count": len(epics), "epics": epics}
