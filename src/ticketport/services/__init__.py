"""Shared service layer for CLI and MCP."""

from .context import resolve_settings_info, open_store
from .transfer import (
    CONFLICT_MODES,
    default_output_path,
    decode_archive_payload,
    export_epic_archive,
    export_project_archive,
    preview_archive,
    import_archive,
    create_project_and_import,
    list_projects,
    list_epics,
)

__all__ = [
    "resolve_settings_info",
    "open_store",
    "CONFLICT_MODES",
    "default_output_path",
    "decode_archive_payload",
    "export_epic_archive",
    "export_project_archive",
    "preview_archive",
    "import_archive",
    "create_project_and_import",
    "list_projects",
    "list_epics",
]
