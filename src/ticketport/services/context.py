"""Settings and store resolution helpers shared by CLI and MCP."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..attachments import AttachmentStore
from ..config import TransferSettings, resolve_settings
from ..db import Database


def resolve_settings_info(path: Optional[Path] = None) -> dict:
    """Return the resolved settings as a plain dict."""
    settings = resolve_settings(path)
    return {
        "config_source": settings.config_source,
        "config_path": str(settings.config_path) if settings.config_path else None,
        "db_path": str(settings.get_db_path()),
        "attachments_dir": str(settings.get_attachments_dir()),
        "max_archive_size_bytes": settings.max_archive_size_bytes,
        "compression_level": settings.compression_level,
        "exported_by": settings.get_exported_by(),
    }


def open_store(
    settings: TransferSettings,
    db_path: Optional[Path] = None,
) -> tuple[Database, AttachmentStore]:
    """Open the database and attachment store for resolved settings.

    Args:
        settings: Resolved settings
        db_path: Explicit database path overriding the settings
    """
    if db_path:
        settings.db_path = Path(db_path)
    db = Database(settings.get_db_path())
    return db, AttachmentStore(settings.get_attachments_dir())
