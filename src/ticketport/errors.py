"""Typed errors raised by the transfer engine.

Core modules raise these instead of returning error payloads. The service
layer turns them into ``{"error": code, "message": ...}`` dicts for the CLI
and MCP server.
"""

from __future__ import annotations

from typing import Any, Optional


class TransferError(Exception):
    """Base error for every export/import failure.

    Carries a machine-readable ``code`` and optional structured ``details``.
    """

    code = "TRANSFER_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            d["details"] = self.details
        return d


class EpicNotFoundError(TransferError):
    code = "EPIC_NOT_FOUND"

    def __init__(self, epic_id: str):
        super().__init__(
            f"Epic not found: {epic_id}. Use 'ticketport epics' to see available epics.",
            details={"epic_id": epic_id},
        )


class ProjectNotFoundError(TransferError):
    code = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: str):
        super().__init__(
            f"Project not found: {project_id}. Use 'ticketport projects' to see available projects.",
            details={"project_id": project_id},
        )


class InvalidArchiveError(TransferError):
    """The archive bytes are not a usable transfer archive."""

    code = "INVALID_ARCHIVE"

    def __init__(self, reason: str, hint: Optional[str] = None):
        message = f"Invalid archive: {reason}"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message, details={"reason": reason})
        self.reason = reason


class ArchiveFileError(TransferError):
    """An archive file could not be read or written."""

    code = "FILE_ERROR"

    def __init__(self, path: str, action: str, cause: OSError):
        super().__init__(
            f"Could not {action} archive file {path}: {cause.strerror or cause}",
            details={"path": path},
        )
        self.path = path


class ArchiveTooLargeError(TransferError):
    code = "ARCHIVE_TOO_LARGE"

    def __init__(self, size_bytes: int, max_bytes: int):
        size_mb = size_bytes / 1024 / 1024
        max_mb = max_bytes / 1024 / 1024
        super().__init__(
            f"Archive is too large: {size_mb:.1f} MB exceeds the {max_mb:.1f} MB limit.",
            details={"size_bytes": size_bytes, "max_bytes": max_bytes},
        )
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes


class IdRemapError(TransferError):
    """An entity references an export ID that was never placed during import.

    This means the manifest broke its own referential integrity. The import
    transaction is rolled back.
    """

    code = "ID_REMAP_FAILED"

    def __init__(self, kind: str, entity_id: str, missing_ref: str):
        super().__init__(
            f"Cannot import {kind} {entity_id}: referenced id {missing_ref} was not imported.",
            details={"kind": kind, "entity_id": entity_id, "missing_ref": missing_ref},
        )
