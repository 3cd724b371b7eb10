"""Export an epic or a whole project into a manifest.

The exporter is a pure read: it collects a rooted entity graph from the
store, strips machine-local fields from every row, and gathers the
attachment bytes each ticket records. Archive packaging lives in
``archive.py``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version as package_version
from typing import Optional

from .attachments import AttachmentStore
from .db import Database
from .errors import ArchiveTooLargeError, EpicNotFoundError, ProjectNotFoundError
from .manifest import (
    MANIFEST_VERSION,
    MAX_ARCHIVE_SIZE_BYTES,
    ExportedAttachmentFile,
    ExportedComment,
    ExportedDemoScript,
    ExportedEpic,
    ExportedEpicWorkflowState,
    ExportedReviewFinding,
    ExportedTicket,
    ExportedWorkflowState,
    ExportResult,
    ExportType,
    Manifest,
    attachment_archive_path,
)
from .store import TrackerStore, load_json

logger = logging.getLogger(__name__)


def get_app_version() -> str:
    try:
        return package_version("ticketport")
    except PackageNotFoundError:
        return "0.0.0"


# ============================================================================
# Row -> snapshot conversion
# ============================================================================


def epic_from_row(row: sqlite3.Row) -> ExportedEpic:
    return ExportedEpic(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        color=row["color"],
        created_at=row["created_at"],
    )


def ticket_from_row(row: sqlite3.Row) -> ExportedTicket:
    # branch_name, pr_*, linked_files and linked_commits stay behind
    return ExportedTicket(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        status=row["status"],
        priority=row["priority"],
        position=row["position"],
        epic_id=row["epic_id"],
        tags=load_json(row["tags"], []),
        subtasks=load_json(row["subtasks"], []),
        is_blocked=row["is_blocked"] == 1,
        blocked_reason=row["blocked_reason"],
        attachments=load_json(row["attachments"], []),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        completed_at=row["completed_at"],
    )


def comment_from_row(row: sqlite3.Row) -> ExportedComment:
    return ExportedComment(
        id=row["id"],
        ticket_id=row["ticket_id"],
        content=row["content"],
        author=row["author"],
        type=row["type"],
        created_at=row["created_at"],
    )


def finding_from_row(row: sqlite3.Row) -> ExportedReviewFinding:
    return ExportedReviewFinding(
        id=row["id"],
        ticket_id=row["ticket_id"],
        iteration=row["iteration"],
        agent=row["agent"],
        severity=row["severity"],
        category=row["category"],
        description=row["description"],
        file_path=row["file_path"],
        line_number=row["line_number"],
        suggested_fix=row["suggested_fix"],
        status=row["status"],
        fixed_at=row["fixed_at"],
        created_at=row["created_at"],
    )


def demo_script_from_row(row: sqlite3.Row) -> ExportedDemoScript:
    return ExportedDemoScript(
        id=row["id"],
        ticket_id=row["ticket_id"],
        steps=load_json(row["steps"], []),
        generated_at=row["generated_at"],
        completed_at=row["completed_at"],
        feedback=row["feedback"],
        passed=None if row["passed"] is None else row["passed"] == 1,
    )


def workflow_state_from_row(row: sqlite3.Row) -> ExportedWorkflowState:
    return ExportedWorkflowState(
        ticket_id=row["ticket_id"],
        current_phase=row["current_phase"],
        review_iteration=row["review_iteration"],
        findings_count=row["findings_count"],
        findings_fixed=row["findings_fixed"],
        demo_generated=row["demo_generated"] == 1,
    )


def epic_workflow_state_from_row(row: sqlite3.Row) -> ExportedEpicWorkflowState:
    return ExportedEpicWorkflowState(
        epic_id=row["epic_id"],
        tickets_total=row["tickets_total"] or 0,
        tickets_done=row["tickets_done"] or 0,
        learnings=load_json(row["learnings"], []),
    )


# ============================================================================
# Exporter
# ============================================================================


class ManifestExporter:
    """Builds manifests from the tracker store.

    Usage:
        exporter = ManifestExporter(db, AttachmentStore(settings.get_attachments_dir()))
        result = exporter.export_epic(epic_id)
    """

    def __init__(
        self,
        db: Database,
        attachments: AttachmentStore,
        exported_by: str = "unknown",
        app_version: Optional[str] = None,
        max_size_bytes: int = MAX_ARCHIVE_SIZE_BYTES,
        manifest_version: int = MANIFEST_VERSION,
    ):
        self.db = db
        self.attachments = attachments
        self.exported_by = exported_by
        self.app_version = app_version or get_app_version()
        self.max_size_bytes = max_size_bytes
        self.manifest_version = manifest_version

    def export_epic(self, epic_id: str) -> ExportResult:
        """Export one epic with its tickets and their dependents.

        Raises:
            EpicNotFoundError: if the epic does not exist
            ArchiveTooLargeError: if the export exceeds the size limit
        """
        with self.db.connection() as conn:
            store = TrackerStore(conn)

            epic = store.get_epic(epic_id)
            if not epic:
                raise EpicNotFoundError(epic_id)

            project = store.get_project(epic["project_id"])
            if not project:
                raise ProjectNotFoundError(epic["project_id"])

            tickets = [ticket_from_row(r) for r in store.list_tickets_for_epic(epic_id)]
            epic_states = [
                epic_workflow_state_from_row(r)
                for r in store.list_epic_workflow_states([epic_id])
            ]
            return self._assemble(
                store,
                export_type="epic",
                project_name=project["name"],
                epics=[epic_from_row(epic)],
                tickets=tickets,
                epic_workflow_states=epic_states,
            )

    def export_project(self, project_id: str) -> ExportResult:
        """Export every epic and ticket of a project, orphan tickets included.

        Raises:
            ProjectNotFoundError: if the project does not exist
            ArchiveTooLargeError: if the export exceeds the size limit
        """
        with self.db.connection() as conn:
            store = TrackerStore(conn)

            project = store.get_project(project_id)
            if not project:
                raise ProjectNotFoundError(project_id)

            epics = [epic_from_row(r) for r in store.list_epics(project_id)]
            tickets = [ticket_from_row(r) for r in store.list_tickets_for_project(project_id)]
            epic_states = [
                epic_workflow_state_from_row(r)
                for r in store.list_epic_workflow_states([e.id for e in epics])
            ]
            return self._assemble(
                store,
                export_type="project",
                project_name=project["name"],
                epics=epics,
                tickets=tickets,
                epic_workflow_states=epic_states,
            )

    def _assemble(
        self,
        store: TrackerStore,
        export_type: ExportType,
        project_name: str,
        epics: list[ExportedEpic],
        tickets: list[ExportedTicket],
        epic_workflow_states: list[ExportedEpicWorkflowState],
    ) -> ExportResult:
        ticket_ids = [t.id for t in tickets]
        warnings: list[str] = []
        buffers, files = self._gather_attachments(tickets, warnings)

        manifest = Manifest(
            version=self.manifest_version,
            export_type=export_type,
            exported_at=datetime.now(timezone.utc).isoformat(),
            exported_by=self.exported_by,
            app_version=self.app_version,
            source_project_name=project_name,
            epics=epics,
            tickets=tickets,
            comments=[comment_from_row(r) for r in store.list_comments(ticket_ids)],
            review_findings=[finding_from_row(r) for r in store.list_findings(ticket_ids)],
            demo_scripts=[demo_script_from_row(r) for r in store.list_demo_scripts(ticket_ids)],
            workflow_states=[
                workflow_state_from_row(r) for r in store.list_workflow_states(ticket_ids)
            ],
            epic_workflow_states=epic_workflow_states,
            attachment_files=files,
        )

        total_size = len(json.dumps(manifest.to_dict()).encode("utf-8"))
        total_size += sum(len(b) for b in buffers.values())
        if total_size > self.max_size_bytes:
            raise ArchiveTooLargeError(total_size, self.max_size_bytes)

        logger.debug(
            "Exported %s from %r: %d epics, %d tickets, %d attachments",
            export_type,
            project_name,
            len(manifest.epics),
            len(manifest.tickets),
            len(manifest.attachment_files),
        )
        return ExportResult(manifest=manifest, attachment_buffers=buffers, warnings=warnings)

    def _gather_attachments(
        self,
        tickets: list[ExportedTicket],
        warnings: list[str],
    ) -> tuple[dict[str, bytes], list[ExportedAttachmentFile]]:
        """Read each ticket's recorded attachments.

        Missing or unreadable files become warnings, not failures. A filename
        listed twice on one ticket is packed once.
        """
        buffers: dict[str, bytes] = {}
        files: list[ExportedAttachmentFile] = []

        for ticket in tickets:
            for attachment in ticket.attachments:
                filename = attachment.get("filename") if isinstance(attachment, dict) else None
                if not filename:
                    continue

                archive_path = attachment_archive_path(ticket.id, filename)
                if archive_path in buffers:
                    continue
                file_path = self.attachments.path_for(ticket.id, filename)
                if not file_path.is_file():
                    warnings.append(f"Attachment file not found on disk: {file_path}")
                    logger.warning("Attachment file not found on disk: %s", file_path)
                    continue
                try:
                    buffers[archive_path] = self.attachments.read(ticket.id, filename)
                except OSError as e:
                    warnings.append(f"Could not read attachment: {file_path} ({e})")
                    logger.warning("Could not read attachment %s: %s", file_path, e)
                    continue

                files.append(
                    ExportedAttachmentFile(
                        archive_path=archive_path,
                        original_ticket_id=ticket.id,
                        filename=filename,
                    )
                )

        return buffers, files
