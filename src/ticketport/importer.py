"""Import a manifest into a target project.

Every imported entity gets a fresh identity in the target store and every
foreign key is rewritten through an ``IdMap``. The import runs in phases
inside one transaction:

1. Epics are placed according to the conflict-resolution mode.
2. Tickets are inserted (or, under merge, updated in place), tagged with
   ``shared-by:<user>``, positioned after existing tickets and given a
   provenance comment. The ID map is frozen afterwards.
3. Comments, review findings, demo scripts and workflow states are
   inserted with their ticket/epic references resolved through the frozen
   map. A reference the map cannot resolve aborts the whole import.

Attachment files are written after the transaction commits; problems there
are reported as warnings.

Merge matches epics and tickets by exact title. Duplicate or renamed titles
can therefore pair the wrong entities; that is accepted behaviour.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from .attachments import AttachmentStore
from .db import Database
from .errors import IdRemapError, ProjectNotFoundError, TransferError
from .manifest import (
    ConflictResolution,
    ExportedEpic,
    ExportedTicket,
    ImportResult,
    Manifest,
)
from .store import TrackerStore

logger = logging.getLogger(__name__)

SYSTEM_AUTHOR = "ticketport"
INITIAL_STATUS = "backlog"
SHARED_BY_PREFIX = "shared-by:"


def shared_by_tag(user: str) -> str:
    return f"{SHARED_BY_PREFIX}{user}"


def provenance_text(manifest: Manifest) -> str:
    return (
        f'Imported from "{manifest.source_project_name}" by {manifest.exported_by} '
        f"on {manifest.exported_at} ({manifest.export_type} export, v{manifest.app_version})"
    )


class IdMap:
    """Export ID -> target ID for epics and tickets placed during one import.

    Written while epics and tickets are placed, then frozen; dependents may
    only resolve through it.
    """

    def __init__(self):
        self._ids: dict[str, str] = {}
        self._frozen = False

    def bind(self, old_id: str, new_id: str) -> None:
        if self._frozen:
            raise RuntimeError(f"IdMap is frozen; cannot bind {old_id}")
        self._ids[old_id] = new_id

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, old_id: str) -> Optional[str]:
        return self._ids.get(old_id)

    def resolve(self, old_id: str, kind: str, entity_id: str) -> str:
        """Return the target ID for ``old_id`` or fail the import."""
        new_id = self._ids.get(old_id)
        if new_id is None:
            raise IdRemapError(kind, entity_id, old_id)
        return new_id

    def as_dict(self) -> dict[str, str]:
        return dict(self._ids)

    def __contains__(self, old_id: str) -> bool:
        return old_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


@dataclass
class EpicPlacement:
    """Where an exported epic landed in the target project.

    ``merge_titles`` is set only when merging into a pre-existing epic and
    maps the titles of that epic's tickets (before import) to their IDs.
    """
    target_id: str
    created: bool
    merge_titles: Optional[dict[str, str]] = None


@dataclass
class _ImportRun:
    """Per-call state threaded through the import phases."""
    store: TrackerStore
    manifest: Manifest
    project_id: str
    reset_statuses: bool
    now: str
    base_position: int
    epics_by_title: dict[str, str]
    id_map: IdMap = field(default_factory=IdMap)
    claimed_epics: set[str] = field(default_factory=set)
    result: ImportResult = field(default_factory=ImportResult)
    dependent_ids: dict[str, str] = field(default_factory=dict)


# ============================================================================
# Epic placement, one handler per conflict-resolution mode
# ============================================================================


def _insert_epic(run: _ImportRun, epic: ExportedEpic, title: str) -> EpicPlacement:
    epic_id = run.store.insert_epic(
        run.project_id,
        title,
        epic.description,
        epic.color,
        epic.created_at or run.now,
    )
    run.epics_by_title.setdefault(title, epic_id)
    run.claimed_epics.add(epic_id)
    return EpicPlacement(target_id=epic_id, created=True)


def _place_create_new(run: _ImportRun, epic: ExportedEpic) -> EpicPlacement:
    title = epic.title
    if title in run.epics_by_title:
        title = f"{epic.title} (from {run.manifest.exported_by})"
    return _insert_epic(run, epic, title)


def _place_replace(run: _ImportRun, epic: ExportedEpic) -> EpicPlacement:
    existing_id = run.epics_by_title.get(epic.title)
    if existing_id is None:
        return _insert_epic(run, epic, epic.title)

    if existing_id not in run.claimed_epics:
        removed = run.store.delete_tickets_for_epic(existing_id)
        run.store.delete_epic_workflow_state(existing_id)
        run.store.update_epic(
            existing_id, epic.description, epic.color, epic.created_at or run.now
        )
        run.claimed_epics.add(existing_id)
        logger.info("Replacing epic %r: removed %d existing tickets", epic.title, removed)
    return EpicPlacement(target_id=existing_id, created=False)


def _place_merge(run: _ImportRun, epic: ExportedEpic) -> EpicPlacement:
    existing_id = run.epics_by_title.get(epic.title)
    if existing_id is None:
        return _insert_epic(run, epic, epic.title)

    run.claimed_epics.add(existing_id)
    return EpicPlacement(
        target_id=existing_id,
        created=False,
        merge_titles=run.store.ticket_titles(existing_id),
    )


EPIC_HANDLERS: dict[ConflictResolution, Callable[[_ImportRun, ExportedEpic], EpicPlacement]] = {
    ConflictResolution.CREATE_NEW: _place_create_new,
    ConflictResolution.REPLACE: _place_replace,
    ConflictResolution.MERGE: _place_merge,
}


# ============================================================================
# Importer
# ============================================================================


class ManifestImporter:
    """Imports manifests into projects of the tracker store.

    Usage:
        importer = ManifestImporter(db, AttachmentStore(settings.get_attachments_dir()))
        result = importer.import_manifest(
            manifest,
            target_project_id,
            attachment_buffers,
            reset_statuses=False,
            conflict_resolution=ConflictResolution.CREATE_NEW,
        )
    """

    def __init__(self, db: Database, attachments: AttachmentStore):
        self.db = db
        self.attachments = attachments

    def import_manifest(
        self,
        manifest: Manifest,
        target_project_id: str,
        attachment_buffers: Optional[dict[str, bytes]] = None,
        reset_statuses: bool = False,
        conflict_resolution: ConflictResolution | str = ConflictResolution.CREATE_NEW,
    ) -> ImportResult:
        """Import ``manifest`` into ``target_project_id`` atomically.

        Raises:
            ProjectNotFoundError: if the target project does not exist
            IdRemapError: if the manifest references an entity it does not contain
            TransferError: if the store rejects a write (nothing is committed)
        """
        mode = ConflictResolution(conflict_resolution)
        handler = EPIC_HANDLERS[mode]

        try:
            with self.db.transaction(immediate=True) as conn:
                store = TrackerStore(conn)

                if not store.get_project(target_project_id):
                    raise ProjectNotFoundError(target_project_id)

                run = _ImportRun(
                    store=store,
                    manifest=manifest,
                    project_id=target_project_id,
                    reset_statuses=reset_statuses,
                    now=datetime.now(timezone.utc).isoformat(),
                    base_position=store.max_position(target_project_id),
                    epics_by_title={
                        row["title"]: row["id"] for row in store.list_epics(target_project_id)
                    },
                )

                placements = self._place_epics(run, handler)
                self._place_tickets(run, placements)
                run.id_map.freeze()

                self._import_comments(run)
                self._import_findings(run)
                self._import_demo_scripts(run)
                self._import_workflow_states(run)
        except TransferError:
            raise
        except sqlite3.Error as e:
            raise TransferError(f"Import failed: {e}") from e

        result = run.result
        self._write_attachments(run, attachment_buffers or {})
        result.id_map = {**run.id_map.as_dict(), **run.dependent_ids}

        logger.info(
            "Imported %d epics, %d tickets into project %s (%s)",
            result.epic_count,
            result.ticket_count,
            target_project_id,
            mode.value,
        )
        return result

    # ------------------------------------------------------------------
    # Phase 1 + 2: epics and tickets
    # ------------------------------------------------------------------

    def _place_epics(
        self,
        run: _ImportRun,
        handler: Callable[[_ImportRun, ExportedEpic], EpicPlacement],
    ) -> dict[str, EpicPlacement]:
        placements: dict[str, EpicPlacement] = {}
        for epic in run.manifest.epics:
            placement = handler(run, epic)
            placements[epic.id] = placement
            run.id_map.bind(epic.id, placement.target_id)
            run.result.epic_count += 1
        return placements

    def _place_tickets(self, run: _ImportRun, placements: dict[str, EpicPlacement]) -> None:
        tag = shared_by_tag(run.manifest.exported_by)

        for index, ticket in enumerate(run.manifest.tickets):
            placement: Optional[EpicPlacement] = None
            if ticket.epic_id is not None:
                placement = placements.get(ticket.epic_id)
                if placement is None:
                    raise IdRemapError("ticket", ticket.id, ticket.epic_id)

            tags = list(ticket.tags)
            if tag not in tags:
                tags.append(tag)

            fields = self._ticket_fields(
                run,
                ticket,
                tags=tags,
                status=INITIAL_STATUS if run.reset_statuses else ticket.status,
                position=run.base_position + 1 + index,
            )

            existing_id = None
            if placement is not None and placement.merge_titles is not None:
                existing_id = placement.merge_titles.get(ticket.title)

            if existing_id:
                run.store.update_ticket_content(existing_id, fields)
                target_id = existing_id
            else:
                target_id = run.store.insert_ticket(
                    run.project_id,
                    placement.target_id if placement else None,
                    fields,
                )

            run.id_map.bind(ticket.id, target_id)
            run.result.ticket_count += 1
            self._write_provenance(run, ticket, target_id)

    @staticmethod
    def _ticket_fields(
        run: _ImportRun,
        ticket: ExportedTicket,
        tags: list[str],
        status: str,
        position: int,
    ) -> dict:
        return {
            "title": ticket.title,
            "description": ticket.description,
            "status": status,
            "priority": ticket.priority,
            "position": position,
            "tags": tags,
            "subtasks": list(ticket.subtasks),
            "is_blocked": ticket.is_blocked,
            "blocked_reason": ticket.blocked_reason,
            "attachments": list(ticket.attachments),
            "created_at": ticket.created_at or run.now,
            "updated_at": run.now,
            "completed_at": ticket.completed_at,
        }

    def _write_provenance(self, run: _ImportRun, ticket: ExportedTicket, target_id: str) -> None:
        """Add the audit comment; a failure here is only a warning."""
        conn = run.store.conn
        conn.execute("SAVEPOINT provenance")
        try:
            run.store.insert_comment(
                target_id,
                provenance_text(run.manifest),
                SYSTEM_AUTHOR,
                "comment",
                run.now,
            )
        except sqlite3.Error as e:
            conn.execute("ROLLBACK TO SAVEPOINT provenance")
            conn.execute("RELEASE SAVEPOINT provenance")
            message = f"Could not add provenance comment to ticket {ticket.title!r}: {e}"
            run.result.warnings.append(message)
            logger.warning(message)
            return

        # Not counted: comment_count mirrors the manifest's comments
        conn.execute("RELEASE SAVEPOINT provenance")

    # ------------------------------------------------------------------
    # Phase 3: dependents, resolved through the frozen map
    # ------------------------------------------------------------------

    def _import_comments(self, run: _ImportRun) -> None:
        for comment in run.manifest.comments:
            ticket_id = run.id_map.resolve(comment.ticket_id, "comment", comment.id)
            run.dependent_ids[comment.id] = run.store.insert_comment(
                ticket_id,
                comment.content,
                comment.author,
                comment.type,
                comment.created_at or run.now,
            )
            run.result.comment_count += 1

    def _import_findings(self, run: _ImportRun) -> None:
        for finding in run.manifest.review_findings:
            ticket_id = run.id_map.resolve(finding.ticket_id, "review finding", finding.id)
            run.dependent_ids[finding.id] = run.store.insert_finding(
                ticket_id,
                {
                    "iteration": finding.iteration,
                    "agent": finding.agent,
                    "severity": finding.severity,
                    "category": finding.category,
                    "description": finding.description,
                    "file_path": finding.file_path,
                    "line_number": finding.line_number,
                    "suggested_fix": finding.suggested_fix,
                    "status": finding.status,
                    "fixed_at": finding.fixed_at,
                    "created_at": finding.created_at or run.now,
                },
            )
            run.result.finding_count += 1

    def _import_demo_scripts(self, run: _ImportRun) -> None:
        for demo in run.manifest.demo_scripts:
            ticket_id = run.id_map.resolve(demo.ticket_id, "demo script", demo.id)
            run.dependent_ids[demo.id] = run.store.replace_demo_script(
                ticket_id,
                {
                    "steps": list(demo.steps),
                    "generated_at": demo.generated_at or run.now,
                    "completed_at": demo.completed_at,
                    "feedback": demo.feedback,
                    "passed": demo.passed,
                },
            )
            run.result.demo_script_count += 1

    def _import_workflow_states(self, run: _ImportRun) -> None:
        for state in run.manifest.workflow_states:
            ticket_id = run.id_map.resolve(state.ticket_id, "workflow state", state.ticket_id)
            run.store.insert_workflow_state(
                ticket_id,
                {
                    "current_phase": state.current_phase,
                    "review_iteration": state.review_iteration,
                    "findings_count": state.findings_count,
                    "findings_fixed": state.findings_fixed,
                    "demo_generated": state.demo_generated,
                },
                run.now,
            )

        for epic_state in run.manifest.epic_workflow_states:
            epic_id = run.id_map.resolve(epic_state.epic_id, "epic workflow state", epic_state.epic_id)
            run.store.insert_epic_workflow_state(
                epic_id,
                {
                    "tickets_total": epic_state.tickets_total,
                    "tickets_done": epic_state.tickets_done,
                    "learnings": list(epic_state.learnings),
                },
                run.now,
            )

    # ------------------------------------------------------------------
    # After commit: attachment files
    # ------------------------------------------------------------------

    def _write_attachments(self, run: _ImportRun, buffers: dict[str, bytes]) -> None:
        for file in run.manifest.attachment_files:
            ticket_id = run.id_map.get(file.original_ticket_id)
            if ticket_id is None:
                run.result.warnings.append(
                    f"Skipped attachment {file.archive_path}: ticket {file.original_ticket_id} not imported"
                )
                continue

            data = buffers.get(file.archive_path)
            if data is None:
                run.result.warnings.append(f"Attachment data missing for: {file.archive_path}")
                continue

            try:
                self.attachments.write(ticket_id, file.filename, data)
            except OSError as e:
                message = f"Failed to write attachment {file.archive_path}: {e}"
                run.result.warnings.append(message)
                logger.warning(message)
                continue
            run.result.attachment_count += 1
