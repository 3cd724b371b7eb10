"""Manifest model for transfer archives.

A manifest is the versioned, JSON-compatible description of one exported
entity subgraph: epics, tickets and everything hanging off those tickets.
Field names on the wire are camelCase and stable across implementations;
the dataclasses here are the Python side of that contract.

Snapshots are denormalized copies of store rows with machine-local state
(git branch, PR fields, linked files/commits) already stripped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional


MANIFEST_VERSION = 1
MAX_ARCHIVE_SIZE_BYTES = 100 * 1024 * 1024  # 100MB

MANIFEST_ENTRY = "manifest.json"
ATTACHMENTS_PREFIX = "attachments/"
ARCHIVE_EXTENSION = ".ticketport"

ExportType = Literal["epic", "project"]
EXPORT_TYPES = ("epic", "project")


class ConflictResolution(str, Enum):
    """How imported epics/tickets interact with same-titled existing ones."""

    CREATE_NEW = "create-new"
    REPLACE = "replace"
    MERGE = "merge"


class ManifestFormatError(ValueError):
    """Raised when a manifest document does not match the schema."""


def attachment_archive_path(ticket_id: str, filename: str) -> str:
    return f"{ATTACHMENTS_PREFIX}{ticket_id}/{filename}"


# ============================================================================
# Schema helpers
# ============================================================================


def _require(data: dict, key: str, kind: str) -> Any:
    if key not in data:
        raise ManifestFormatError(f"{kind} is missing required field '{key}'")
    return data[key]


def _require_str(data: dict, key: str, kind: str) -> str:
    value = _require(data, key, kind)
    if not isinstance(value, str):
        raise ManifestFormatError(f"{kind}.{key} must be a string")
    return value


def _require_list(data: dict, key: str, kind: str) -> list:
    value = _require(data, key, kind)
    if not isinstance(value, list):
        raise ManifestFormatError(f"{kind}.{key} must be an array")
    return value


def _optional_str(data: dict, key: str, kind: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ManifestFormatError(f"{kind}.{key} must be a string or null")
    return value


def _optional_list(data: dict, key: str, kind: str) -> list:
    """Return the array at ``key``; absent or null reads as empty."""
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ManifestFormatError(f"{kind}.{key} must be an array")
    return list(value)


def _objects(data: dict, key: str) -> list[dict]:
    items = _require_list(data, key, "manifest")
    for item in items:
        if not isinstance(item, dict):
            raise ManifestFormatError(f"manifest.{key} must contain only objects")
    return items


# ============================================================================
# Exported entity snapshots
# ============================================================================


@dataclass(frozen=True)
class ExportedEpic:
    id: str
    title: str
    description: Optional[str] = None
    color: Optional[str] = None
    created_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "color": self.color,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ExportedEpic":
        return cls(
            id=_require_str(d, "id", "epic"),
            title=_require_str(d, "title", "epic"),
            description=d.get("description"),
            color=d.get("color"),
            created_at=d.get("createdAt") or "",
        )


@dataclass(frozen=True)
class ExportedTicket:
    """A ticket snapshot.

    ``attachments`` keeps the store's attachment metadata objects as-is; only
    ``filename`` is interpreted by the transfer engine.
    """
    id: str
    title: str
    status: str
    description: Optional[str] = None
    priority: Optional[str] = None
    position: int = 0
    epic_id: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    subtasks: list[dict] = field(default_factory=list)
    is_blocked: bool = False
    blocked_reason: Optional[str] = None
    attachments: list[dict] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    completed_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "position": self.position,
            "epicId": self.epic_id,
            "tags": list(self.tags),
            "subtasks": list(self.subtasks),
            "isBlocked": self.is_blocked,
            "blockedReason": self.blocked_reason,
            "attachments": list(self.attachments),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "completedAt": self.completed_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ExportedTicket":
        return cls(
            id=_require_str(d, "id", "ticket"),
            title=_require_str(d, "title", "ticket"),
            status=_require_str(d, "status", "ticket"),
            description=d.get("description"),
            priority=d.get("priority"),
            position=d.get("position") or 0,
            epic_id=_optional_str(d, "epicId", "ticket"),
            tags=[str(t) for t in _optional_list(d, "tags", "ticket")],
            subtasks=_optional_list(d, "subtasks", "ticket"),
            is_blocked=bool(d.get("isBlocked", False)),
            blocked_reason=d.get("blockedReason"),
            attachments=_optional_list(d, "attachments", "ticket"),
            created_at=d.get("createdAt") or "",
            updated_at=d.get("updatedAt") or "",
            completed_at=d.get("completedAt"),
        )


@dataclass(frozen=True)
class ExportedComment:
    id: str
    ticket_id: str
    content: str
    author: str = "user"
    type: str = "comment"
    created_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticketId": self.ticket_id,
            "content": self.content,
            "author": self.author,
            "type": self.type,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ExportedComment":
        return cls(
            id=_require_str(d, "id", "comment"),
            ticket_id=_require_str(d, "ticketId", "comment"),
            content=_require_str(d, "content", "comment"),
            author=d.get("author") or "user",
            type=d.get("type") or "comment",
            created_at=d.get("createdAt") or "",
        )


@dataclass(frozen=True)
class ExportedReviewFinding:
    id: str
    ticket_id: str
    iteration: int
    agent: str
    severity: str
    category: str
    description: str
    file_path: Optional[str] = None
    line_number: Optional[int] = None
    suggested_fix: Optional[str] = None
    status: str = "open"
    fixed_at: Optional[str] = None
    created_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticketId": self.ticket_id,
            "iteration": self.iteration,
            "agent": self.agent,
            "severity": self.severity,
            "category": self.category,
            "description": self.description,
            "filePath": self.file_path,
            "lineNumber": self.line_number,
            "suggestedFix": self.suggested_fix,
            "status": self.status,
            "fixedAt": self.fixed_at,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ExportedReviewFinding":
        return cls(
            id=_require_str(d, "id", "reviewFinding"),
            ticket_id=_require_str(d, "ticketId", "reviewFinding"),
            iteration=_require(d, "iteration", "reviewFinding"),
            agent=_require_str(d, "agent", "reviewFinding"),
            severity=_require_str(d, "severity", "reviewFinding"),
            category=_require_str(d, "category", "reviewFinding"),
            description=_require_str(d, "description", "reviewFinding"),
            file_path=d.get("filePath"),
            line_number=d.get("lineNumber"),
            suggested_fix=d.get("suggestedFix"),
            status=d.get("status") or "open",
            fixed_at=d.get("fixedAt"),
            created_at=d.get("createdAt") or "",
        )


@dataclass(frozen=True)
class ExportedDemoScript:
    id: str
    ticket_id: str
    steps: list[dict] = field(default_factory=list)
    generated_at: str = ""
    completed_at: Optional[str] = None
    feedback: Optional[str] = None
    passed: Optional[bool] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticketId": self.ticket_id,
            "steps": list(self.steps),
            "generatedAt": self.generated_at,
            "completedAt": self.completed_at,
            "feedback": self.feedback,
            "passed": self.passed,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ExportedDemoScript":
        passed = d.get("passed")
        return cls(
            id=_require_str(d, "id", "demoScript"),
            ticket_id=_require_str(d, "ticketId", "demoScript"),
            steps=_optional_list(d, "steps", "demoScript"),
            generated_at=d.get("generatedAt") or "",
            completed_at=d.get("completedAt"),
            feedback=d.get("feedback"),
            passed=None if passed is None else bool(passed),
        )


@dataclass(frozen=True)
class ExportedWorkflowState:
    ticket_id: str
    current_phase: str = "implementation"
    review_iteration: int = 0
    findings_count: int = 0
    findings_fixed: int = 0
    demo_generated: bool = False

    def to_dict(self) -> dict:
        return {
            "ticketId": self.ticket_id,
            "currentPhase": self.current_phase,
            "reviewIteration": self.review_iteration,
            "findingsCount": self.findings_count,
            "findingsFixed": self.findings_fixed,
            "demoGenerated": self.demo_generated,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ExportedWorkflowState":
        return cls(
            ticket_id=_require_str(d, "ticketId", "workflowState"),
            current_phase=d.get("currentPhase") or "implementation",
            review_iteration=d.get("reviewIteration") or 0,
            findings_count=d.get("findingsCount") or 0,
            findings_fixed=d.get("findingsFixed") or 0,
            demo_generated=bool(d.get("demoGenerated", False)),
        )


@dataclass(frozen=True)
class ExportedEpicWorkflowState:
    epic_id: str
    tickets_total: int = 0
    tickets_done: int = 0
    learnings: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "epicId": self.epic_id,
            "ticketsTotal": self.tickets_total,
            "ticketsDone": self.tickets_done,
            "learnings": list(self.learnings),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ExportedEpicWorkflowState":
        return cls(
            epic_id=_require_str(d, "epicId", "epicWorkflowState"),
            tickets_total=d.get("ticketsTotal") or 0,
            tickets_done=d.get("ticketsDone") or 0,
            learnings=_optional_list(d, "learnings", "epicWorkflowState"),
        )


@dataclass(frozen=True)
class ExportedAttachmentFile:
    archive_path: str
    original_ticket_id: str
    filename: str

    def to_dict(self) -> dict:
        return {
            "archivePath": self.archive_path,
            "originalTicketId": self.original_ticket_id,
            "filename": self.filename,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ExportedAttachmentFile":
        return cls(
            archive_path=_require_str(d, "archivePath", "attachmentFile"),
            original_ticket_id=_require_str(d, "originalTicketId", "attachmentFile"),
            filename=_require_str(d, "filename", "attachmentFile"),
        )


# ============================================================================
# Manifest
# ============================================================================


@dataclass(frozen=True)
class Manifest:
    """The root transfer unit.

    Every foreign key inside the collections (ticket -> epic, comment/finding/
    demo/workflow state -> ticket, epic workflow state -> epic) points at an
    ID present in the same manifest.
    """
    export_type: ExportType
    exported_at: str
    exported_by: str
    app_version: str
    source_project_name: str
    version: int = MANIFEST_VERSION
    epics: list[ExportedEpic] = field(default_factory=list)
    tickets: list[ExportedTicket] = field(default_factory=list)
    comments: list[ExportedComment] = field(default_factory=list)
    review_findings: list[ExportedReviewFinding] = field(default_factory=list)
    demo_scripts: list[ExportedDemoScript] = field(default_factory=list)
    workflow_states: list[ExportedWorkflowState] = field(default_factory=list)
    epic_workflow_states: list[ExportedEpicWorkflowState] = field(default_factory=list)
    attachment_files: list[ExportedAttachmentFile] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "exportType": self.export_type,
            "exportedAt": self.exported_at,
            "exportedBy": self.exported_by,
            "appVersion": self.app_version,
            "sourceProject": {"name": self.source_project_name},
            "epics": [e.to_dict() for e in self.epics],
            "tickets": [t.to_dict() for t in self.tickets],
            "comments": [c.to_dict() for c in self.comments],
            "reviewFindings": [f.to_dict() for f in self.review_findings],
            "demoScripts": [s.to_dict() for s in self.demo_scripts],
            "workflowStates": [w.to_dict() for w in self.workflow_states],
            "epicWorkflowStates": [w.to_dict() for w in self.epic_workflow_states],
            "attachmentFiles": [a.to_dict() for a in self.attachment_files],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Manifest":
        """Build a manifest from its JSON document.

        Raises:
            ManifestFormatError: if a required field is missing or mistyped
        """
        if not isinstance(d, dict):
            raise ManifestFormatError("manifest must be a JSON object")

        version = _require(d, "version", "manifest")
        if not isinstance(version, int) or isinstance(version, bool):
            raise ManifestFormatError("manifest.version must be an integer")

        export_type = _require_str(d, "exportType", "manifest")
        if export_type not in EXPORT_TYPES:
            raise ManifestFormatError(f"manifest.exportType must be one of {EXPORT_TYPES}")

        source_project = _require(d, "sourceProject", "manifest")
        if not isinstance(source_project, dict):
            raise ManifestFormatError("manifest.sourceProject must be an object")

        try:
            return cls(
                version=version,
                export_type=export_type,
                exported_at=_require_str(d, "exportedAt", "manifest"),
                exported_by=_require_str(d, "exportedBy", "manifest"),
                app_version=_require_str(d, "appVersion", "manifest"),
                source_project_name=_require_str(source_project, "name", "sourceProject"),
                epics=[ExportedEpic.from_dict(e) for e in _objects(d, "epics")],
                tickets=[ExportedTicket.from_dict(t) for t in _objects(d, "tickets")],
                comments=[ExportedComment.from_dict(c) for c in _objects(d, "comments")],
                review_findings=[
                    ExportedReviewFinding.from_dict(f) for f in _objects(d, "reviewFindings")
                ],
                demo_scripts=[ExportedDemoScript.from_dict(s) for s in _objects(d, "demoScripts")],
                workflow_states=[
                    ExportedWorkflowState.from_dict(w) for w in _objects(d, "workflowStates")
                ],
                epic_workflow_states=[
                    ExportedEpicWorkflowState.from_dict(w)
                    for w in _objects(d, "epicWorkflowStates")
                ],
                attachment_files=[
                    ExportedAttachmentFile.from_dict(a) for a in _objects(d, "attachmentFiles")
                ],
            )
        except (TypeError, AttributeError) as e:
            raise ManifestFormatError(str(e)) from e

    def preview(self) -> "ManifestPreview":
        return ManifestPreview(
            version=self.version,
            export_type=self.export_type,
            exported_at=self.exported_at,
            exported_by=self.exported_by,
            app_version=self.app_version,
            source_project_name=self.source_project_name,
            epic_names=[e.title for e in self.epics],
            ticket_count=len(self.tickets),
            comment_count=len(self.comments),
            finding_count=len(self.review_findings),
            demo_script_count=len(self.demo_scripts),
            attachment_count=len(self.attachment_files),
        )


@dataclass(frozen=True)
class ManifestPreview:
    """What's in an archive, without its attachments."""
    version: int
    export_type: ExportType
    exported_at: str
    exported_by: str
    app_version: str
    source_project_name: str
    epic_names: list[str]
    ticket_count: int
    comment_count: int
    finding_count: int
    demo_script_count: int
    attachment_count: int

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "export_type": self.export_type,
            "exported_at": self.exported_at,
            "exported_by": self.exported_by,
            "app_version": self.app_version,
            "source_project": self.source_project_name,
            "epic_names": list(self.epic_names),
            "ticket_count": self.ticket_count,
            "comment_count": self.comment_count,
            "finding_count": self.finding_count,
            "demo_script_count": self.demo_script_count,
            "attachment_count": self.attachment_count,
        }


# ============================================================================
# Export / import results
# ============================================================================


@dataclass
class ExportResult:
    """A manifest plus the attachment blobs it indexes."""
    manifest: Manifest
    attachment_buffers: dict[str, bytes] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


@dataclass
class ImportResult:
    epic_count: int = 0
    ticket_count: int = 0
    comment_count: int = 0
    finding_count: int = 0
    demo_script_count: int = 0
    attachment_count: int = 0
    id_map: dict[str, str] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "epic_count": self.epic_count,
            "ticket_count": self.ticket_count,
            "comment_count": self.comment_count,
            "finding_count": self.finding_count,
            "demo_script_count": self.demo_script_count,
            "attachment_count": self.attachment_count,
            "id_map": dict(self.id_map),
            "warnings": list(self.warnings),
        }
