"""Row-level access to the tracker store.

``TrackerStore`` wraps a single ``sqlite3.Connection`` so the exporter can
read a consistent snapshot and the importer can run every write of one
import inside the same transaction. It knows nothing about
manifests; callers convert rows to and from snapshots.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from typing import Any, Optional, Sequence


def new_id() -> str:
    return str(uuid.uuid4())


def dump_json(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value)


def load_json(raw: Optional[str], default: Any) -> Any:
    """Parse a JSON column, falling back to ``default`` for NULL or junk."""
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return default


def _placeholders(values: Sequence[Any]) -> str:
    return ",".join("?" for _ in values)


class TrackerStore:
    """Reads and writes projects, epics, tickets and their dependents by ID."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def get_project(self, project_id: str) -> Optional[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM projects WHERE id = ?", (project_id,)
        ).fetchone()

    def get_project_by_path(self, path: str) -> Optional[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM projects WHERE path = ?", (path,)
        ).fetchone()

    def list_projects(self) -> list[sqlite3.Row]:
        return self.conn.execute("SELECT * FROM projects ORDER BY created_at, name").fetchall()

    def insert_project(self, name: str, path: str, color: Optional[str] = None) -> str:
        project_id = new_id()
        self.conn.execute(
            "INSERT INTO projects (id, name, path, color) VALUES (?, ?, ?, ?)",
            (project_id, name, path, color),
        )
        return project_id

    def delete_project(self, project_id: str) -> None:
        self.conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))

    # ------------------------------------------------------------------
    # Epics
    # ------------------------------------------------------------------

    def get_epic(self, epic_id: str) -> Optional[sqlite3.Row]:
        return self.conn.execute("SELECT * FROM epics WHERE id = ?", (epic_id,)).fetchone()

    def list_epics(self, project_id: str) -> list[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM epics WHERE project_id = ? ORDER BY created_at",
            (project_id,),
        ).fetchall()

    def insert_epic(
        self,
        project_id: str,
        title: str,
        description: Optional[str],
        color: Optional[str],
        created_at: str,
    ) -> str:
        epic_id = new_id()
        self.conn.execute(
            """
            INSERT INTO epics (id, title, description, project_id, color, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (epic_id, title, description, project_id, color, created_at),
        )
        return epic_id

    def update_epic(
        self,
        epic_id: str,
        description: Optional[str],
        color: Optional[str],
        created_at: str,
    ) -> None:
        self.conn.execute(
            "UPDATE epics SET description = ?, color = ?, created_at = ? WHERE id = ?",
            (description, color, created_at, epic_id),
        )

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    def list_tickets_for_epic(self, epic_id: str) -> list[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM tickets WHERE epic_id = ? ORDER BY position",
            (epic_id,),
        ).fetchall()

    def list_tickets_for_project(self, project_id: str) -> list[sqlite3.Row]:
        return self.conn.execute(
            "SELECT * FROM tickets WHERE project_id = ? ORDER BY position",
            (project_id,),
        ).fetchall()

    def ticket_titles(self, epic_id: str) -> dict[str, str]:
        """Map title -> ticket id for one epic (last row wins on duplicates)."""
        rows = self.conn.execute(
            "SELECT id, title FROM tickets WHERE epic_id = ? ORDER BY position",
            (epic_id,),
        ).fetchall()
        return {row["title"]: row["id"] for row in rows}

    def max_position(self, project_id: str) -> int:
        row = self.conn.execute(
            "SELECT MAX(position) AS max_pos FROM tickets WHERE project_id = ?",
            (project_id,),
        ).fetchone()
        return row["max_pos"] if row and row["max_pos"] is not None else 0

    def insert_ticket(self, project_id: str, epic_id: Optional[str], fields: dict) -> str:
        ticket_id = new_id()
        self.conn.execute(
            """
            INSERT INTO tickets (
                id, title, description, status, priority, position,
                project_id, epic_id, tags, subtasks, is_blocked,
                blocked_reason, attachments, created_at, updated_at, completed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                ticket_id,
                fields["title"],
                fields["description"],
                fields["status"],
                fields["priority"],
                fields["position"],
                project_id,
                epic_id,
                dump_json(fields["tags"]),
                dump_json(fields["subtasks"]),
                1 if fields["is_blocked"] else 0,
                fields["blocked_reason"],
                dump_json(fields["attachments"]),
                fields["created_at"],
                fields["updated_at"],
                fields["completed_at"],
            ),
        )
        return ticket_id

    def update_ticket_content(self, ticket_id: str, fields: dict) -> None:
        """Overwrite content fields of an existing ticket, keeping its identity."""
        self.conn.execute(
            """
            UPDATE tickets SET
                description = ?, status = ?, priority = ?, position = ?,
                tags = ?, subtasks = ?, is_blocked = ?, blocked_reason = ?,
                attachments = ?, updated_at = ?, completed_at = ?
            WHERE id = ?
            """,
            (
                fields["description"],
                fields["status"],
                fields["priority"],
                fields["position"],
                dump_json(fields["tags"]),
                dump_json(fields["subtasks"]),
                1 if fields["is_blocked"] else 0,
                fields["blocked_reason"],
                dump_json(fields["attachments"]),
                fields["updated_at"],
                fields["completed_at"],
                ticket_id,
            ),
        )

    def delete_tickets_for_epic(self, epic_id: str) -> int:
        """Delete an epic's tickets; dependents go with them via ON DELETE CASCADE."""
        cursor = self.conn.execute("DELETE FROM tickets WHERE epic_id = ?", (epic_id,))
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Ticket dependents
    # ------------------------------------------------------------------

    def _rows_for_tickets(self, table: str, ticket_ids: Sequence[str], order: str = "") -> list[sqlite3.Row]:
        if not ticket_ids:
            return []
        sql = f"SELECT * FROM {table} WHERE ticket_id IN ({_placeholders(ticket_ids)})"
        if order:
            sql += f" ORDER BY {order}"
        return self.conn.execute(sql, tuple(ticket_ids)).fetchall()

    def list_comments(self, ticket_ids: Sequence[str]) -> list[sqlite3.Row]:
        return self._rows_for_tickets("ticket_comments", ticket_ids, "created_at")

    def list_findings(self, ticket_ids: Sequence[str]) -> list[sqlite3.Row]:
        return self._rows_for_tickets("review_findings", ticket_ids, "created_at")

    def list_demo_scripts(self, ticket_ids: Sequence[str]) -> list[sqlite3.Row]:
        return self._rows_for_tickets("demo_scripts", ticket_ids)

    def list_workflow_states(self, ticket_ids: Sequence[str]) -> list[sqlite3.Row]:
        return self._rows_for_tickets("ticket_workflow_state", ticket_ids)

    def insert_comment(
        self,
        ticket_id: str,
        content: str,
        author: str,
        comment_type: str,
        created_at: str,
    ) -> str:
        comment_id = new_id()
        self.conn.execute(
            """
            INSERT INTO ticket_comments (id, ticket_id, content, author, type, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (comment_id, ticket_id, content, author, comment_type, created_at),
        )
        return comment_id

    def insert_finding(self, ticket_id: str, fields: dict) -> str:
        finding_id = new_id()
        self.conn.execute(
            """
            INSERT INTO review_findings (
                id, ticket_id, iteration, agent, severity, category, description,
                file_path, line_number, suggested_fix, status, fixed_at, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                finding_id,
                ticket_id,
                fields["iteration"],
                fields["agent"],
                fields["severity"],
                fields["category"],
                fields["description"],
                fields["file_path"],
                fields["line_number"],
                fields["suggested_fix"],
                fields["status"],
                fields["fixed_at"],
                fields["created_at"],
            ),
        )
        return finding_id

    def replace_demo_script(self, ticket_id: str, fields: dict) -> str:
        """Insert a demo script, dropping any script the ticket already has."""
        self.conn.execute("DELETE FROM demo_scripts WHERE ticket_id = ?", (ticket_id,))
        demo_id = new_id()
        passed = fields["passed"]
        self.conn.execute(
            """
            INSERT INTO demo_scripts (id, ticket_id, steps, generated_at, completed_at, feedback, passed)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                demo_id,
                ticket_id,
                json.dumps(fields["steps"]),
                fields["generated_at"],
                fields["completed_at"],
                fields["feedback"],
                None if passed is None else (1 if passed else 0),
            ),
        )
        return demo_id

    def insert_workflow_state(self, ticket_id: str, fields: dict, now: str) -> bool:
        """Insert a ticket workflow state unless the ticket already has one."""
        cursor = self.conn.execute(
            """
            INSERT OR IGNORE INTO ticket_workflow_state (
                id, ticket_id, current_phase, review_iteration,
                findings_count, findings_fixed, demo_generated, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                new_id(),
                ticket_id,
                fields["current_phase"],
                fields["review_iteration"],
                fields["findings_count"],
                fields["findings_fixed"],
                1 if fields["demo_generated"] else 0,
                now,
                now,
            ),
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Epic workflow state
    # ------------------------------------------------------------------

    def list_epic_workflow_states(self, epic_ids: Sequence[str]) -> list[sqlite3.Row]:
        if not epic_ids:
            return []
        return self.conn.execute(
            f"""
            SELECT id, epic_id, tickets_total, tickets_done, learnings
            FROM epic_workflow_state WHERE epic_id IN ({_placeholders(epic_ids)})
            """,
            tuple(epic_ids),
        ).fetchall()

    def delete_epic_workflow_state(self, epic_id: str) -> None:
        self.conn.execute("DELETE FROM epic_workflow_state WHERE epic_id = ?", (epic_id,))

    def insert_epic_workflow_state(self, epic_id: str, fields: dict, now: str) -> bool:
        cursor = self.conn.execute(
            """
            INSERT OR IGNORE INTO epic_workflow_state (
                id, epic_id, tickets_total, tickets_done, learnings, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                new_id(),
                epic_id,
                fields["tickets_total"],
                fields["tickets_done"],
                json.dumps(fields["learnings"]),
                now,
                now,
            ),
        )
        return cursor.rowcount > 0
