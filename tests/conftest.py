"""Shared fixtures: a migrated store plus raw-SQL seeding helpers."""

import json
import uuid

import pytest

from ticketport.attachments import AttachmentStore
from ticketport.db import Database


class Seeder:
    """Inserts rows directly so tests do not depend on the importer."""

    def __init__(self, db: Database):
        self.db = db

    def project(self, name="Source Project", path=None, project_id=None):
        project_id = project_id or str(uuid.uuid4())
        with self.db.transaction() as conn:
            conn.execute(
                "INSERT INTO projects (id, name, path) VALUES (?, ?, ?)",
                (project_id, name, path or f"/tmp/{project_id}"),
            )
        return project_id

    def epic(self, project_id, title="Auth", description=None, color=None):
        epic_id = str(uuid.uuid4())
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO epics (id, title, description, project_id, color, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (epic_id, title, description, project_id, color, "2024-01-01T00:00:00+00:00"),
            )
        return epic_id

    def ticket(
        self,
        project_id,
        epic_id=None,
        title="Login form",
        status="in_progress",
        position=1,
        tags=None,
        attachments=None,
        branch_name=None,
        linked_files=None,
    ):
        ticket_id = str(uuid.uuid4())
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO tickets (
                    id, title, description, status, priority, position, project_id,
                    epic_id, tags, subtasks, attachments, branch_name, linked_files,
                    pr_number, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    ticket_id,
                    title,
                    f"Description of {title}",
                    status,
                    "high",
                    position,
                    project_id,
                    epic_id,
                    json.dumps(tags or []),
                    json.dumps([{"id": "s1", "text": "Write it", "completed": False}]),
                    json.dumps(attachments or []),
                    branch_name,
                    json.dumps(linked_files) if linked_files else None,
                    42 if branch_name else None,
                    "2024-01-02T00:00:00+00:00",
                    "2024-01-03T00:00:00+00:00",
                ),
            )
        return ticket_id

    def comment(self, ticket_id, content="Looks good", author="alice"):
        comment_id = str(uuid.uuid4())
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO ticket_comments (id, ticket_id, content, author, type, created_at)
                VALUES (?, ?, ?, ?, 'comment', ?)
                """,
                (comment_id, ticket_id, content, author, "2024-01-04T00:00:00+00:00"),
            )
        return comment_id

    def finding(self, ticket_id, description="Missing null check"):
        finding_id = str(uuid.uuid4())
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO review_findings (
                    id, ticket_id, iteration, agent, severity, category, description,
                    file_path, line_number, status
                ) VALUES (?, ?, 1, 'code-reviewer', 'major', 'bug', ?, 'src/auth.py', 12, 'open')
                """,
                (finding_id, ticket_id, description),
            )
        return finding_id

    def demo_script(self, ticket_id, steps=None, passed=None):
        demo_id = str(uuid.uuid4())
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO demo_scripts (id, ticket_id, steps, generated_at, passed)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    demo_id,
                    ticket_id,
                    json.dumps(steps or [{"order": 1, "description": "Open login page"}]),
                    "2024-01-05T00:00:00+00:00",
                    passed,
                ),
            )
        return demo_id

    def workflow_state(self, ticket_id, phase="review"):
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO ticket_workflow_state (id, ticket_id, current_phase, review_iteration)
                VALUES (?, ?, ?, 1)
                """,
                (str(uuid.uuid4()), ticket_id, phase),
            )

    def epic_workflow_state(self, epic_id, learnings=None, branch="feature/auth"):
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO epic_workflow_state (
                    id, epic_id, epic_branch_name, tickets_total, tickets_done, learnings
                ) VALUES (?, ?, ?, 3, 1, ?)
                """,
                (str(uuid.uuid4()), epic_id, branch, json.dumps(learnings or [])),
            )


@pytest.fixture
def db(tmp_path):
    """Create a test database."""
    return Database(tmp_path / ".ticketport" / "ticketport.db")


@pytest.fixture
def attachments(tmp_path):
    return AttachmentStore(tmp_path / "attachments")


@pytest.fixture
def seed(db):
    return Seeder(db)
