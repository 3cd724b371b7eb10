"""Database schema definitions and migrations for the ticketport store."""

SCHEMA_VERSION = 2

# Initial schema (version 1)
SCHEMA_V1 = """
-- ============================================================
-- PROJECTS TABLE
-- One row per tracked repository
-- ============================================================
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY NOT NULL,
    name TEXT NOT NULL,
    path TEXT NOT NULL UNIQUE,
    color TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- ============================================================
-- EPICS
-- Groups of tickets inside a project
-- ============================================================
CREATE TABLE IF NOT EXISTS epics (
    id TEXT PRIMARY KEY NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    color TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- ============================================================
-- TICKETS
-- epic_id is NULL for orphan tickets
-- ============================================================
CREATE TABLE IF NOT EXISTS tickets (
    id TEXT PRIMARY KEY NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    status TEXT NOT NULL DEFAULT 'backlog',
    priority TEXT,
    position INTEGER NOT NULL DEFAULT 0,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    epic_id TEXT REFERENCES epics(id) ON DELETE SET NULL,
    tags TEXT,                              -- JSON array of strings
    subtasks TEXT,                          -- JSON array of {id, text, completed}
    is_blocked INTEGER NOT NULL DEFAULT 0,  -- SQLite boolean (0/1)
    blocked_reason TEXT,
    attachments TEXT,                       -- JSON array of attachment metadata

    -- Machine-local state, never exported
    linked_files TEXT,
    linked_commits TEXT,
    branch_name TEXT,
    pr_number INTEGER,
    pr_url TEXT,
    pr_status TEXT,

    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    completed_at TEXT
);

-- ============================================================
-- TICKET COMMENTS
-- ============================================================
CREATE TABLE IF NOT EXISTS ticket_comments (
    id TEXT PRIMARY KEY NOT NULL,
    ticket_id TEXT NOT NULL REFERENCES tickets(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    author TEXT NOT NULL DEFAULT 'user',
    type TEXT NOT NULL DEFAULT 'comment',
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- ============================================================
-- INDEXES
-- ============================================================
CREATE INDEX IF NOT EXISTS idx_epics_project ON epics(project_id);
CREATE INDEX IF NOT EXISTS idx_tickets_project ON tickets(project_id);
CREATE INDEX IF NOT EXISTS idx_tickets_epic ON tickets(epic_id);
CREATE INDEX IF NOT EXISTS idx_tickets_position ON tickets(position);
CREATE INDEX IF NOT EXISTS idx_comments_ticket ON ticket_comments(ticket_id);
"""

# Schema V2: review/demo workflow tables
SCHEMA_V2_MIGRATION = """
-- ============================================================
-- V2: Review workflow
-- Per-ticket and per-epic workflow state, review findings
-- and demo scripts
-- ============================================================

CREATE TABLE IF NOT EXISTS ticket_workflow_state (
    id TEXT PRIMARY KEY,
    ticket_id TEXT NOT NULL UNIQUE REFERENCES tickets(id) ON DELETE CASCADE,
    current_phase TEXT NOT NULL DEFAULT 'implementation',
    review_iteration INTEGER NOT NULL DEFAULT 0,
    findings_count INTEGER NOT NULL DEFAULT 0,
    findings_fixed INTEGER NOT NULL DEFAULT 0,
    demo_generated INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS epic_workflow_state (
    id TEXT PRIMARY KEY,
    epic_id TEXT NOT NULL UNIQUE REFERENCES epics(id) ON DELETE CASCADE,
    epic_branch_name TEXT,                  -- machine-local, never exported
    pr_number INTEGER,
    pr_url TEXT,
    pr_status TEXT,
    tickets_total INTEGER DEFAULT 0,
    tickets_done INTEGER DEFAULT 0,
    learnings TEXT,                         -- JSON array
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS review_findings (
    id TEXT PRIMARY KEY,
    ticket_id TEXT NOT NULL REFERENCES tickets(id) ON DELETE CASCADE,
    iteration INTEGER NOT NULL,
    agent TEXT NOT NULL,
    severity TEXT NOT NULL,
    category TEXT NOT NULL,
    description TEXT NOT NULL,
    file_path TEXT,
    line_number INTEGER,
    suggested_fix TEXT,
    status TEXT NOT NULL DEFAULT 'open',
    fixed_at TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS demo_scripts (
    id TEXT PRIMARY KEY,
    ticket_id TEXT NOT NULL UNIQUE REFERENCES tickets(id) ON DELETE CASCADE,
    steps TEXT NOT NULL,                    -- JSON array of steps
    generated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    completed_at TEXT,
    feedback TEXT,
    passed INTEGER                          -- SQLite boolean (0/1/NULL)
);

CREATE INDEX IF NOT EXISTS idx_workflow_ticket ON ticket_workflow_state(ticket_id);
CREATE INDEX IF NOT EXISTS idx_epic_workflow_epic ON epic_workflow_state(epic_id);
CREATE INDEX IF NOT EXISTS idx_findings_ticket ON review_findings(ticket_id);
CREATE INDEX IF NOT EXISTS idx_findings_status ON review_findings(status);
"""


def get_migration_sql(from_version: int, to_version: int) -> list[str]:
    """Get SQL statements to migrate from one version to another.

    Args:
        from_version: Current schema version (0 for fresh install)
        to_version: Target schema version

    Returns:
        List of SQL scripts to execute in order
    """
    migrations = []

    if from_version < 1 <= to_version:
        migrations.append(SCHEMA_V1)

    if from_version < 2 <= to_version:
        migrations.append(SCHEMA_V2_MIGRATION)

    return migrations
