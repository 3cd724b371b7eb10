"""Database module for the ticketport store.

This module provides SQLite-based persistence for projects, epics, tickets
and the review workflow tables that transfers read from and write to.

Usage:
    from ticketport.db import Database

    db = Database(Path("ticketport.db"))

    with db.transaction() as conn:
        conn.execute("INSERT INTO epics ...")
"""

from .connection import Database
from .schema import SCHEMA_VERSION

__all__ = ["Database", "SCHEMA_VERSION"]
