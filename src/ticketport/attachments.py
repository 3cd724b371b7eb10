"""Attachment files on disk.

Ticket attachments are stored as ``{root}/{ticket_id}/{filename}``; the
ticket row only records their metadata.
"""

from __future__ import annotations

from pathlib import Path


class AttachmentStore:
    """Reads and writes attachment bytes under a root directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, ticket_id: str, filename: str) -> Path:
        # Only the base name is honoured so "../" in a manifest cannot escape the root
        return self.root / Path(ticket_id).name / Path(filename).name

    def exists(self, ticket_id: str, filename: str) -> bool:
        return self.path_for(ticket_id, filename).is_file()

    def read(self, ticket_id: str, filename: str) -> bytes:
        return self.path_for(ticket_id, filename).read_bytes()

    def write(self, ticket_id: str, filename: str, data: bytes) -> Path:
        target = self.path_for(ticket_id, filename)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return target
