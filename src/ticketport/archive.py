"""Zip container codec for transfer archives.

An archive holds one ``manifest.json`` entry and zero or more
``attachments/{ticketId}/{filename}`` entries. Reading validates in a fixed
order and fails with ``InvalidArchiveError`` before any attachment entry is
decompressed:

1. size bound (``ArchiveTooLargeError``), checked before opening
2. container opens as a zip            -> "not a valid archive"
3. ``manifest.json`` present           -> "missing manifest"
4. manifest is a JSON object with an integer version -> "corrupted"
5. version is the supported one        -> "incompatible manifest version"
6. manifest matches the schema         -> "corrupted"

Only a full ``extract`` goes on to read attachment entries; ``preview``
stops after the manifest. A damaged attachment entry is skipped with a
warning, so both report the same manifest.
"""

from __future__ import annotations

import io
import json
import logging
import zipfile
import zlib
from pathlib import Path

from .errors import ArchiveFileError, ArchiveTooLargeError, InvalidArchiveError
from .manifest import (
    ATTACHMENTS_PREFIX,
    MANIFEST_ENTRY,
    MANIFEST_VERSION,
    MAX_ARCHIVE_SIZE_BYTES,
    ExportResult,
    Manifest,
    ManifestFormatError,
    ManifestPreview,
)

logger = logging.getLogger(__name__)


class ArchiveCodec:
    """Writes and reads transfer archives for one supported manifest version.

    Usage:
        codec = ArchiveCodec()
        data = codec.write(exporter.export_epic(epic_id))
        preview = codec.preview(data)
        result = codec.extract(data)
    """

    def __init__(
        self,
        manifest_version: int = MANIFEST_VERSION,
        max_size_bytes: int = MAX_ARCHIVE_SIZE_BYTES,
        compression_level: int = 6,
    ):
        self.manifest_version = manifest_version
        self.max_size_bytes = max_size_bytes
        self.compression_level = compression_level

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write(self, export: ExportResult) -> bytes:
        """Serialize a manifest and its attachment blobs into archive bytes.

        Raises:
            ArchiveTooLargeError: if the compressed archive exceeds the limit
        """
        buffer = io.BytesIO()
        with zipfile.ZipFile(
            buffer,
            "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=self.compression_level,
        ) as zf:
            zf.writestr(MANIFEST_ENTRY, json.dumps(export.manifest.to_dict(), indent=2))
            for archive_path, data in export.attachment_buffers.items():
                zf.writestr(archive_path, data)

        data = buffer.getvalue()
        self._check_size(len(data))
        logger.debug("Wrote archive: %d bytes, %d attachments", len(data), len(export.attachment_buffers))
        return data

    def write_file(self, export: ExportResult, path: Path) -> int:
        """Write archive bytes to ``path``; returns the archive size."""
        data = self.write(export)
        try:
            Path(path).write_bytes(data)
        except OSError as e:
            raise ArchiveFileError(str(path), "write", e) from e
        return len(data)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def extract(self, data: bytes) -> ExportResult:
        """Validate archive bytes and return the manifest plus attachment blobs.

        Raises:
            ArchiveTooLargeError: if ``data`` exceeds the size limit
            InvalidArchiveError: for any problem with the container or manifest
        """
        self._check_size(len(data))
        with self._open(data) as zf:
            manifest = self._read_manifest(zf)

            buffers: dict[str, bytes] = {}
            warnings: list[str] = []
            for info in zf.infolist():
                if not info.filename.startswith(ATTACHMENTS_PREFIX) or info.is_dir():
                    continue
                try:
                    buffers[info.filename] = zf.read(info)
                except (zipfile.BadZipFile, zlib.error, EOFError) as e:
                    message = f"Skipped damaged attachment entry {info.filename}: {e}"
                    warnings.append(message)
                    logger.warning(message)

        return ExportResult(manifest=manifest, attachment_buffers=buffers, warnings=warnings)

    def preview(self, data: bytes) -> ManifestPreview:
        """Validate archive bytes and summarize the manifest.

        Attachment entries are never decompressed, so damaged attachment data
        does not affect the preview.
        """
        self._check_size(len(data))
        with self._open(data) as zf:
            manifest = self._read_manifest(zf)
        return manifest.preview()

    def read_file(self, path: Path) -> ExportResult:
        return self.extract(self._read_bounded(path))

    def preview_file(self, path: Path) -> ManifestPreview:
        return self.preview(self._read_bounded(path))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_size(self, size: int) -> None:
        if size > self.max_size_bytes:
            raise ArchiveTooLargeError(size, self.max_size_bytes)

    def _read_bounded(self, path: Path) -> bytes:
        path = Path(path)
        try:
            self._check_size(path.stat().st_size)
            return path.read_bytes()
        except OSError as e:
            raise ArchiveFileError(str(path), "read", e) from e

    def _open(self, data: bytes) -> zipfile.ZipFile:
        try:
            return zipfile.ZipFile(io.BytesIO(data))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, EOFError) as e:
            raise InvalidArchiveError("not a valid archive", "File is not a zip archive") from e

    def _read_manifest(self, zf: zipfile.ZipFile) -> Manifest:
        try:
            raw = zf.read(MANIFEST_ENTRY)
        except KeyError as e:
            raise InvalidArchiveError(
                "missing manifest", f"Archive has no {MANIFEST_ENTRY} entry"
            ) from e
        except (zipfile.BadZipFile, zlib.error, EOFError) as e:
            raise InvalidArchiveError("corrupted", f"{MANIFEST_ENTRY} could not be read") from e

        try:
            document = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise InvalidArchiveError("corrupted", f"{MANIFEST_ENTRY} is not valid JSON") from e

        version = document.get("version") if isinstance(document, dict) else None
        if not isinstance(version, int) or isinstance(version, bool):
            raise InvalidArchiveError("corrupted", f"{MANIFEST_ENTRY} has no integer version")

        if version != self.manifest_version:
            raise InvalidArchiveError(
                "incompatible manifest version",
                f"Archive uses version {version}; this build supports version "
                f"{self.manifest_version}",
            )

        try:
            return Manifest.from_dict(document)
        except ManifestFormatError as e:
            raise InvalidArchiveError("corrupted", str(e)) from e
