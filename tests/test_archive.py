"""Tests for the archive codec."""

import io
import json
import zipfile

import pytest

from ticketport.archive import ArchiveCodec
from ticketport.errors import ArchiveFileError, ArchiveTooLargeError, InvalidArchiveError
from ticketport.manifest import (
    MANIFEST_ENTRY,
    MANIFEST_VERSION,
    ExportedAttachmentFile,
    ExportedEpic,
    ExportedTicket,
    ExportResult,
    Manifest,
)

PAYLOAD = b"ATTACHMENT-PAYLOAD-0123456789"


def _manifest(version=MANIFEST_VERSION, with_attachment=False):
    files = []
    if with_attachment:
        files.append(
            ExportedAttachmentFile(
                archive_path="attachments/t1/shot.png",
                original_ticket_id="t1",
                filename="shot.png",
            )
        )
    return Manifest(
        version=version,
        export_type="epic",
        exported_at="2024-02-01T10:00:00+00:00",
        exported_by="alice",
        app_version="1.0.0",
        source_project_name="Source",
        epics=[ExportedEpic(id="e1", title="Auth")],
        tickets=[ExportedTicket(id="t1", title="Login", status="done", epic_id="e1")],
        attachment_files=files,
    )


def _zip(entries, compression=zipfile.ZIP_STORED):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def _corrupt_payload(data: bytes) -> bytes:
    # Same length, different bytes: CRC check fails when the entry is read
    return data.replace(PAYLOAD, b"X" * len(PAYLOAD))


class TestArchiveWrite:
    def test_writes_manifest_and_attachments(self):
        export = ExportResult(
            manifest=_manifest(with_attachment=True),
            attachment_buffers={"attachments/t1/shot.png": PAYLOAD},
        )
        data = ArchiveCodec().write(export)

        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            names = zf.namelist()
            manifest = json.loads(zf.read(MANIFEST_ENTRY))
            info = zf.getinfo("attachments/t1/shot.png")

        assert MANIFEST_ENTRY in names
        assert manifest["version"] == MANIFEST_VERSION
        assert info.compress_type == zipfile.ZIP_DEFLATED

    def test_write_file_returns_size(self, tmp_path):
        path = tmp_path / "auth.ticketport"
        size = ArchiveCodec().write_file(ExportResult(manifest=_manifest()), path)
        assert size == path.stat().st_size

    def test_write_file_into_missing_directory(self, tmp_path):
        path = tmp_path / "nowhere" / "auth.ticketport"
        with pytest.raises(ArchiveFileError) as exc_info:
            ArchiveCodec().write_file(ExportResult(manifest=_manifest()), path)
        assert exc_info.value.details == {"path": str(path)}

    def test_write_rejects_oversized_archive(self):
        codec = ArchiveCodec(max_size_bytes=100)
        with pytest.raises(ArchiveTooLargeError) as exc_info:
            codec.write(ExportResult(manifest=_manifest()))
        assert exc_info.value.max_bytes == 100


class TestArchiveExtract:
    def test_extract_returns_manifest_and_buffers(self):
        codec = ArchiveCodec()
        original = ExportResult(
            manifest=_manifest(with_attachment=True),
            attachment_buffers={"attachments/t1/shot.png": PAYLOAD},
        )
        result = codec.extract(codec.write(original))

        assert result.manifest == original.manifest
        assert result.attachment_buffers == original.attachment_buffers

    def test_not_a_zip(self):
        with pytest.raises(InvalidArchiveError) as exc_info:
            ArchiveCodec().extract(b"this is not a zip file")
        assert exc_info.value.reason == "not a valid archive"
        assert exc_info.value.code == "INVALID_ARCHIVE"

    def test_missing_manifest(self):
        data = _zip({"attachments/t1/a.txt": b"hello"})
        with pytest.raises(InvalidArchiveError) as exc_info:
            ArchiveCodec().extract(data)
        assert exc_info.value.reason == "missing manifest"

    def test_manifest_not_json(self):
        data = _zip({MANIFEST_ENTRY: b"{not json"})
        with pytest.raises(InvalidArchiveError) as exc_info:
            ArchiveCodec().extract(data)
        assert exc_info.value.reason == "corrupted"

    def test_version_mismatch_checked_before_schema(self):
        data = _zip({MANIFEST_ENTRY: json.dumps({"version": MANIFEST_VERSION + 1})})
        with pytest.raises(InvalidArchiveError) as exc_info:
            ArchiveCodec().extract(data)
        assert exc_info.value.reason == "incompatible manifest version"

    def test_codec_supports_configured_version_only(self):
        data = ArchiveCodec().write(ExportResult(manifest=_manifest()))
        with pytest.raises(InvalidArchiveError) as exc_info:
            ArchiveCodec(manifest_version=2).extract(data)
        assert exc_info.value.reason == "incompatible manifest version"

    def test_schema_violation_is_corrupted(self):
        data = _zip({MANIFEST_ENTRY: json.dumps({"version": MANIFEST_VERSION, "exportType": "epic"})})
        with pytest.raises(InvalidArchiveError) as exc_info:
            ArchiveCodec().extract(data)
        assert exc_info.value.reason == "corrupted"

    def test_oversized_input_rejected_before_opening(self):
        with pytest.raises(ArchiveTooLargeError) as exc_info:
            ArchiveCodec(max_size_bytes=10).extract(b"x" * 11)
        assert exc_info.value.size_bytes == 11

    def test_damaged_attachment_is_skipped_with_warning(self):
        data = _zip(
            {
                MANIFEST_ENTRY: json.dumps(_manifest(with_attachment=True).to_dict()),
                "attachments/t1/shot.png": PAYLOAD,
                "attachments/t1/notes.txt": b"intact notes",
            }
        )
        result = ArchiveCodec().extract(_corrupt_payload(data))

        assert result.attachment_buffers == {"attachments/t1/notes.txt": b"intact notes"}
        assert len(result.warnings) == 1
        assert "attachments/t1/shot.png" in result.warnings[0]
        assert result.manifest == _manifest(with_attachment=True)

    def test_damaged_archive_previews_and_extracts_same_manifest(self):
        data = _corrupt_payload(
            _zip(
                {
                    MANIFEST_ENTRY: json.dumps(_manifest(with_attachment=True).to_dict()),
                    "attachments/t1/shot.png": PAYLOAD,
                }
            )
        )
        codec = ArchiveCodec()

        assert codec.extract(data).manifest.preview() == codec.preview(data)

    def test_version_gate_wins_over_damaged_attachment(self):
        document = {**_manifest(with_attachment=True).to_dict(), "version": MANIFEST_VERSION + 1}
        data = _zip(
            {
                MANIFEST_ENTRY: json.dumps(document),
                "attachments/t1/shot.png": PAYLOAD,
            }
        )
        with pytest.raises(InvalidArchiveError) as exc_info:
            ArchiveCodec().extract(_corrupt_payload(data))
        assert exc_info.value.reason == "incompatible manifest version"

    def test_mistyped_ticket_field_is_corrupted(self):
        document = _manifest().to_dict()
        document["tickets"][0]["subtasks"] = "not-a-list"
        data = _zip({MANIFEST_ENTRY: json.dumps(document)})

        with pytest.raises(InvalidArchiveError) as exc_info:
            ArchiveCodec().extract(data)
        assert exc_info.value.reason == "corrupted"

    def test_read_missing_file_is_file_error(self, tmp_path):
        with pytest.raises(ArchiveFileError) as exc_info:
            ArchiveCodec().read_file(tmp_path / "missing.ticketport")
        assert exc_info.value.code == "FILE_ERROR"


class TestArchivePreview:
    def test_preview_summarizes_manifest(self):
        codec = ArchiveCodec()
        data = codec.write(ExportResult(manifest=_manifest()))
        preview = codec.preview(data)

        assert preview.source_project_name == "Source"
        assert preview.epic_names == ["Auth"]
        assert preview.ticket_count == 1

    def test_preview_does_not_read_attachments(self):
        data = _zip(
            {
                MANIFEST_ENTRY: json.dumps(_manifest(with_attachment=True).to_dict()),
                "attachments/t1/shot.png": PAYLOAD,
            }
        )
        preview = ArchiveCodec().preview(_corrupt_payload(data))
        assert preview.attachment_count == 1

    def test_preview_file_checks_size_from_stat(self, tmp_path):
        path = tmp_path / "big.ticketport"
        path.write_bytes(b"x" * 64)
        with pytest.raises(ArchiveTooLargeError):
            ArchiveCodec(max_size_bytes=32).preview_file(path)

    def test_preview_validates_version(self):
        data = _zip({MANIFEST_ENTRY: json.dumps({"version": 99})})
        with pytest.raises(InvalidArchiveError):
            ArchiveCodec().preview(data)
