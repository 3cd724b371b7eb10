"""Tests for MCP server tools."""

import base64

import pytest

from ticketport import config as config_module
from ticketport.mcp_server import (
    transfer_export_epic,
    transfer_export_project,
    transfer_import,
    transfer_list_epics,
    transfer_list_projects,
    transfer_preview,
)


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "USER_CONFIG_FILE", tmp_path / "home" / "config.json")
    monkeypatch.setenv("TICKETPORT_USER", "alice")


@pytest.fixture
def db_path(db):
    return str(db.db_path)


@pytest.fixture
def source(seed):
    project_id = seed.project("Source")
    epic_id = seed.epic(project_id, "Auth")
    seed.ticket(project_id, epic_id, "Login")
    seed.ticket(project_id, epic_id, "Signup", position=2)
    return project_id, epic_id


@pytest.fixture
def archive(source, db_path, tmp_path):
    _, epic_id = source
    path = tmp_path / "auth.ticketport"
    response = transfer_export_epic(epic_id, output_path=str(path), db_path=db_path, format="json")
    assert response["content"]["success"] is True
    return path


class TestListingTools:
    def test_list_projects(self, source, db_path):
        response = transfer_list_projects(db_path=db_path, format="json")
        assert response["format"] == "json"
        assert response["content"]["count"] == 1

    def test_list_epics(self, source, db_path):
        project_id, epic_id = source
        content = transfer_list_epics(project_id, db_path=db_path, format="json")["content"]
        assert content["epics"][0]["id"] == epic_id
        assert content["epics"][0]["ticket_count"] == 2

    def test_toon_output(self, source, db_path):
        response = transfer_list_projects(db_path=db_path)
        assert response["format"] == "toon"
        assert "Source" in response["content"]


class TestExportTools:
    def test_export_epic(self, archive):
        assert archive.exists()

    def test_export_project(self, source, db_path, tmp_path):
        project_id, _ = source
        out = tmp_path / "all.ticketport"
        content = transfer_export_project(project_id, output_path=str(out), db_path=db_path, format="json")["content"]
        assert content["export_type"] == "project"
        assert out.exists()

    def test_export_error_is_returned(self, db_path):
        content = transfer_export_epic("missing", db_path=db_path, format="json")["content"]
        assert content["error"] == "EPIC_NOT_FOUND"


class TestPreviewTool:
    def test_preview_file(self, archive):
        content = transfer_preview(file_path=str(archive), format="json")["content"]
        assert content["preview"]["epic_names"] == ["Auth"]
        assert content["preview"]["ticket_count"] == 2

    def test_preview_base64(self, archive):
        encoded = base64.b64encode(archive.read_bytes()).decode()
        content = transfer_preview(archive_base64=encoded, format="json")["content"]
        assert content["preview"]["source_project"] == "Source"

    def test_preview_bad_base64(self):
        content = transfer_preview(archive_base64="%%%", format="json")["content"]
        assert content["error"] == "INVALID_PAYLOAD"


class TestImportTool:
    def test_import_file(self, archive, seed, db_path):
        target = seed.project("Target")
        content = transfer_import(
            target_project_id=target,
            file_path=str(archive),
            db_path=db_path,
            format="json",
        )["content"]
        assert content["success"] is True
        assert content["result"]["ticket_count"] == 2

    def test_import_base64_merge_twice(self, archive, seed, db_path):
        target = seed.project("Target")
        encoded = base64.b64encode(archive.read_bytes()).decode()

        first = transfer_import(
            target_project_id=target, archive_base64=encoded, db_path=db_path, format="json"
        )["content"]
        second = transfer_import(
            target_project_id=target,
            archive_base64=encoded,
            conflict_resolution="merge",
            db_path=db_path,
            format="json",
        )["content"]

        first_ids = set(first["result"]["id_map"].values())
        second_ids = set(second["result"]["id_map"].values())
        assert first_ids == second_ids

    def test_import_new_project(self, archive, db_path, tmp_path):
        repo = tmp_path / "repo"
        repo.mkdir()
        content = transfer_import(
            file_path=str(archive),
            new_project_name="Fresh",
            new_project_path=str(repo),
            db_path=db_path,
            format="json",
        )["content"]
        assert content["success"] is True
        assert content["project_id"]

    def test_import_requires_one_destination(self, archive, db_path):
        content = transfer_import(file_path=str(archive), db_path=db_path, format="json")["content"]
        assert content["error"] == "VALIDATION_ERROR"

    def test_import_unknown_project(self, archive, db_path):
        content = transfer_import(
            target_project_id="missing", file_path=str(archive), db_path=db_path, format="json"
        )["content"]
        assert content["error"] == "PROJECT_NOT_FOUND"
