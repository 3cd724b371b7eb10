"""Tests for directory-based transfer configuration."""

import json
from pathlib import Path

import pytest

from ticketport import config as config_module
from ticketport.config import (
    DEFAULT_COMPRESSION_LEVEL,
    TransferSettings,
    create_config,
    find_config,
    resolve_settings,
)
from ticketport.manifest import MAX_ARCHIVE_SIZE_BYTES


@pytest.fixture(autouse=True)
def no_user_config(tmp_path, monkeypatch):
    """Point the user-level config somewhere empty."""
    monkeypatch.setattr(config_module, "USER_CONFIG_FILE", tmp_path / "home" / "config.json")
    monkeypatch.delenv("TICKETPORT_USER", raising=False)


def _write_config(directory: Path, data: dict) -> Path:
    config_dir = directory / ".ticketport"
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / "config.json"
    path.write_text(json.dumps(data))
    return path


class TestFindConfig:
    def test_finds_config_in_directory(self, tmp_path):
        path = _write_config(tmp_path, {})
        assert find_config(tmp_path) == path

    def test_walks_up_to_parent(self, tmp_path):
        path = _write_config(tmp_path, {})
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config(nested) == path

    def test_none_without_config(self, tmp_path):
        assert find_config(tmp_path) is None


class TestResolveSettings:
    def test_defaults(self, tmp_path):
        settings = resolve_settings(tmp_path)

        assert settings.config_source == "none"
        assert settings.max_archive_size_bytes == MAX_ARCHIVE_SIZE_BYTES
        assert settings.compression_level == DEFAULT_COMPRESSION_LEVEL
        assert settings.get_db_path().name == "ticketport.db"

    def test_directory_config(self, tmp_path):
        _write_config(
            tmp_path,
            {"transfer": {"max_archive_size_mb": 5, "compression_level": 9, "exported_by": "bob"}},
        )
        settings = resolve_settings(tmp_path)

        assert settings.config_source == "directory"
        assert settings.max_archive_size_bytes == 5 * 1024 * 1024
        assert settings.compression_level == 9
        assert settings.get_exported_by() == "bob"
        assert settings.get_db_path() == tmp_path.resolve() / ".ticketport" / "ticketport.db"
        assert settings.get_attachments_dir() == tmp_path.resolve() / ".ticketport" / "attachments"

    def test_parent_config(self, tmp_path):
        _write_config(tmp_path, {})
        nested = tmp_path / "sub"
        nested.mkdir()
        assert resolve_settings(nested).config_source == "parent"

    def test_explicit_storage_paths(self, tmp_path):
        _write_config(
            tmp_path,
            {"storage": {"db_path": str(tmp_path / "x.db"), "attachments_dir": str(tmp_path / "files")}},
        )
        settings = resolve_settings(tmp_path)

        assert settings.get_db_path() == tmp_path / "x.db"
        assert settings.get_attachments_dir() == tmp_path / "files"

    def test_rejects_bad_compression_level(self, tmp_path):
        _write_config(tmp_path, {"transfer": {"compression_level": 12}})
        with pytest.raises(ValueError):
            resolve_settings(tmp_path)

    def test_user_config_fallback(self, tmp_path, monkeypatch):
        user_file = tmp_path / "home" / "config.json"
        user_file.parent.mkdir(parents=True)
        user_file.write_text(json.dumps({"transfer": {"exported_by": "carol"}}))
        project = tmp_path / "project"
        project.mkdir()

        settings = resolve_settings(project)

        assert settings.config_source == "user"
        assert settings.get_exported_by() == "carol"


class TestExportedBy:
    def test_env_var_wins(self, monkeypatch):
        monkeypatch.setenv("TICKETPORT_USER", "dave")
        assert TransferSettings(exported_by="bob").get_exported_by() == "dave"

    def test_falls_back_to_os_user(self):
        assert TransferSettings().get_exported_by()


class TestCreateConfig:
    def test_creates_loadable_config(self, tmp_path):
        path = create_config(tmp_path, db_path=tmp_path / "store.db", exported_by="erin")

        assert path == tmp_path / ".ticketport" / "config.json"
        settings = resolve_settings(tmp_path)
        assert settings.get_db_path() == tmp_path / "store.db"
        assert settings.get_exported_by() == "erin"
