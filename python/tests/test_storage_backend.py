"""Tests for the local storage backend and attachment key helpers."""

import os

import pytest

from simtrack_core.storage_backend import InvalidKeyError, LocalBackend, get_storage_backend, normalize_key

from simtrack_api.settings import Settings, settings
from simtrack_api.storage import (
    build_file_key,
    content_type_for,
    remove_file,
    remove_job_files,
    save_upload,
)


@pytest.fixture
def backend(tmp_path):
    return LocalBackend(str(tmp_path / "store"))


class TestLocalBackend:
    def test_write_read_size(self, backend):
        backend.write_bytes("7/mesh_1.msh", b"abc")
        assert backend.exists("7/mesh_1.msh")
        assert backend.read_bytes("7/mesh_1.msh") == b"abc"
        assert backend.size("7/mesh_1.msh") == 3

    def test_delete(self, backend):
        backend.write_bytes("7/mesh_1.msh", b"abc")
        assert backend.delete("7/mesh_1.msh") is True
        assert backend.delete("7/mesh_1.msh") is False
        assert not backend.exists("7/mesh_1.msh")

    def test_delete_prefix_removes_job_directory(self, backend):
        backend.write_bytes("7/mesh_1.msh", b"a")
        backend.write_bytes("7/report_2.html", b"b")
        backend.write_bytes("8/mesh_3.msh", b"c")
        assert backend.delete_prefix("7") == 2
        assert not backend.exists("7/report_2.html")
        assert backend.exists("8/mesh_3.msh")
        assert backend.delete_prefix("7") == 0

    @pytest.mark.parametrize("key", ["", "/", "../secret", "7/../../etc/passwd", "./.."])
    def test_rejects_escaping_keys(self, backend, key):
        with pytest.raises(InvalidKeyError):
            backend.get_local_path(key)

    def test_normalize_key(self):
        assert normalize_key("/7//mesh_1.msh") == "7/mesh_1.msh"
        assert normalize_key("7\\mesh_1.msh") == "7/mesh_1.msh"

    def test_health_check(self, backend):
        assert backend.health_check() == "ok"


class TestAttachmentKeys:
    def test_key_layout(self):
        assert build_file_key(12, "report", "Final Report.HTML", now_ms=1700000000000) == "12/report_1700000000000.HTML"

    def test_unsafe_extension_dropped(self):
        assert build_file_key(3, "general", "notes.t xt", now_ms=5) == "3/general_5"
        assert build_file_key(3, "general", "README", now_ms=5) == "3/general_5"

    def test_save_upload(self, backend):
        key = save_upload(backend, 4, "mesh", "fork.msh", b"bytes")
        assert key.startswith("4/mesh_")
        assert backend.read_bytes(key) == b"bytes"

    @pytest.mark.parametrize(
        "key,expected",
        [
            ("1/report_1.html", "text/html"),
            ("1/report_1.HTM", "text/html"),
            ("1/general_1.pdf", "application/pdf"),
            ("1/result_log_1.log", "text/plain"),
            ("1/general_1.csv", "text/csv"),
            ("1/mesh_1", "application/octet-stream"),
        ],
    )
    def test_content_type_for(self, key, expected):
        assert content_type_for(key) == expected


class TestSoftFailCleanup:
    def test_remove_job_files(self, backend):
        backend.write_bytes("9/mesh_1.msh", b"x")
        assert remove_job_files(backend, 9) is True
        assert not backend.exists("9/mesh_1.msh")

    def test_remove_job_files_swallows_errors(self, backend, monkeypatch):
        def broken(prefix):
            raise OSError("read-only filesystem")

        monkeypatch.setattr(backend, "delete_prefix", broken)
        assert remove_job_files(backend, 9) is False

    def test_remove_file_swallows_errors(self, backend):
        assert remove_file(backend, "../outside", file_id=1) is False


class TestConfiguredBackend:
    def test_factory_and_settings_share_files_dir(self):
        backend = get_storage_backend()
        assert isinstance(backend, LocalBackend)
        assert backend.base_dir == os.path.abspath(settings.files_dir)

    def test_settings_carry_no_storage_selection(self):
        assert not {"storage_backend", "s3_bucket", "s3_region", "s3_endpoint_url"} & set(Settings.model_fields)
