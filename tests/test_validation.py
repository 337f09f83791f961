"""
Tests for Validation Utilities
==============================
"""

import pytest

from secpipe.errors import InvalidHostPath
from secpipe.pipeline.request import RunRequest
from secpipe.utils.validation import resolve_host_dir, resolve_request_paths


@pytest.mark.unit
class TestResolveHostDir:
    """Tests for resolve_host_dir function."""

    def test_existing_directory_is_returned_absolute(self, tmp_path, monkeypatch):
        (tmp_path / "code").mkdir()
        monkeypatch.chdir(tmp_path)

        assert resolve_host_dir("code", field="source_path") == str((tmp_path / "code").resolve())

    def test_empty_path_raises(self):
        with pytest.raises(InvalidHostPath, match="cannot be empty"):
            resolve_host_dir("  ", field="volume")

    def test_colon_is_rejected(self, tmp_path):
        with pytest.raises(InvalidHostPath, match="may not contain ':'") as exc_info:
            resolve_host_dir(f"{tmp_path}:/etc", field="report_path")
        assert exc_info.value.details["field"] == "report_path"

    def test_missing_path_raises(self, tmp_path):
        with pytest.raises(InvalidHostPath, match="does not exist"):
            resolve_host_dir(tmp_path / "nope", field="volume")

    def test_file_is_not_a_directory(self, tmp_path):
        f = tmp_path / "file.txt"
        f.write_text("x")
        with pytest.raises(InvalidHostPath, match="not a directory"):
            resolve_host_dir(f, field="volume")

    def test_missing_path_allowed_without_existence_check(self, tmp_path):
        assert resolve_host_dir(tmp_path / "later", field="volume", must_exist=False) == str(
            (tmp_path / "later").resolve()
        )


@pytest.mark.unit
class TestResolveRequestPaths:
    """Tests for resolve_request_paths function."""

    def test_request_without_paths_is_unchanged(self):
        request = RunRequest(profile="p", app_name="a")
        assert resolve_request_paths(request) is request

    def test_live_run_requires_existing_paths(self, tmp_path):
        request = RunRequest(profile="p", app_name="a", source_path=str(tmp_path / "missing"))
        with pytest.raises(InvalidHostPath):
            resolve_request_paths(request)

    def test_dry_run_only_normalizes(self, tmp_path):
        request = RunRequest(profile="p", app_name="a", dry_run=True, volume=str(tmp_path / "missing"))

        resolved = resolve_request_paths(request)

        assert resolved.volume == str((tmp_path / "missing").resolve())
        assert request.volume == str(tmp_path / "missing")

    def test_every_mount_field_is_resolved(self, tmp_path):
        for name in ("data", "src", "rpt"):
            (tmp_path / name).mkdir()
        request = RunRequest(
            profile="p",
            app_name="a",
            volume=str(tmp_path / "data"),
            source_path=str(tmp_path / "src"),
            report_path=str(tmp_path / "rpt"),
        )

        resolved = resolve_request_paths(request)

        assert resolved.report_path == str((tmp_path / "rpt").resolve())
        assert resolved.source_path == str((tmp_path / "src").resolve())
        assert resolved.volume == str((tmp_path / "data").resolve())
