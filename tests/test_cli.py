from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from loguru import logger

from secpipe import cli

from conftest import FakeRuntime, failing


@pytest.fixture(autouse=True)
def restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


def _argv(catalog_dir: Path, log_dir: Path, *extra: str) -> list:
    return ["run", "--catalog-dir", str(catalog_dir), "--log-dir", str(log_dir), *extra]


@pytest.mark.unit
def test_no_subcommand_prints_help(capsys) -> None:
    assert cli.main([]) == cli.EXIT_USAGE
    assert "usage: secpipe" in capsys.readouterr().out


@pytest.mark.unit
def test_version_flag(capsys) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["--version"])
    assert exc_info.value.code == 0
    assert "secpipe" in capsys.readouterr().out


@pytest.mark.unit
def test_missing_app_name_is_a_usage_error(catalog_dir: Path, log_dir: Path) -> None:
    assert cli.main(_argv(catalog_dir, log_dir, "--profile", "quick-scan")) == cli.EXIT_USAGE


@pytest.mark.unit
def test_missing_profile_is_a_usage_error(catalog_dir: Path, log_dir: Path) -> None:
    assert cli.main(_argv(catalog_dir, log_dir, "--app-name", "demo")) == cli.EXIT_USAGE


@pytest.mark.unit
@patch("secpipe.runtime.prereqs.shutil.which", return_value=None)
def test_dry_run_needs_no_runtime(mock_which, catalog_dir: Path, log_dir: Path) -> None:
    code = cli.main(
        _argv(
            catalog_dir,
            log_dir,
            "--profile",
            "full",
            "--app-name",
            "demo",
            "--dry-run",
            "--params",
            "GIT_URL=https://example.com/app.git LOC=/opt/appsecpipeline/source",
        )
    )

    assert code == cli.EXIT_OK
    summaries = list(log_dir.glob("*_run.json"))
    assert len(summaries) == 1
    payload = json.loads(summaries[0].read_text(encoding="utf-8"))
    assert payload["request"]["dry_run"] is True
    assert [launch["tool"] for launch in payload["launches"]] == ["fetch", "lint", "scanner", "publish"]
    assert list(log_dir.glob("secpipe_*.log"))


@pytest.mark.unit
@patch("secpipe.runtime.prereqs.shutil.which", return_value=None)
def test_live_run_without_runtime_fails(mock_which, catalog_dir: Path, log_dir: Path) -> None:
    code = cli.main(_argv(catalog_dir, log_dir, "--profile", "quick-scan", "--app-name", "demo"))
    assert code == cli.EXIT_RUN_FAILED


@pytest.mark.unit
@patch("secpipe.runtime.prereqs.shutil.which", return_value=None)
def test_unknown_profile_fails(mock_which, catalog_dir: Path, log_dir: Path) -> None:
    code = cli.main(_argv(catalog_dir, log_dir, "--profile", "nope", "--app-name", "demo", "--dry-run"))
    assert code == cli.EXIT_RUN_FAILED


@pytest.mark.unit
@patch("secpipe.runtime.prereqs.shutil.which", return_value="/usr/bin/docker")
def test_live_run_uses_runtime_and_reports_failure(mock_which, catalog_dir: Path, log_dir: Path) -> None:
    runtime = FakeRuntime(lambda argv: failing(3, "lint crashed") if "example/lint:2.1" in argv and argv[0] == "run" else None)

    with patch("secpipe.cli.ContainerRuntime", return_value=runtime):
        code = cli.main(_argv(catalog_dir, log_dir, "--profile", "quick-scan", "--app-name", "demo"))

    assert code == cli.EXIT_RUN_FAILED
    assert len(runtime.container_runs()) == 1


@pytest.mark.unit
@patch("secpipe.runtime.prereqs.shutil.which", return_value="/usr/bin/docker")
def test_live_run_success_with_skip_image_sync(mock_which, catalog_dir: Path, log_dir: Path) -> None:
    runtime = FakeRuntime()

    with patch("secpipe.cli.ContainerRuntime", return_value=runtime):
        code = cli.main(
            _argv(catalog_dir, log_dir, "--profile", "quick-scan", "--app-name", "demo", "--skip-image-sync", "--keep")
        )

    assert code == cli.EXIT_OK
    assert runtime.calls[0][:2] == ["volume", "create"]
    assert "--rm" not in runtime.container_runs()[0]


@pytest.mark.unit
def test_request_from_args_maps_flags() -> None:
    args = cli.build_parser().parse_args(
        [
            "run",
            "--profile",
            " quick-scan ",
            "--app-name",
            "demo",
            "--src",
            "/code",
            "--report",
            "/reports",
            "--tool-profile",
            "fast",
            "--strict-tokens",
        ]
    )

    request = cli.request_from_args(args)

    assert request.profile == "quick-scan"
    assert request.source_path == "/code"
    assert request.report_path == "/reports"
    assert request.tool_profile_override == "fast"
    assert request.strict_tokens is True
    assert request.volume is None
