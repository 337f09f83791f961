"""
Shared test fixtures
====================
Catalog fixtures and a fake container runtime that records every call.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pytest
import yaml

from secpipe.catalog.loader import parse_pipeline_catalog, parse_tool_catalog
from secpipe.catalog.models import PipelineCatalog, ToolCatalog
from secpipe.runtime.docker import ExecResult


TOOLS: Dict[str, dict] = {
    "tools": {
        "fetch": {
            "docker": "example/fetch:1.0",
            "parameters": {
                "GIT_URL": {"type": "runtime", "data_type": "url", "description": "Repository"},
                "LOC": {"type": "runtime", "data_type": "string", "description": "Checkout dir"},
            },
            "commands": {"exec": "git clone"},
            "profiles": {"default": "$GIT_URL $LOC"},
        },
        "lint": {
            "docker": "example/lint:2.1",
            "commands": {"exec": "lint-cli {reportname}", "reportname": "out.json"},
            "profiles": {"default": "--strict", "fast": "--quick"},
        },
        "scanner": {
            "docker": "example/scanner:latest",
            "parameters": {
                "LOC": {"type": "runtime", "data_type": "string", "description": "Source location"},
                "DEPTH": {"type": "config", "data_type": "int", "description": "Depth"},
            },
            "commands": {"exec": "scan $LOC"},
            "profiles": {"default": "", "deep": "--depth $DEPTH"},
        },
        "publish": {
            "docker": "example/publish:1.0",
            "commands": {
                "pre": "prepare",
                "exec": "upload {archive}",
                "archive": "run_{timestamp}.tgz",
                "report": "--summary",
                "post": "cleanup",
            },
            "profiles": {"default": "--all"},
        },
    }
}

PIPELINES: Dict[str, dict] = {
    "profiles": {
        "quick-scan": {
            "pipeline": [{"tool": "lint", "tool-profile": "default"}],
        },
        "full": {
            "startup": [{"tool": "fetch", "tool-profile": "default"}],
            "pipeline": [
                {"tool": "lint", "tool-profile": "default"},
                {"tool": "scanner", "tool-profile": "default"},
            ],
            "final": [{"tool": "publish", "tool-profile": "default"}],
            "runevery": [{"tool": "fetch", "tool-profile": "default"}],
        },
        "empty": {
            "startup": [{"tool": "fetch", "tool-profile": "default"}],
            "pipeline": [],
        },
        "bad-tool": {
            "pipeline": [{"tool": "nope", "tool-profile": "default"}],
        },
        "bad-tool-profile": {
            "startup": [{"tool": "fetch", "tool-profile": "default"}],
            "pipeline": [{"tool": "lint", "tool-profile": "missing"}],
        },
        "twice": {
            "pipeline": [
                {"tool": "lint", "tool-profile": "default"},
                {"tool": "lint", "tool-profile": "fast"},
            ],
        },
        "runevery-bad-tool": {
            "pipeline": [{"tool": "lint", "tool-profile": "default"}],
            "runevery": [{"tool": "nope", "tool-profile": "default"}],
        },
        "runevery-bad-tool-profile": {
            "pipeline": [{"tool": "lint", "tool-profile": "default"}],
            "runevery": [{"tool": "publish", "tool-profile": "missing"}],
        },
        "runevery-only-publish": {
            "pipeline": [{"tool": "lint", "tool-profile": "default"}],
            "runevery": [{"tool": "publish", "tool-profile": "default"}],
        },
    }
}


class FakeRuntime:
    """Stands in for ContainerRuntime; succeeds unless a handler says otherwise."""

    def __init__(
        self,
        handler: Optional[Callable[[List[str]], Optional[ExecResult]]] = None,
        *,
        images_output: str = "",
        binary: str = "docker",
    ):
        self.binary = binary
        self.handler = handler
        self.images_output = images_output
        self.calls: List[List[str]] = []
        self.timeouts: List[Optional[int]] = []

    def available(self) -> bool:
        return True

    def run(self, args: Sequence[str], *, timeout: Optional[int] = None) -> ExecResult:
        argv = [str(a) for a in args]
        self.calls.append(argv)
        self.timeouts.append(timeout)
        if self.handler is not None:
            result = self.handler(argv)
            if result is not None:
                return result
        if argv[:1] == ["images"]:
            return ExecResult(args=(self.binary, *argv), returncode=0, stdout=self.images_output)
        return ExecResult(args=(self.binary, *argv), returncode=0, stdout="ok\n")

    def container_runs(self) -> List[List[str]]:
        """`run` calls for tool containers (excludes the permission helper)."""
        return [c for c in self.calls if c[:1] == ["run"] and "--entrypoint" not in c]

    def container_names(self) -> List[str]:
        return [c[c.index("--name") + 1] for c in self.container_runs()]


def failing(returncode: int = 1, stderr: str = "boom") -> ExecResult:
    return ExecResult(args=("docker",), returncode=returncode, stderr=stderr)


@pytest.fixture
def tool_catalog() -> ToolCatalog:
    return parse_tool_catalog(TOOLS)


@pytest.fixture
def pipeline_catalog() -> PipelineCatalog:
    return parse_pipeline_catalog(PIPELINES)


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    return tmp_path / "logs"


@pytest.fixture
def catalog_dir(tmp_path: Path) -> Path:
    d = tmp_path / "catalogs"
    d.mkdir()
    (d / "pipelines.yaml").write_text(yaml.safe_dump(PIPELINES, sort_keys=False), encoding="utf-8")
    (d / "tools.yaml").write_text(yaml.safe_dump(TOOLS, sort_keys=False), encoding="utf-8")
    return d
