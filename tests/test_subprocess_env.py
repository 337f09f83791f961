from __future__ import annotations

import pytest

from secpipe.utils.subprocess_env import build_minimal_subprocess_env


@pytest.mark.unit
def test_only_allowlisted_keys_are_inherited(monkeypatch) -> None:
    monkeypatch.setenv("PATH", "/usr/bin")
    monkeypatch.setenv("DOCKER_HOST", "unix:///run/docker.sock")
    monkeypatch.setenv("DOJO_API_KEY", "secret")

    env = build_minimal_subprocess_env()

    assert env["PATH"] == "/usr/bin"
    assert env["DOCKER_HOST"] == "unix:///run/docker.sock"
    assert "DOJO_API_KEY" not in env


@pytest.mark.unit
def test_extra_allowlist_and_unsanitized(monkeypatch) -> None:
    monkeypatch.setenv("DOJO_API_KEY", "secret")

    assert build_minimal_subprocess_env(allowlist=["DOJO_API_KEY"])["DOJO_API_KEY"] == "secret"
    assert build_minimal_subprocess_env(sanitize_env=False)["DOJO_API_KEY"] == "secret"
