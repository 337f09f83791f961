"""
Container Runtime
=================
Thin wrapper around the docker-compatible CLI.

This is the only module that spawns a subprocess. Calls never raise for a
failing command: the outcome (return code, captured streams, timeout or spawn
error) comes back as an ExecResult and callers turn it into a typed error.
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from loguru import logger

from secpipe.config import CONTAINER, TIMEOUTS
from secpipe.utils.subprocess_env import build_minimal_subprocess_env


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


@dataclass(frozen=True)
class ExecResult:
    """Outcome of one runtime call."""

    args: Tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    spawn_error: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.spawn_error

    def error_text(self) -> str:
        """Best description of why the call failed."""
        if self.spawn_error:
            return self.spawn_error
        return self.stderr.strip() or self.stdout.strip() or f"exit status {self.returncode}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "args": list(self.args),
            "returncode": self.returncode,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "timed_out": self.timed_out,
            "spawn_error": self.spawn_error,
        }


class ContainerRuntime:
    """Runs docker CLI subcommands with a bounded wait."""

    def __init__(self, binary: Optional[str] = None, *, sanitize_env: bool = True):
        self.binary = binary or CONTAINER.RUNTIME_BINARY
        self.sanitize_env = sanitize_env

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def run(self, args: Sequence[str], *, timeout: Optional[int] = None) -> ExecResult:
        """Run `<binary> <args...>` and wait at most `timeout` seconds.

        Args:
            args: Subcommand and its arguments, e.g. ["volume", "create", "data_x"].
            timeout: Seconds to wait; defaults to TIMEOUTS.RUNTIME_CALL.
        """
        argv = (self.binary, *[str(a) for a in args])
        timeout_seconds = int(timeout) if timeout is not None else int(TIMEOUTS.RUNTIME_CALL)
        env = build_minimal_subprocess_env(sanitize_env=self.sanitize_env)

        logger.debug("Runtime call: {}", " ".join(argv))
        try:
            result = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout_seconds,
                env=env,
                stdin=subprocess.DEVNULL,
                close_fds=True,
                start_new_session=True,
            )
        except subprocess.TimeoutExpired as e:
            stderr = _to_text(e.stderr)
            if stderr:
                stderr = stderr.rstrip("\n") + "\n"
            stderr += f"Execution timed out after {timeout_seconds} seconds"
            return ExecResult(
                args=argv,
                returncode=-1,
                stdout=_to_text(e.stdout),
                stderr=stderr,
                timed_out=True,
            )
        except OSError as e:
            return ExecResult(
                args=argv,
                returncode=-1,
                spawn_error=f"Execution failed: {type(e).__name__}: {e}",
            )

        return ExecResult(
            args=argv,
            returncode=int(result.returncode),
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )
