"""
Run Logging
===========
loguru sinks for secpipe.

configure_logging() installs the process-wide console sink and a timestamped
main log file. RunLog is the per-run logging context: it is opened when a run
starts, closed when it ends, and passed to every component that logs on the
run's behalf. Its detailed sink receives the captured output of every runtime
call made for the run.
"""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from secpipe.config import LOGGING, PATHS


CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[run_id]} | {message}"
DETAILED_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {message}"


def _not_detailed(record: Any) -> bool:
    return not record["extra"].get("detailed", False)


def configure_logging(
    log_dir: str | Path | None = None,
    *,
    level: Optional[str] = None,
    file_level: Optional[str] = None,
    write_file: bool = True,
) -> Optional[Path]:
    """Install the console sink and, optionally, the main log file.

    Returns:
        Path of the main log file (secpipe_<ns>.log), or None when not written.
    """
    logger.remove()
    logger.configure(extra={"run_id": "-"})
    logger.add(sys.stderr, level=(level or LOGGING.LEVEL), format=CONSOLE_FORMAT, filter=_not_detailed)

    if not write_file:
        return None

    directory = Path(log_dir or PATHS.LOG_DIR).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    main_log = directory / f"secpipe_{time.time_ns()}.log"
    logger.add(str(main_log), level=(file_level or LOGGING.FILE_LEVEL), format=FILE_FORMAT, filter=_not_detailed)
    return main_log


class RunLog:
    """Logging context owned by one run.

    Example:
        with RunLog(run_id, log_dir) as run_log:
            run_log.info("Starting {}", profile)
            run_log.record_output("bandit_1a2b", result.stdout, result.stderr)
    """

    def __init__(self, run_id: str, log_dir: str | Path | None = None):
        self.run_id = run_id
        self.log_dir = Path(log_dir or PATHS.LOG_DIR).expanduser()
        self.detailed_path = self.log_dir / f"{run_id}_detailed.log"
        self._logger = logger.bind(run_id=run_id)
        self._detail = logger.bind(run_id=run_id, detailed=True)
        self._sink_id: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self._sink_id is not None

    def open(self) -> "RunLog":
        if self._sink_id is not None:
            return self
        self.log_dir.mkdir(parents=True, exist_ok=True)
        run_id = self.run_id
        self._sink_id = logger.add(
            str(self.detailed_path),
            level="DEBUG",
            format=DETAILED_FORMAT,
            filter=lambda record: record["extra"].get("run_id") == run_id,
            mode="a",
        )
        self._logger.debug("Detailed log: {}", self.detailed_path)
        return self

    def close(self) -> None:
        if self._sink_id is None:
            return
        sink_id, self._sink_id = self._sink_id, None
        logger.remove(sink_id)

    def __enter__(self) -> "RunLog":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        self._logger.error(message, *args, **kwargs)

    def record_output(self, label: str, stdout: str, stderr: str) -> None:
        """Append a runtime call's captured streams to the detailed log only."""
        if not self.is_open:
            return
        # raw: written verbatim, without the sink format
        if stdout:
            self._detail.opt(raw=True).debug(f"--- {label} stdout ---\n{stdout.rstrip()}\n")
        if stderr:
            self._detail.opt(raw=True).debug(f"--- {label} stderr ---\n{stderr.rstrip()}\n")
