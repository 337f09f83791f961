"""
Prerequisite Checks
===================
Verifies, once before a run, that the runtime binary and the catalog files
are available.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from loguru import logger

from secpipe.catalog.loader import catalog_paths
from secpipe.config import CONTAINER
from secpipe.errors import DependencyMissing


def missing_binaries(binaries: Iterable[str]) -> List[str]:
    return [b for b in binaries if shutil.which(b) is None]


def missing_files(paths: Iterable[Path]) -> List[str]:
    return [str(p) for p in paths if not Path(p).is_file()]


def check_dependencies(
    catalog_dir: str | Path | None = None,
    *,
    require_runtime: bool = True,
    runtime_binary: Optional[str] = None,
) -> None:
    """Raise DependencyMissing listing everything that is absent.

    Args:
        catalog_dir: Directory holding the main catalog files.
        require_runtime: False for dry runs, which never call the runtime.
        runtime_binary: Override CONTAINER.RUNTIME_BINARY.
    """
    paths = catalog_paths(catalog_dir)
    binaries = [runtime_binary or CONTAINER.RUNTIME_BINARY] if require_runtime else []

    bins = missing_binaries(binaries)
    files = missing_files([paths.pipeline_file, paths.tool_file])
    if bins or files:
        parts = []
        if bins:
            parts.append(f"binaries not on PATH: {', '.join(bins)}")
        if files:
            parts.append(f"catalog files not found: {', '.join(files)}")
        raise DependencyMissing(
            "Missing dependencies: " + "; ".join(parts),
            {"binaries": bins, "files": files},
        )
    logger.debug("All dependencies are available")
