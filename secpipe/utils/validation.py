"""
Validation Utilities
====================
Checks for the host paths a run mounts into its containers.

The runtime reads a relative -v source as a named volume, so host paths are
always handed over absolute.
"""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from secpipe.errors import InvalidHostPath
from secpipe.pipeline.request import RunRequest


MOUNT_FIELDS = ("volume", "source_path", "report_path")


def resolve_host_dir(
    path: Union[str, Path],
    *,
    field: str,
    must_exist: bool = True,
) -> str:
    """
    Validate a host directory used as a bind mount and return it absolute.

    Args:
        path: Path as given by the user
        field: Request field the path came from, for error messages
        must_exist: If True, the path must be an existing directory

    Raises:
        InvalidHostPath: If the path is empty, contains ':' or fails the existence check
    """
    text = str(path).strip()
    if not text:
        raise InvalidHostPath(f"{field}: path cannot be empty", {"field": field})
    if ":" in text:
        # ':' separates source and target in a -v mount spec
        raise InvalidHostPath(f"{field}: path may not contain ':': {text}", {"field": field, "path": text})

    resolved = Path(text).expanduser().resolve()
    if must_exist:
        if not resolved.exists():
            raise InvalidHostPath(f"{field}: path does not exist: {resolved}", {"field": field, "path": str(resolved)})
        if not resolved.is_dir():
            raise InvalidHostPath(f"{field}: path is not a directory: {resolved}", {"field": field, "path": str(resolved)})
    return str(resolved)


def resolve_request_paths(request: RunRequest, *, must_exist: Optional[bool] = None) -> RunRequest:
    """Return a copy of the request with every mount path absolute and checked.

    Existence is only required for live runs unless must_exist is given.
    """
    check = (not request.dry_run) if must_exist is None else must_exist
    changes = {}
    for field in MOUNT_FIELDS:
        value = getattr(request, field)
        if value:
            resolved = resolve_host_dir(value, field=field, must_exist=check)
            if resolved != value:
                logger.debug("{}: {} -> {}", field, value, resolved)
            changes[field] = resolved
    return dataclasses.replace(request, **changes) if changes else request
