"""
Volume Manager
==============
Chooses and prepares the storage every container of a run mounts.

- External path: used as-is, no runtime call. Concurrent runs on the same
  host that share the path are serialized by a file lock.
- Ephemeral: a volume named data_<run_id> is created, then a helper container
  running as root chowns the mount to the service user so the non-root tool
  images can write to it.

Dry runs skip every runtime call but still compute the volume name.
"""

from __future__ import annotations

import hashlib
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional

from filelock import FileLock, Timeout
from loguru import logger

from secpipe.config import CONTAINER, PATHS, get_timeout
from secpipe.errors import PermissionFixFailure, StorageLockTimeout, VolumeCreateFailure
from secpipe.pipeline.context import RunContext
from secpipe.runtime.docker import ContainerRuntime


def volume_name(run_id: str) -> str:
    return f"{CONTAINER.VOLUME_PREFIX}{run_id}"


def perms_container_name(run_id: str) -> str:
    return f"{CONTAINER.PERMS_CONTAINER_PREFIX}{run_id}"


def permission_fix_args(volume: str, run_id: str) -> List[str]:
    """Arguments for the helper container that chowns the mounted volume."""
    owner = f"{CONTAINER.SERVICE_USER}:{CONTAINER.SERVICE_USER}"
    return [
        "run",
        "-v",
        f"{volume}:{CONTAINER.CONTAINER_ROOT}/",
        "--name",
        perms_container_name(run_id),
        "--user=root",
        "--rm",
        "--entrypoint",
        "chown",
        CONTAINER.BASE_IMAGE,
        "-R",
        owner,
        CONTAINER.CONTAINER_ROOT,
    ]


def lock_path_for(external_path: str, log_dir: str | Path | None = None) -> Path:
    """Lock file location for an external storage path."""
    resolved = str(Path(external_path).expanduser().resolve())
    digest = hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:16]
    return Path(log_dir or PATHS.LOG_DIR).expanduser() / "locks" / f"{digest}.lock"


@contextmanager
def storage_lock(
    context: RunContext,
    *,
    log_dir: str | Path | None = None,
    timeout: Optional[int] = None,
    log: Any = None,
) -> Iterator[Optional[Path]]:
    """Hold the external-path lock for the body of the `with` block.

    Yields the lock file path, or None when no lock is needed (ephemeral
    storage or dry run).

    Raises:
        StorageLockTimeout: When another run holds the path past the timeout.
    """
    out = log or logger
    external = context.request.volume
    if not external or context.dry_run:
        yield None
        return

    path = lock_path_for(external, log_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    wait = int(timeout) if timeout is not None else get_timeout("lock")
    lock = FileLock(str(path), timeout=wait)
    try:
        lock.acquire()
    except Timeout as e:
        raise StorageLockTimeout(
            f"External path {external} is in use by another run (waited {wait}s)",
            {"path": external, "lock_file": str(path)},
        ) from e

    out.debug("Holding storage lock {} for {}", path, external)
    try:
        yield path
    finally:
        lock.release()


def prepare_storage(context: RunContext, runtime: ContainerRuntime, log: Any = None) -> str:
    """Return the mount source for the run, creating and chowning a volume if needed.

    Sets context.mount_source, and context.volume_created when a volume was
    actually created.

    Raises:
        VolumeCreateFailure: When `volume create` fails.
        PermissionFixFailure: When the chown helper container fails.
    """
    out = log or logger
    request = context.request

    if request.volume:
        context.mount_source = request.volume
        out.info("Using external path {} as run storage", request.volume)
        return request.volume

    volume = volume_name(context.run_id)
    context.mount_source = volume

    if context.dry_run:
        out.info("[dry run] Would create volume {} and set ownership to {}", volume, CONTAINER.SERVICE_USER)
        return volume

    result = runtime.run(["volume", "create", volume], timeout=get_timeout("runtime"))
    _record(out, f"volume create {volume}", result)
    if not result.success:
        raise VolumeCreateFailure(
            f"Unable to create data volume {volume}: {result.error_text()}",
            {"volume": volume, "stderr": result.stderr, "returncode": result.returncode},
        )
    context.volume_created = True
    out.info("Created volume {}", volume)

    helper = perms_container_name(context.run_id)
    result = runtime.run(permission_fix_args(volume, context.run_id), timeout=get_timeout("runtime"))
    _record(out, helper, result)
    if not result.success:
        raise PermissionFixFailure(
            f"Unable to set file permissions on data volume {volume}: {result.error_text()}",
            {"volume": volume, "container_name": helper, "stderr": result.stderr, "returncode": result.returncode},
        )
    out.info("Set file permissions on volume {}", volume)
    return volume


def _record(log: Any, label: str, result: Any) -> None:
    recorder = getattr(log, "record_output", None)
    if callable(recorder):
        recorder(label, result.stdout, result.stderr)
