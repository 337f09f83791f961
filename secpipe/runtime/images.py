"""
Image Sync
==========
Makes sure every image a run needs is present locally.

List local images, diff against the images of the resolved tools, pull the
missing ones. Pulls are retried with exponential backoff; listing is not.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Set

from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from secpipe.config import IMAGE_SYNC, get_timeout
from secpipe.errors import ImageSyncFailure
from secpipe.runtime.docker import ContainerRuntime


LIST_FORMAT = "{{.Repository}}:{{.Tag}}"


class _PullFailed(Exception):
    def __init__(self, image: str, stderr: str):
        super().__init__(f"docker pull {image} failed: {stderr}")
        self.image = image
        self.stderr = stderr


def normalize_image(ref: str) -> str:
    """Add the implicit ':latest' tag so refs compare the way docker lists them."""
    last = ref.rsplit("/", 1)[-1]
    if "@" in last or ":" in last:
        return ref
    return f"{ref}:latest"


def list_local_images(runtime: ContainerRuntime, log: Any = None) -> Set[str]:
    """Return local images as 'repository:tag' strings.

    The listing output goes to the run's detailed log when `log` records output.

    Raises:
        ImageSyncFailure: When the listing call fails.
    """
    result = runtime.run(["images", "--format", LIST_FORMAT], timeout=get_timeout("runtime"))
    _record(log, "images", result)
    if not result.success:
        raise ImageSyncFailure(
            f"Unable to list local images: {result.error_text()}",
            {"stderr": result.stderr, "returncode": result.returncode},
        )
    images: Set[str] = set()
    for line in result.stdout.splitlines():
        line = line.strip()
        if not line or "<none>" in line:
            continue
        images.add(line)
    return images


def missing_images(needed: Iterable[str], available: Set[str]) -> List[str]:
    """Images in `needed` (first-seen order, deduplicated) not in `available`."""
    out: List[str] = []
    for image in needed:
        if normalize_image(image) in available or image in available or image in out:
            continue
        out.append(image)
    return out


def pull_image(runtime: ContainerRuntime, image: str, log: Any = None) -> None:
    """Pull one image, retrying a bounded number of times.

    Raises:
        ImageSyncFailure: When every attempt failed.
    """
    out = log or logger
    attempts = max(1, int(IMAGE_SYNC.PULL_ATTEMPTS))

    @retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=1, max=IMAGE_SYNC.PULL_BACKOFF_MAX),
        retry=retry_if_exception_type(_PullFailed),
        before_sleep=lambda retry_state: out.warning(
            "Pull of {} failed, retry {}/{}", image, retry_state.attempt_number, attempts
        ),
        reraise=True,
    )
    def _do_pull() -> None:
        result = runtime.run(["pull", image], timeout=get_timeout("pull"))
        _record(out, f"pull {image}", result)
        if not result.success:
            raise _PullFailed(image, result.error_text())

    try:
        _do_pull()
    except _PullFailed as e:
        raise ImageSyncFailure(
            f"Unable to pull image {image} after {attempts} attempt(s): {e.stderr}",
            {"image": image, "attempts": attempts, "stderr": e.stderr},
        ) from e


def sync_images(runtime: ContainerRuntime, needed: Iterable[str], log: Any = None) -> List[str]:
    """Pull every needed image that is not available locally.

    Returns:
        The images that were pulled.
    """
    out = log or logger
    needed_list = list(needed)
    missing = missing_images(needed_list, list_local_images(runtime, out))
    if not missing:
        out.info("All {} tool image(s) are available locally", len(set(needed_list)))
        return []

    for image in missing:
        out.info("Pulling image {}", image)
        pull_image(runtime, image, out)
    out.info("Pulled {} missing image(s)", len(missing))
    return missing


def _record(log: Any, label: str, result: Any) -> None:
    recorder = getattr(log, "record_output", None)
    if callable(recorder):
        recorder(label, result.stdout, result.stderr)
