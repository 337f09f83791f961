from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from secpipe.config import ImageSyncConfig
from secpipe.errors import ImageSyncFailure
from secpipe.runtime.images import list_local_images, missing_images, normalize_image, pull_image, sync_images

from conftest import FakeRuntime, failing


LOCAL = "example/lint:2.1\n<none>:<none>\nexample/scanner:latest\n\n"


@pytest.fixture
def no_retry_wait():
    with patch("secpipe.runtime.images.IMAGE_SYNC", ImageSyncConfig(PULL_ATTEMPTS=3, PULL_BACKOFF_MAX=0)), patch(
        "tenacity.nap.time.sleep"
    ) as sleep:
        yield sleep


@pytest.mark.unit
def test_normalize_image() -> None:
    assert normalize_image("example/lint") == "example/lint:latest"
    assert normalize_image("example/lint:2.1") == "example/lint:2.1"
    assert normalize_image("registry:5000/lint") == "registry:5000/lint:latest"
    assert normalize_image("lint@sha256:abc") == "lint@sha256:abc"


@pytest.mark.unit
def test_list_local_images_skips_dangling() -> None:
    runtime = FakeRuntime(images_output=LOCAL)

    assert list_local_images(runtime) == {"example/lint:2.1", "example/scanner:latest"}
    assert runtime.calls == [["images", "--format", "{{.Repository}}:{{.Tag}}"]]


@pytest.mark.unit
def test_list_local_images_records_listing() -> None:
    log = MagicMock()

    list_local_images(FakeRuntime(images_output=LOCAL), log)

    log.record_output.assert_called_once_with("images", LOCAL, "")


@pytest.mark.unit
def test_list_failure_is_image_sync_failure() -> None:
    runtime = FakeRuntime(lambda argv: failing(1, "daemon down"))

    with pytest.raises(ImageSyncFailure, match="daemon down"):
        list_local_images(runtime)


@pytest.mark.unit
def test_missing_images_dedupes_and_keeps_order() -> None:
    available = {"example/lint:2.1", "example/scanner:latest"}

    needed = ["example/publish:1.0", "example/scanner", "example/lint:2.1", "example/publish:1.0", "x/y:1"]

    assert missing_images(needed, available) == ["example/publish:1.0", "x/y:1"]


@pytest.mark.unit
def test_sync_pulls_only_missing() -> None:
    runtime = FakeRuntime(images_output=LOCAL)

    pulled = sync_images(runtime, ["example/lint:2.1", "example/publish:1.0"])

    assert pulled == ["example/publish:1.0"]
    assert runtime.calls[1:] == [["pull", "example/publish:1.0"]]


@pytest.mark.unit
def test_sync_with_everything_present_pulls_nothing() -> None:
    runtime = FakeRuntime(images_output=LOCAL)

    assert sync_images(runtime, ["example/lint:2.1"]) == []
    assert len(runtime.calls) == 1


@pytest.mark.unit
def test_pull_retries_then_succeeds(no_retry_wait) -> None:
    attempts = []

    def flaky(argv):
        if argv[0] == "pull":
            attempts.append(argv)
            if len(attempts) < 2:
                return failing(1, "TLS handshake timeout")
        return None

    pull_image(FakeRuntime(flaky), "example/publish:1.0")

    assert len(attempts) == 2


@pytest.mark.unit
def test_pull_gives_up_after_bounded_attempts(no_retry_wait) -> None:
    runtime = FakeRuntime(lambda argv: failing(1, "manifest unknown"))

    with pytest.raises(ImageSyncFailure) as exc_info:
        pull_image(runtime, "example/missing:9")

    assert len(runtime.calls) == 3
    assert exc_info.value.details == {"image": "example/missing:9", "attempts": 3, "stderr": "manifest unknown"}
