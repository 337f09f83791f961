from __future__ import annotations

import json
from pathlib import Path

import pytest

from secpipe.catalog.models import Stage
from secpipe.errors import ContainerLaunchFailure
from secpipe.pipeline.context import LaunchRecord, RunContext, RunState
from secpipe.pipeline.request import RunRequest


def _ctx(**kwargs) -> RunContext:
    return RunContext(request=RunRequest(profile="p", app_name="a", **kwargs))


@pytest.mark.unit
def test_run_id_is_unique_per_context() -> None:
    assert _ctx().run_id != _ctx().run_id


@pytest.mark.unit
def test_mark_checkpoint_ignores_blank_name() -> None:
    ctx = _ctx()
    ctx.mark_checkpoint(" ")
    ctx.mark_checkpoint("")
    assert ctx.checkpoints == {}


@pytest.mark.unit
def test_transition_follows_stage_order_and_checkpoints() -> None:
    ctx = _ctx()

    for state in (RunState.STARTUP, RunState.PIPELINE, RunState.FINAL, RunState.DONE):
        ctx.transition(state)

    assert ctx.state is RunState.DONE
    assert ctx.is_finished
    assert set(ctx.checkpoints) == {"startup", "pipeline", "final", "done"}


@pytest.mark.unit
def test_transition_rejects_skipping_a_stage() -> None:
    ctx = _ctx()
    with pytest.raises(ValueError, match="init -> pipeline"):
        ctx.transition(RunState.PIPELINE)


@pytest.mark.unit
def test_aborted_is_terminal() -> None:
    ctx = _ctx()
    ctx.transition(RunState.STARTUP)
    ctx.transition(RunState.ABORTED)

    with pytest.raises(ValueError):
        ctx.transition(RunState.PIPELINE)


@pytest.mark.unit
def test_container_names_get_suffix_on_repeat() -> None:
    ctx = _ctx()

    names = [ctx.next_container_name("lint"), ctx.next_container_name("lint"), ctx.next_container_name("git")]

    assert names == [f"lint_{ctx.run_id}", f"lint_{ctx.run_id}_2", f"git_{ctx.run_id}"]


@pytest.mark.unit
def test_record_launch_tracks_only_real_containers() -> None:
    ctx = _ctx()
    ctx.record_launch(LaunchRecord("pipeline", "a", "d", "a_1", "cmd", ["docker"], dry_run=True))
    ctx.record_launch(LaunchRecord("pipeline", "b", "d", "b_1", "cmd", ["docker"]))

    assert ctx.launched_containers == ["b_1"]
    assert len(ctx.launches) == 2


@pytest.mark.unit
def test_record_error_marks_failure_with_stage_and_tool() -> None:
    ctx = _ctx()
    err = ContainerLaunchFailure("failed", container_name="b_1", stderr="nope")

    ctx.record_error(err, stage=Stage.STARTUP, tool="b")

    assert ctx.success is False
    assert ctx.errors[0]["kind"] == "ContainerLaunchFailure"
    assert ctx.errors[0]["details"] == {"container_name": "b_1", "stderr": "nope", "stage": "startup", "tool": "b"}
    assert "stage" not in err.details


@pytest.mark.unit
def test_write_json_writes_summary(tmp_path: Path) -> None:
    ctx = _ctx(dry_run=True)
    ctx.mark_checkpoint("start")
    ctx.mount_source = "data_x"

    out = tmp_path / "logs" / f"{ctx.run_id}_run.json"
    ctx.write_json(out)

    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["run_id"] == ctx.run_id
    assert payload["state"] == "init"
    assert payload["request"]["dry_run"] is True
    assert payload["mount_source"] == "data_x"
    assert "start" in payload["checkpoints"]
