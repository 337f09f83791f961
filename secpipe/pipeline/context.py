"""Pipeline run context.

This module defines the state object owned by one orchestrator run: the
resolved stages and tools, the storage mount, every launched container and
the run outcome.

It stores only stable primitives in its payload so the run summary written
next to the logs can be read back by operators and tools.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from secpipe.catalog.models import Stage, StageEntry, ToolDefinition
from secpipe.errors import SecPipeError
from secpipe.pipeline.request import RunRequest


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RunState(str, Enum):
    INIT = "init"
    STARTUP = "startup"
    PIPELINE = "pipeline"
    FINAL = "final"
    DONE = "done"
    ABORTED = "aborted"


_TRANSITIONS: Dict[RunState, Tuple[RunState, ...]] = {
    RunState.INIT: (RunState.STARTUP, RunState.ABORTED),
    RunState.STARTUP: (RunState.PIPELINE, RunState.ABORTED),
    RunState.PIPELINE: (RunState.FINAL, RunState.ABORTED),
    RunState.FINAL: (RunState.DONE, RunState.ABORTED),
    RunState.DONE: (),
    RunState.ABORTED: (),
}

# Running state that walks each scheduled stage
STAGE_STATES: Dict[Stage, RunState] = {
    Stage.STARTUP: RunState.STARTUP,
    Stage.PIPELINE: RunState.PIPELINE,
    Stage.FINAL: RunState.FINAL,
}


@dataclass
class LaunchRecord:
    """One container launch (or dry-run launch) and its outcome."""

    stage: str
    tool: str
    tool_profile: str
    container_name: str
    command: str
    argv: List[str]
    dry_run: bool = False
    returncode: Optional[int] = None
    success: bool = False
    started_at: str = field(default_factory=_utc_now_iso)
    finished_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RunContext:
    """Mutable state for one run; never shared across runs."""

    request: RunRequest
    stages: Dict[Stage, Tuple[StageEntry, ...]] = field(default_factory=dict)
    tools: Dict[str, ToolDefinition] = field(default_factory=dict)
    bound_parameters: Dict[str, Dict[str, str]] = field(default_factory=dict)

    run_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: str = field(default_factory=_utc_now_iso)
    state: RunState = RunState.INIT

    mount_source: Optional[str] = None
    volume_created: bool = False
    launched_containers: List[str] = field(default_factory=list)
    launches: List[LaunchRecord] = field(default_factory=list)

    success: bool = True
    errors: List[Dict[str, Any]] = field(default_factory=list)
    checkpoints: Dict[str, str] = field(default_factory=dict)

    _name_counts: Dict[str, int] = field(default_factory=dict, repr=False)

    @property
    def dry_run(self) -> bool:
        return self.request.dry_run

    @property
    def keep(self) -> bool:
        return self.request.keep

    @property
    def is_finished(self) -> bool:
        return self.state in (RunState.DONE, RunState.ABORTED)

    def entries(self, stage: Stage) -> Tuple[StageEntry, ...]:
        return self.stages.get(stage, ())

    def mark_checkpoint(self, name: str) -> None:
        if not name.strip():
            return
        self.checkpoints[name] = _utc_now_iso()

    def transition(self, state: RunState) -> None:
        """Move to `state`, recording a checkpoint.

        Raises:
            ValueError: For a transition the state machine does not allow.
        """
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Invalid run state transition {self.state.value} -> {state.value}")
        self.state = state
        self.mark_checkpoint(state.value)

    def next_container_name(self, tool: str) -> str:
        """<tool>_<run_id>, with a _<n> suffix for repeat launches of the same tool."""
        count = self._name_counts.get(tool, 0) + 1
        self._name_counts[tool] = count
        base = f"{tool}_{self.run_id}"
        return base if count == 1 else f"{base}_{count}"

    def record_launch(self, record: LaunchRecord) -> None:
        self.launches.append(record)
        if not record.dry_run:
            self.launched_containers.append(record.container_name)

    def record_error(
        self,
        error: SecPipeError,
        *,
        stage: Optional[Stage] = None,
        tool: Optional[str] = None,
    ) -> None:
        payload = error.to_dict()
        if stage is not None:
            payload["details"].setdefault("stage", stage.value)
        if tool is not None:
            payload["details"].setdefault("tool", tool)
        self.errors.append(payload)
        self.success = False

    def to_payload(self) -> Dict[str, Any]:
        return {
            "schema_version": "1.0",
            "run_id": self.run_id,
            "created_at": self.created_at,
            "state": self.state.value,
            "success": self.success,
            "request": self.request.to_dict(),
            "stages": {
                stage.value: [
                    {
                        "tool": e.tool,
                        "tool_profile": e.tool_profile,
                        "min_severity": e.min_severity,
                        "on_failure": e.on_failure,
                    }
                    for e in entries
                ]
                for stage, entries in self.stages.items()
            },
            "tools": {name: tool.image for name, tool in self.tools.items()},
            "bound_parameters": {k: dict(v) for k, v in self.bound_parameters.items()},
            "mount_source": self.mount_source,
            "volume_created": self.volume_created,
            "launched_containers": list(self.launched_containers),
            "launches": [r.to_dict() for r in self.launches],
            "errors": list(self.errors),
            "checkpoints": dict(self.checkpoints),
        }

    def write_json(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(self.to_payload(), indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
