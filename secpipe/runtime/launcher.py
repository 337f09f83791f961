"""
Container Launcher
==================
Turns one compiled command and the run's mount plan into a container run.

Argument vector:
    run -v <mount>:<root>/ [--rm] [-v <src>:<root>/source] [-v <rpt>:<root>/reports]
        --net=host --name <tool>_<run_id> <image> <command tokens...>
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from loguru import logger

from secpipe.catalog.models import Stage, StageEntry
from secpipe.config import CONTAINER, get_timeout
from secpipe.errors import ContainerLaunchFailure
from secpipe.pipeline.context import LaunchRecord, RunContext
from secpipe.runtime.docker import ContainerRuntime
from secpipe.tracing import get_tracer, safe_set_span_attributes


def build_run_args(
    *,
    image: str,
    command: str,
    container_name: str,
    mount_source: str,
    keep: bool = False,
    source_path: Optional[str] = None,
    report_path: Optional[str] = None,
) -> List[str]:
    """Build the `run` arguments (without the runtime binary)."""
    root = CONTAINER.CONTAINER_ROOT
    args = ["run", "-v", f"{mount_source}:{root}/"]
    if not keep:
        args.append("--rm")
    if source_path:
        args.extend(["-v", f"{source_path}:{root}/{CONTAINER.SOURCE_SUBDIR}"])
    if report_path:
        args.extend(["-v", f"{report_path}:{root}/{CONTAINER.REPORTS_SUBDIR}"])
    args.extend([f"--net={CONTAINER.NETWORK_MODE}", "--name", container_name, image])
    args.extend(command.split())
    return args


def launch_container(
    stage: Stage,
    entry: StageEntry,
    command: str,
    context: RunContext,
    runtime: ContainerRuntime,
    log: Any = None,
    *,
    timeout: Optional[int] = None,
) -> LaunchRecord:
    """Launch one tool container and record the outcome on the context.

    Dry runs log the invocation and report success without calling the runtime.

    Raises:
        ContainerLaunchFailure: On non-zero exit, spawn error or timeout.
    """
    out = log or logger
    if context.mount_source is None:
        raise ValueError("Storage must be prepared before launching containers")

    tool = context.tools[entry.tool]
    request = context.request
    name = context.next_container_name(entry.tool)
    args = build_run_args(
        image=tool.image,
        command=command,
        container_name=name,
        mount_source=context.mount_source,
        keep=request.keep,
        source_path=request.source_path,
        report_path=request.report_path,
    )
    record = LaunchRecord(
        stage=stage.value,
        tool=entry.tool,
        tool_profile=entry.tool_profile,
        container_name=name,
        command=command,
        argv=[runtime.binary, *args],
        dry_run=context.dry_run,
    )

    if context.dry_run:
        out.info("[dry run] {}", " ".join(record.argv))
        record.returncode = 0
        record.success = True
        record.finished_at = datetime.now(timezone.utc).isoformat()
        context.record_launch(record)
        return record

    out.info("Launching {} ({} stage, tool profile '{}')", name, stage.value, entry.tool_profile)
    out.debug("Invocation: {}", " ".join(record.argv))

    tracer = get_tracer("secpipe.launcher")
    with tracer.start_as_current_span("container.launch") as span:
        safe_set_span_attributes(
            span,
            {"stage": stage.value, "tool": entry.tool, "container_name": name, "image": tool.image},
        )
        result = runtime.run(args, timeout=timeout if timeout is not None else get_timeout("container"))
        safe_set_span_attributes(span, {"returncode": result.returncode, "timed_out": result.timed_out})

    recorder = getattr(out, "record_output", None)
    if callable(recorder):
        recorder(name, result.stdout, result.stderr)

    record.returncode = result.returncode
    record.success = result.success
    record.finished_at = datetime.now(timezone.utc).isoformat()
    context.record_launch(record)

    if not result.success:
        if result.timed_out:
            reason = "timed out"
        elif result.spawn_error:
            reason = "could not be started"
        else:
            reason = f"exited with status {result.returncode}"
        raise ContainerLaunchFailure(
            f"Container {name} {reason}: {result.error_text()}",
            container_name=name,
            stderr=result.stderr or result.spawn_error,
            details={
                "stage": stage.value,
                "tool": entry.tool,
                "returncode": result.returncode,
                "timed_out": result.timed_out,
            },
        )

    out.info("Container {} finished successfully", name)
    return record
