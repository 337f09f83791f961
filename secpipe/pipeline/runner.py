"""Pipeline run orchestrator.

Drives one resolved run through INIT -> STARTUP -> PIPELINE -> FINAL -> DONE.
The first failure moves the run to ABORTED: nothing else is launched, the
error is recorded on the RunContext, and the run summary is still written.
There is no retry and no rollback of containers that already ran.

This is the only place errors become a run outcome; callers inspect
RunContext.success.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from loguru import logger

from secpipe.catalog.models import SCHEDULED_STAGES, PipelineCatalog, Stage, ToolCatalog
from secpipe.config import CONTAINER, PATHS
from secpipe.errors import SecPipeError
from secpipe.pipeline.compiler import compile_command
from secpipe.pipeline.context import STAGE_STATES, RunContext, RunState
from secpipe.pipeline.request import RunRequest
from secpipe.pipeline.resolver import resolve_run
from secpipe.run_log import RunLog
from secpipe.runtime.docker import ContainerRuntime
from secpipe.runtime.images import sync_images
from secpipe.runtime.launcher import launch_container
from secpipe.runtime.volumes import prepare_storage, storage_lock
from secpipe.tracing import init_tracing, safe_set_span_attributes


_STATE_STAGES = {state: stage for stage, state in STAGE_STATES.items()}


def scheduled_images(context: RunContext) -> List[str]:
    """Images of the tools the run will launch; runevery-only tools are left out."""
    images: List[str] = []
    for stage in SCHEDULED_STAGES:
        for entry in context.entries(stage):
            image = context.tools[entry.tool].image
            if image not in images:
                images.append(image)
    return images


class PipelineRunner:
    """Executes resolved runs against a container runtime."""

    def __init__(
        self,
        runtime: Optional[ContainerRuntime] = None,
        *,
        log_dir: str | Path | None = None,
        sync: bool = True,
    ):
        self.runtime = runtime or ContainerRuntime()
        self.log_dir = Path(log_dir or PATHS.LOG_DIR).expanduser()
        self.sync = sync

    def summary_path(self, context: RunContext) -> Path:
        return self.log_dir / f"{context.run_id}_run.json"

    def execute(self, context: RunContext) -> RunContext:
        """Run every scheduled stage of a resolved context; never raises SecPipeError."""
        run_log = RunLog(context.run_id, self.log_dir).open()
        request = context.request
        run_log.info(
            "Run {} started: profile '{}', app '{}'{}",
            context.run_id,
            request.profile,
            request.app_name,
            " (dry run)" if context.dry_run else "",
        )
        if request.target:
            run_log.info("Target: {}", request.target)
        context.mark_checkpoint("start")

        tracer = init_tracing()
        with tracer.start_as_current_span("pipeline.run") as span:
            safe_set_span_attributes(
                span,
                {
                    "run_id": context.run_id,
                    "profile": request.profile,
                    "app_name": request.app_name,
                    "dry_run": context.dry_run,
                },
            )
            try:
                self._drive(context, run_log)
            except SecPipeError as e:
                self._abort(context, run_log, e)
            finally:
                safe_set_span_attributes(span, {"state": context.state.value, "success": context.success})
                self._finish(context, run_log)
        return context

    def _drive(self, context: RunContext, run_log: RunLog) -> None:
        if context.dry_run:
            run_log.info("[dry run] Skipping image sync")
        elif self.sync:
            sync_images(self.runtime, scheduled_images(context), run_log)
            context.mark_checkpoint("images_synced")

        with storage_lock(context, log_dir=self.log_dir, log=run_log):
            context.transition(RunState.STARTUP)
            prepare_storage(context, self.runtime, run_log)
            context.mark_checkpoint("storage_ready")

            for stage in SCHEDULED_STAGES:
                if stage is not Stage.STARTUP:
                    context.transition(STAGE_STATES[stage])
                self._run_stage(stage, context, run_log)

            context.transition(RunState.DONE)

        if context.entries(Stage.RUN_EVERY):
            run_log.info("Skipped {} runevery entr(y/ies)", len(context.entries(Stage.RUN_EVERY)))
        run_log.info("Run {} completed successfully", context.run_id)

    def _run_stage(self, stage: Stage, context: RunContext, run_log: RunLog) -> None:
        entries = context.entries(stage)
        if not entries:
            run_log.debug("No {} entries", stage.value)
            return

        run_log.info("Stage {}: {} tool(s)", stage.value, len(entries))
        tracer = init_tracing()
        with tracer.start_as_current_span(f"stage.{stage.value}") as span:
            safe_set_span_attributes(span, {"stage": stage.value, "tools": [e.tool for e in entries]})
            for entry in entries:
                command = compile_command(
                    context.tools[entry.tool],
                    entry.tool_profile,
                    context.bound_parameters.get(entry.tool, {}),
                    strict=context.request.strict_tokens,
                    log=run_log,
                )
                run_log.debug("Compiled command for {}: {}", entry.tool, command)
                launch_container(stage, entry, command, context, self.runtime, run_log)
        context.mark_checkpoint(f"{stage.value}_complete")

    def _abort(self, context: RunContext, run_log: RunLog, error: SecPipeError) -> None:
        stage = _STATE_STAGES.get(context.state)
        context.record_error(error, stage=stage, tool=error.details.get("tool"))
        if not context.is_finished:
            context.transition(RunState.ABORTED)
        where = f" during {stage.value} stage" if stage is not None else ""
        run_log.error("Run {} aborted{}: {}: {}", context.run_id, where, error.kind, error.message)
        stream = error.details.get("stderr")
        if stream:
            run_log.error("Captured error stream:\n{}", stream)

    def _finish(self, context: RunContext, run_log: RunLog) -> None:
        context.mark_checkpoint("end")
        if context.keep and context.launched_containers:
            run_log.info(
                "Containers kept for inspection: {} (remove with '{} rm <name>')",
                ", ".join(context.launched_containers),
                CONTAINER.RUNTIME_BINARY,
            )
        if context.volume_created:
            run_log.info(
                "Data volume {} was left in place (remove with '{} volume rm {}')",
                context.mount_source,
                CONTAINER.RUNTIME_BINARY,
                context.mount_source,
            )

        path = self.summary_path(context)
        try:
            context.write_json(path)
            run_log.info("Run summary written to {}", path)
        except OSError as e:
            run_log.error("Failed to write run summary {}: {}", path, e)
        finally:
            run_log.close()


def run_pipeline(
    request: RunRequest,
    pipeline_catalog: PipelineCatalog,
    tool_catalog: ToolCatalog,
    *,
    runtime: Optional[ContainerRuntime] = None,
    log_dir: str | Path | None = None,
    sync: bool = True,
) -> RunContext:
    """Resolve and execute one run.

    Raises:
        ValidationError: When the request does not resolve; nothing has run yet.

    Returns:
        The RunContext; check .success and .errors for the outcome.
    """
    context = resolve_run(request, pipeline_catalog, tool_catalog)
    runner = PipelineRunner(runtime, log_dir=log_dir, sync=sync)
    result = runner.execute(context)
    if not result.success:
        logger.error("Run {} failed; see {}", result.run_id, runner.summary_path(result))
    return result
