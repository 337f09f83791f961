"""
Run Resolver
============
Validates a run request against the catalogs and builds its RunContext.

Resolution either succeeds completely or raises a ValidationError subclass;
nothing is launched and no storage is touched while resolving.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from secpipe.catalog.models import STAGE_ORDER, PipelineCatalog, Stage, StageEntry, ToolCatalog, ToolDefinition
from secpipe.config import COMPILER
from secpipe.errors import EmptyPipeline, UnknownProfile, UnknownTool, UnknownToolProfile, UnresolvedTokenError
from secpipe.pipeline.binder import bind_parameters, format_bound_parameters
from secpipe.pipeline.compiler import find_unresolved_tokens
from secpipe.pipeline.context import RunContext
from secpipe.pipeline.request import RunRequest
from secpipe.utils.validation import resolve_request_paths


def _apply_override(
    entry: StageEntry,
    tool: ToolDefinition,
    override: Optional[str],
    stage: Stage,
    log: Any,
) -> StageEntry:
    if not override or override == entry.tool_profile:
        return entry
    if tool.has_profile(override):
        log.info(
            "{} stage: tool {} uses tool profile '{}' instead of '{}'",
            stage.value,
            entry.tool,
            override,
            entry.tool_profile,
        )
        return entry.with_profile(override)
    log.info(
        "{} stage: tool {} has no tool profile '{}', keeping '{}'",
        stage.value,
        entry.tool,
        override,
        entry.tool_profile,
    )
    return entry


def _verify_entry(stage: Stage, entry: StageEntry, tool_catalog: ToolCatalog) -> ToolDefinition:
    tool = tool_catalog.get(entry.tool)
    if tool is None:
        raise UnknownTool(
            f"Tool '{entry.tool}' in the {stage.value} stage is not defined in the tool catalog",
            {"stage": stage.value, "tool": entry.tool},
        )
    if not tool.has_profile(entry.tool_profile):
        raise UnknownToolProfile(
            f"No tool profile '{entry.tool_profile}' is defined for tool '{entry.tool}' ({stage.value} stage)",
            {"stage": stage.value, "tool": entry.tool, "tool_profile": entry.tool_profile},
        )
    return tool


def resolve_run(
    request: RunRequest,
    pipeline_catalog: PipelineCatalog,
    tool_catalog: ToolCatalog,
    *,
    log: Any = None,
) -> RunContext:
    """Resolve a request into a RunContext.

    Args:
        request: The run request; required fields are validated first.
        pipeline_catalog: Named pipeline profiles.
        tool_catalog: Tool definitions.
        log: Logger to use; defaults to the module logger.

    Raises:
        MissingRequiredField, InvalidHostPath, UnknownProfile, EmptyPipeline,
        UnknownTool, UnknownToolProfile, InvalidParameterValue, UnresolvedTokenError.
    """
    out = log or logger
    request = resolve_request_paths(request.validate())

    profile = pipeline_catalog.get(request.profile)
    if profile is None:
        raise UnknownProfile(
            f"Pipeline profile '{request.profile}' is not defined in the pipeline catalog",
            {"profile": request.profile, "available": sorted(pipeline_catalog.profiles)},
        )
    if not profile.pipeline:
        raise EmptyPipeline(
            f"Pipeline profile '{request.profile}' has no tools in its pipeline stage",
            {"profile": request.profile},
        )

    stages: Dict[Stage, Tuple[StageEntry, ...]] = {}
    tools: Dict[str, ToolDefinition] = {}
    for stage in STAGE_ORDER:
        resolved: List[StageEntry] = []
        for entry in profile.entries(stage):
            tool = _verify_entry(stage, entry, tool_catalog)
            resolved.append(_apply_override(entry, tool, request.tool_profile_override, stage, out))
            tools.setdefault(entry.tool, tool)
        stages[stage] = tuple(resolved)

    bound: Dict[str, Dict[str, str]] = {}
    for name, tool in tools.items():
        bound[name] = bind_parameters(tool, request.raw_parameters)
        out.debug("Parameters bound for {}: {}", name, format_bound_parameters(bound[name]) or "(none)")

    strict = COMPILER.STRICT_TOKENS if request.strict_tokens is None else request.strict_tokens
    if strict:
        for stage in STAGE_ORDER:
            for entry in stages[stage]:
                missing = find_unresolved_tokens(tools[entry.tool], entry.tool_profile)
                if missing:
                    raise UnresolvedTokenError(
                        f"Unresolved token(s) {', '.join(missing)} for tool '{entry.tool}' ({stage.value} stage)",
                        {"stage": stage.value, "tool": entry.tool, "tokens": missing},
                    )

    if stages[Stage.RUN_EVERY]:
        out.info(
            "Profile '{}' declares {} runevery entr(y/ies); they are validated but not scheduled",
            profile.name,
            len(stages[Stage.RUN_EVERY]),
        )

    context = RunContext(request=request, stages=stages, tools=tools, bound_parameters=bound)
    out.info(
        "Resolved profile '{}' for app '{}': {} tool(s), run id {}",
        profile.name,
        request.app_name,
        len(tools),
        context.run_id,
    )
    return context
