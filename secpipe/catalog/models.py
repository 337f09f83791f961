"""
Catalog Models
==============
Immutable types for the pipeline catalog and the tool catalog.

Both catalogs are loaded once per process and never mutated afterwards;
run-specific state lives in RunContext.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


class Stage(str, Enum):
    """Stages of a pipeline profile, in execution order."""

    STARTUP = "startup"
    PIPELINE = "pipeline"
    FINAL = "final"
    RUN_EVERY = "runevery"


# Order used for validation; RUN_EVERY is resolved but never scheduled.
STAGE_ORDER: Tuple[Stage, ...] = (Stage.STARTUP, Stage.PIPELINE, Stage.FINAL, Stage.RUN_EVERY)
SCHEDULED_STAGES: Tuple[Stage, ...] = (Stage.STARTUP, Stage.PIPELINE, Stage.FINAL)

PHASES: Tuple[str, ...] = ("pre", "exec", "report", "post")


def _frozen(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class ParameterSpec:
    """A parameter a tool declares, e.g. LOC or GIT_URL."""

    name: str
    type: str = ""
    data_type: str = ""
    description: str = ""

    @classmethod
    def from_dict(cls, name: str, data: Optional[Dict[str, Any]]) -> "ParameterSpec":
        data = data or {}
        return cls(
            name=name,
            type=str(data.get("type") or ""),
            data_type=str(data.get("data_type") or ""),
            description=str(data.get("description") or ""),
        )


@dataclass(frozen=True)
class ToolDefinition:
    """One tool from the tool catalog.

    commands holds both the phase templates (pre, exec, report, post) and the
    catalog tokens they reference, such as reportname.
    """

    name: str
    image: str
    commands: Mapping[str, str] = field(default_factory=dict)
    profiles: Mapping[str, str] = field(default_factory=dict)
    parameters: Mapping[str, ParameterSpec] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "commands", _frozen(self.commands))
        object.__setattr__(self, "profiles", _frozen(self.profiles))
        object.__setattr__(self, "parameters", _frozen(self.parameters))
        object.__setattr__(self, "metadata", _frozen(self.metadata))

    def phase(self, name: str) -> str:
        """Return a phase template, or an empty string when undeclared."""
        value = self.commands.get(name)
        return value if isinstance(value, str) else ""

    def has_profile(self, profile: str) -> bool:
        return profile in self.profiles

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ToolDefinition":
        params_raw = data.get("parameters") or {}
        parameters = {
            str(pname): ParameterSpec.from_dict(str(pname), pdata if isinstance(pdata, dict) else None)
            for pname, pdata in params_raw.items()
        }
        metadata = {
            k: v
            for k, v in data.items()
            if k not in ("docker", "commands", "profiles", "parameters")
        }
        return cls(
            name=name,
            image=str(data["docker"]),
            commands={str(k): str(v) for k, v in (data.get("commands") or {}).items() if v is not None},
            profiles={str(k): str(v) if v is not None else "" for k, v in (data.get("profiles") or {}).items()},
            parameters=parameters,
            metadata=metadata,
        )


@dataclass(frozen=True)
class StageEntry:
    """One tool invocation inside a stage: (tool, tool-profile)."""

    tool: str
    tool_profile: str
    min_severity: Optional[str] = None
    on_failure: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StageEntry":
        return cls(
            tool=str(data["tool"]),
            tool_profile=str(data["tool-profile"]),
            min_severity=data.get("min-severity"),
            on_failure=data.get("on-failure"),
        )

    def with_profile(self, tool_profile: str) -> "StageEntry":
        return StageEntry(
            tool=self.tool,
            tool_profile=tool_profile,
            min_severity=self.min_severity,
            on_failure=self.on_failure,
        )


@dataclass(frozen=True)
class PipelineProfile:
    """A named pipeline: four ordered lists of stage entries."""

    name: str
    startup: Tuple[StageEntry, ...] = ()
    pipeline: Tuple[StageEntry, ...] = ()
    final: Tuple[StageEntry, ...] = ()
    runevery: Tuple[StageEntry, ...] = ()

    def entries(self, stage: Stage) -> Tuple[StageEntry, ...]:
        return getattr(self, stage.value)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "PipelineProfile":
        def _entries(key: str) -> Tuple[StageEntry, ...]:
            return tuple(StageEntry.from_dict(e) for e in (data.get(key) or []))

        return cls(
            name=name,
            startup=_entries(Stage.STARTUP.value),
            pipeline=_entries(Stage.PIPELINE.value),
            final=_entries(Stage.FINAL.value),
            runevery=_entries(Stage.RUN_EVERY.value),
        )


@dataclass(frozen=True)
class PipelineCatalog:
    """All named pipeline profiles."""

    profiles: Mapping[str, PipelineProfile] = field(default_factory=dict)
    version: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "profiles", _frozen(self.profiles))

    def get(self, name: str) -> Optional[PipelineProfile]:
        return self.profiles.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.profiles


@dataclass(frozen=True)
class ToolCatalog:
    """All tool definitions by name."""

    tools: Mapping[str, ToolDefinition] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tools", _frozen(self.tools))

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self.tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.tools
