"""
Catalog Loader
==============
Reads the pipeline catalog and the tool catalog from YAML, validates them
against their JSON Schemas and builds the immutable catalog models.

Tool catalogs may omit the top-level 'tools:' key (legacy layout); such files
are wrapped before validation.

App overlays: when <app-name>-pipeline.yaml or <app-name>-tool.yaml exist next
to the main catalogs, their entries replace same-named profiles/tools.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from loguru import logger

from secpipe.catalog.models import PipelineCatalog, PipelineProfile, ToolCatalog, ToolDefinition
from secpipe.config import PATHS
from secpipe.errors import CatalogError, DependencyMissing
from secpipe.utils.schema_validation import validate_pipeline_catalog, validate_tool_catalog


@dataclass(frozen=True)
class CatalogPaths:
    """Resolved catalog file locations for one run."""

    catalog_dir: Path
    pipeline_file: Path
    tool_file: Path
    app_pipeline_file: Optional[Path] = None
    app_tool_file: Optional[Path] = None


def catalog_paths(catalog_dir: str | Path | None = None, app_name: Optional[str] = None) -> CatalogPaths:
    base = Path(catalog_dir or PATHS.CATALOG_DIR).expanduser()
    app_pipeline = None
    app_tool = None
    if app_name:
        app_pipeline = base / f"{app_name}{PATHS.APP_PIPELINE_SUFFIX}"
        app_tool = base / f"{app_name}{PATHS.APP_TOOL_SUFFIX}"
    return CatalogPaths(
        catalog_dir=base,
        pipeline_file=base / PATHS.PIPELINE_CATALOG,
        tool_file=base / PATHS.TOOL_CATALOG,
        app_pipeline_file=app_pipeline,
        app_tool_file=app_tool,
    )


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise DependencyMissing(f"Catalog file not found: {path}", {"path": str(path)})
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise CatalogError(f"Catalog file is not valid YAML: {path}: {e}", {"path": str(path)}) from e
    except OSError as e:
        raise CatalogError(f"Failed to read catalog file {path}: {e}", {"path": str(path)}) from e

    if data is None:
        raise CatalogError(f"Catalog file is empty: {path}", {"path": str(path)})
    if not isinstance(data, dict):
        raise CatalogError(f"Catalog file must contain a mapping: {path}", {"path": str(path)})
    return data


def wrap_tool_catalog(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return the catalog under a top-level 'tools' key, wrapping legacy files."""
    if isinstance(data.get("tools"), dict):
        return data
    return {"tools": data}


def parse_pipeline_catalog(data: Dict[str, Any], *, source: str = "<memory>") -> PipelineCatalog:
    try:
        validate_pipeline_catalog(data)
    except ValueError as e:
        raise CatalogError(f"Invalid pipeline catalog {source}: {e}", {"path": source}) from e

    profiles = {
        str(name): PipelineProfile.from_dict(str(name), body or {})
        for name, body in (data.get("profiles") or {}).items()
    }
    return PipelineCatalog(profiles=profiles, version=str(data.get("version") or ""))


def parse_tool_catalog(data: Dict[str, Any], *, source: str = "<memory>") -> ToolCatalog:
    wrapped = wrap_tool_catalog(data)
    try:
        validate_tool_catalog(wrapped)
    except ValueError as e:
        raise CatalogError(f"Invalid tool catalog {source}: {e}", {"path": source}) from e

    tools = {str(name): ToolDefinition.from_dict(str(name), body) for name, body in wrapped["tools"].items()}
    return ToolCatalog(tools=tools)


def load_pipeline_catalog(path: str | Path) -> PipelineCatalog:
    p = Path(path)
    return parse_pipeline_catalog(_read_yaml(p), source=str(p))


def load_tool_catalog(path: str | Path) -> ToolCatalog:
    p = Path(path)
    return parse_tool_catalog(_read_yaml(p), source=str(p))


def _overlay_pipelines(base: PipelineCatalog, overlay: PipelineCatalog) -> PipelineCatalog:
    merged = dict(base.profiles)
    merged.update(overlay.profiles)
    return PipelineCatalog(profiles=merged, version=overlay.version or base.version)


def _overlay_tools(base: ToolCatalog, overlay: ToolCatalog) -> ToolCatalog:
    merged = dict(base.tools)
    merged.update(overlay.tools)
    return ToolCatalog(tools=merged)


def load_catalogs(
    catalog_dir: str | Path | None = None,
    *,
    app_name: Optional[str] = None,
) -> Tuple[PipelineCatalog, ToolCatalog]:
    """Load both catalogs, applying app overlays when present.

    Raises:
        DependencyMissing: When a main catalog file is absent.
        CatalogError: When a catalog file is malformed.
    """
    paths = catalog_paths(catalog_dir, app_name)

    pipelines = load_pipeline_catalog(paths.pipeline_file)
    tools = load_tool_catalog(paths.tool_file)
    logger.debug(
        "Loaded {} pipeline profile(s) and {} tool(s) from {}",
        len(pipelines.profiles),
        len(tools.tools),
        paths.catalog_dir,
    )

    if paths.app_pipeline_file is not None and paths.app_pipeline_file.is_file():
        overlay = load_pipeline_catalog(paths.app_pipeline_file)
        pipelines = _overlay_pipelines(pipelines, overlay)
        logger.info("Applied app pipeline overlay {} ({} profile(s))", paths.app_pipeline_file, len(overlay.profiles))

    if paths.app_tool_file is not None and paths.app_tool_file.is_file():
        overlay_tools = load_tool_catalog(paths.app_tool_file)
        tools = _overlay_tools(tools, overlay_tools)
        logger.info("Applied app tool overlay {} ({} tool(s))", paths.app_tool_file, len(overlay_tools.tools))

    return pipelines, tools
