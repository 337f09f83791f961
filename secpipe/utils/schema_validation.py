"""
Schema Validation Utilities
===========================
JSON Schema loading and validation helpers for the catalog files.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from jsonschema import Draft202012Validator, FormatChecker
from jsonschema.exceptions import ValidationError


PIPELINE_CATALOG_SCHEMA = "pipeline_catalog.schema.json"
TOOL_CATALOG_SCHEMA = "tool_catalog.schema.json"


@lru_cache(maxsize=32)
def _load_schema(schema_filename: str) -> Dict[str, Any]:
    """Load a schema JSON file from secpipe/schemas.

    Args:
        schema_filename: File name under secpipe/schemas (for example 'tool_catalog.schema.json').

    Raises:
        FileNotFoundError: When schema file is missing.
        ValueError: When schema file is not valid JSON or not a JSON object.
    """
    schemas_dir = Path(__file__).resolve().parent.parent / "schemas"
    schema_path = (schemas_dir / schema_filename).resolve()
    if not schema_path.is_relative_to(schemas_dir.resolve()):
        raise ValueError(f"Schema path escapes schemas directory: {schema_filename}")
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema not found: {schema_filename}")

    try:
        with open(schema_path, "r", encoding="utf-8") as f:
            schema = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Failed to load schema {schema_filename}: {e}")

    if not isinstance(schema, dict):
        raise ValueError(f"Schema {schema_filename} must be a JSON object")
    return schema


def validate_against_schema(payload: Any, schema_filename: str) -> None:
    """Validate payload against a JSON Schema.

    Args:
        payload: Any JSON-compatible object (parsed YAML included).
        schema_filename: File name under secpipe/schemas.

    Raises:
        ValueError: When payload fails validation.
    """
    schema = _load_schema(schema_filename)
    validator = Draft202012Validator(schema, format_checker=FormatChecker())

    errors = sorted(validator.iter_errors(payload), key=lambda e: [str(p) for p in e.path])
    if not errors:
        return

    error: ValidationError = errors[0]
    path = "/".join(str(p) for p in error.path)
    prefix = f"Validation failed at '{path}': " if path else "Validation failed: "
    raise ValueError(prefix + error.message)


def validate_pipeline_catalog(payload: Dict[str, Any]) -> None:
    """Validate a parsed pipeline catalog."""
    validate_against_schema(payload, PIPELINE_CATALOG_SCHEMA)


def validate_tool_catalog(payload: Dict[str, Any]) -> None:
    """Validate a parsed tool catalog (already wrapped under 'tools')."""
    validate_against_schema(payload, TOOL_CATALOG_SCHEMA)


def is_valid_tool_catalog(payload: Any) -> bool:
    """Return True when payload validates as a tool catalog."""
    if not isinstance(payload, dict):
        return False
    try:
        validate_tool_catalog(payload)
        return True
    except ValueError:
        return False
