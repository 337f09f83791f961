"""
Parameter Binder
================
Matches user-supplied NAME=value tokens to the parameters a tool declares.

Matching is exact on the parameter name. The first token for a name wins;
later duplicates and tokens the tool does not declare are ignored. When the
tool declares a data_type for a parameter, the bound value is checked against
it.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Tuple

from loguru import logger

from secpipe.catalog.models import ParameterSpec, ToolDefinition
from secpipe.errors import InvalidParameterValue


_TRUE_FALSE = {"true", "false", "yes", "no", "1", "0", "on", "off"}


def parse_raw_parameters(raw: str | None) -> List[Tuple[str, str]]:
    """Split a raw parameter string into (name, value) pairs, in order.

    Tokens are whitespace separated and split on the first '='. Tokens without
    '=' or with an empty name are skipped.

    Example:
        >>> parse_raw_parameters("LOC=/src  DEPTH=3 -v")
        [('LOC', '/src'), ('DEPTH', '3')]
    """
    pairs: List[Tuple[str, str]] = []
    for token in (raw or "").split():
        name, sep, value = token.partition("=")
        if not sep or not name:
            logger.debug("Ignoring parameter token without NAME=value form: {}", token)
            continue
        pairs.append((name, value))
    return pairs


def check_parameter_value(tool_name: str, spec: ParameterSpec, value: str) -> None:
    """Raise InvalidParameterValue when value does not fit spec.data_type."""
    data_type = spec.data_type.strip().lower()
    if not data_type:
        return

    ok = True
    if data_type in ("int", "integer"):
        try:
            int(value)
        except ValueError:
            ok = False
    elif data_type in ("number", "float"):
        try:
            float(value)
        except ValueError:
            ok = False
    elif data_type in ("bool", "boolean"):
        ok = value.strip().lower() in _TRUE_FALSE

    if not ok:
        raise InvalidParameterValue(
            f"Parameter {spec.name} of tool {tool_name} expects {spec.data_type}, got {value!r}",
            {"tool": tool_name, "parameter": spec.name, "data_type": spec.data_type, "value": value},
        )


def bind_parameters(tool: ToolDefinition, raw: str | None) -> Dict[str, str]:
    """Bind the raw parameter string against one tool's declared parameters.

    Returns:
        Ordered mapping of parameter name to value, in first-match order.

    Raises:
        InvalidParameterValue: When a bound value does not fit its data type.
    """
    bound: Dict[str, str] = {}
    for name, value in parse_raw_parameters(raw):
        spec = tool.parameters.get(name)
        if spec is None or name in bound:
            continue
        check_parameter_value(tool.name, spec, value)
        bound[name] = value
    return bound


def format_bound_parameters(bound: Mapping[str, str]) -> str:
    """Render bound parameters as a space-separated NAME=value string."""
    return " ".join(f"{name}={value}" for name, value in bound.items())
