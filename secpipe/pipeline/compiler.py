"""
Command Compiler
================
Expands a tool's phase templates into one shell-ready argument string.

Order: pre, exec, report, the selected tool profile, each followed by a single
space; post, when declared, is appended as " && <post> ".

Every template goes through two passes:
1. Catalog tokens. {name} is replaced by the tool's commands[name], expanded
   recursively. {timestamp} is the current time in integer nanoseconds.
   Unknown names and reference cycles stay unexpanded and are logged, or raise
   UnresolvedTokenError in strict mode.
2. Parameter tokens. In each whitespace-delimited word containing '$', the
   text after '$' names a bound parameter; from '$' to the end of the word is
   replaced with its value. Unbound references stay as they are.
"""

from __future__ import annotations

import re
import time
from typing import Any, FrozenSet, List, Mapping, Optional, Tuple

from loguru import logger

from secpipe.catalog.models import ToolDefinition
from secpipe.config import COMPILER
from secpipe.errors import UnknownToolProfile, UnresolvedTokenError


TIMESTAMP_TOKEN = "timestamp"
POST_SEPARATOR = " && "

_TOKEN_RE = re.compile(r"\{([A-Za-z0-9_.\-]+)\}")
_WORD_RE = re.compile(r"\S+")


def _expand_tokens(
    template: str,
    commands: Mapping[str, str],
    stamp: int,
    max_depth: int,
) -> Tuple[str, List[str]]:
    unresolved: List[str] = []

    def expand(text: str, seen: FrozenSet[str], depth: int) -> str:
        def repl(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name == TIMESTAMP_TOKEN:
                return str(stamp)
            value = commands.get(name)
            if value is None or name in seen or depth >= max_depth:
                if name not in unresolved:
                    unresolved.append(name)
                return match.group(0)
            return expand(value, seen | {name}, depth + 1)

        return _TOKEN_RE.sub(repl, text)

    return expand(template, frozenset(), 0), unresolved


def substitute_tokens(
    template: str,
    commands: Mapping[str, str],
    *,
    timestamp_ns: Optional[int] = None,
    strict: Optional[bool] = None,
    tool_name: str = "",
    log: Any = None,
) -> str:
    """Replace {name} placeholders using the tool's commands map.

    Raises:
        UnresolvedTokenError: In strict mode, for any placeholder left unexpanded.
    """
    stamp = timestamp_ns if timestamp_ns is not None else time.time_ns()
    text, unresolved = _expand_tokens(template, commands, stamp, COMPILER.MAX_TOKEN_DEPTH)
    if not unresolved:
        return text

    strict_mode = COMPILER.STRICT_TOKENS if strict is None else strict
    if strict_mode:
        raise UnresolvedTokenError(
            f"Unresolved token(s) {', '.join(unresolved)} in template for tool {tool_name or '?'}",
            {"tool": tool_name, "tokens": list(unresolved), "template": template},
        )

    out = log or logger
    for name in unresolved:
        out.warning("UnresolvedToken: no substitution made for {{{}}} in tool {}", name, tool_name or "?")
    return text


def substitute_parameters(template: str, bound: Mapping[str, str]) -> str:
    """Replace $NAME references with bound parameter values.

    Example:
        >>> substitute_parameters("scan $LOC", {"LOC": "/src"})
        'scan /src'
    """
    if "$" not in template or not bound:
        return template

    def repl(match: "re.Match[str]") -> str:
        word = match.group(0)
        idx = word.find("$")
        if idx < 0:
            return word
        value = bound.get(word[idx + 1:])
        if value is None:
            return word
        return word[:idx] + value

    return _WORD_RE.sub(repl, template)


def phase_templates(tool: ToolDefinition, tool_profile: str) -> List[Tuple[str, str]]:
    """Return (label, template) pairs in compile order, skipping undeclared phases.

    Raises:
        UnknownToolProfile: When the tool does not declare tool_profile.
    """
    if not tool.has_profile(tool_profile):
        raise UnknownToolProfile(
            f"Tool profile '{tool_profile}' is not defined for tool '{tool.name}'",
            {"tool": tool.name, "tool_profile": tool_profile},
        )

    templates: List[Tuple[str, str]] = []
    for phase in ("pre", "exec", "report"):
        value = tool.phase(phase)
        if value:
            templates.append((phase, value))
    templates.append(("profile", tool.profiles[tool_profile]))
    post = tool.phase("post")
    if post:
        templates.append(("post", post))
    return templates


def find_unresolved_tokens(tool: ToolDefinition, tool_profile: str) -> List[str]:
    """Names of {tokens} that would stay unexpanded when compiling this entry."""
    missing: List[str] = []
    for _, template in phase_templates(tool, tool_profile):
        _, unresolved = _expand_tokens(template, tool.commands, 0, COMPILER.MAX_TOKEN_DEPTH)
        for name in unresolved:
            if name not in missing:
                missing.append(name)
    return missing


def compile_command(
    tool: ToolDefinition,
    tool_profile: str,
    bound: Mapping[str, str],
    *,
    strict: Optional[bool] = None,
    timestamp_ns: Optional[int] = None,
    log: Any = None,
) -> str:
    """Compile one stage entry into the command string passed to the container.

    Args:
        tool: Tool definition from the catalog.
        tool_profile: Name of the tool profile selected for this entry.
        bound: Parameters bound for this tool.
        strict: Override COMPILER.STRICT_TOKENS.
        timestamp_ns: Fixed value for {timestamp}; defaults to the current time.
        log: Logger for UnresolvedToken warnings; defaults to the module logger.

    Returns:
        Flat command string, to be split on whitespace.
    """
    stamp = timestamp_ns if timestamp_ns is not None else time.time_ns()

    command = ""
    for label, template in phase_templates(tool, tool_profile):
        text = substitute_tokens(
            template,
            tool.commands,
            timestamp_ns=stamp,
            strict=strict,
            tool_name=tool.name,
            log=log,
        )
        text = substitute_parameters(text, bound)
        if label == "post":
            command += POST_SEPARATOR + text + " "
        else:
            command += text + " "
    return command
