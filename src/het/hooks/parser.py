"""
Hook payload normalization.

Two payload shapes are recognized, by structure rather than by an explicit
discriminator:

    claude-code:  {"tool_name": ..., "tool_input": {...}, "session_id": ..., "cwd": ...}
    copilot:      {"toolName": ..., "toolInput": {...}, "sessionId": ..., "workingDirectory": ...}

A ``hook_type`` key also marks a claude-code payload, and ``"type":
"preToolUse"`` a copilot one, when the tool name key itself is missing.

Tool names are mapped case-insensitively onto the closed ToolType set.
Anything that cannot be mapped is rejected here so that no Invocation ever
carries an unknown tool type.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

from het.errors import (
    InvalidJsonError,
    MissingFieldError,
    NormalizationError,
    UnknownSourceError,
    UnknownToolError,
)
from het.schema import HookSource, Invocation, ToolType

logger = logging.getLogger(__name__)

MCP_PREFIXES = ("mcp__", "mcp-")

TOOL_NAME_MAP: dict[str, ToolType] = {
    # Shell
    "bash": ToolType.BASH,
    "shell": ToolType.BASH,
    "command": ToolType.BASH,
    # PowerShell
    "powershell": ToolType.POWERSHELL,
    "pwsh": ToolType.POWERSHELL,
    "ps": ToolType.POWERSHELL,
    "ps1": ToolType.POWERSHELL,
    # Files
    "write": ToolType.WRITE,
    "writefile": ToolType.WRITE,
    "write_file": ToolType.WRITE,
    "create": ToolType.WRITE,
    "edit": ToolType.EDIT,
    "editfile": ToolType.EDIT,
    "edit_file": ToolType.EDIT,
    "read": ToolType.READ,
    "readfile": ToolType.READ,
    "read_file": ToolType.READ,
    "view": ToolType.READ,
    # Search
    "glob": ToolType.GLOB,
    "grep": ToolType.GREP,
    "search": ToolType.GREP,
    # Web
    "webfetch": ToolType.WEB_FETCH,
    "web_fetch": ToolType.WEB_FETCH,
    "fetch": ToolType.WEB_FETCH,
    "websearch": ToolType.WEB_SEARCH,
    "web_search": ToolType.WEB_SEARCH,
    # Agents
    "task": ToolType.TASK,
    "agent": ToolType.TASK,
    # Notebooks
    "notebookedit": ToolType.NOTEBOOK_EDIT,
    "notebook_edit": ToolType.NOTEBOOK_EDIT,
}


@dataclass(frozen=True)
class _PayloadShape:
    """Field names used by one hook source."""

    source: HookSource
    tool_name: str
    tool_input: str
    session_id: str
    working_directory: str


CLAUDE_CODE_SHAPE = _PayloadShape(
    source=HookSource.CLAUDE_CODE,
    tool_name="tool_name",
    tool_input="tool_input",
    session_id="session_id",
    working_directory="cwd",
)

COPILOT_SHAPE = _PayloadShape(
    source=HookSource.COPILOT,
    tool_name="toolName",
    tool_input="toolInput",
    session_id="sessionId",
    working_directory="workingDirectory",
)


def normalize_tool_name(name: str) -> ToolType | None:
    """
    Map an assistant tool name onto a ToolType.

    MCP tools (``mcp__<server>__<tool>`` or ``mcp-...``) are recognized by
    prefix before the table lookup.

    Returns:
        The ToolType, or None if the name is not recognized
    """
    if name.startswith(MCP_PREFIXES):
        return ToolType.MCP
    return TOOL_NAME_MAP.get(name.lower())


def detect_shape(payload: dict[str, Any]) -> _PayloadShape | None:
    """Pick the payload shape from the keys present."""
    if "tool_name" in payload:
        return CLAUDE_CODE_SHAPE
    if "toolName" in payload:
        return COPILOT_SHAPE
    if "hook_type" in payload:
        return CLAUDE_CODE_SHAPE
    if payload.get("type") == "preToolUse":
        return COPILOT_SHAPE
    return None


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    return value if isinstance(value, str) and value else None


def normalize(raw_text: str) -> Invocation:
    """
    Parse a hook payload into an Invocation.

    Args:
        raw_text: The JSON text the hook received on stdin

    Returns:
        Normalized Invocation

    Raises:
        InvalidJsonError: Not JSON, or not a JSON object
        UnknownSourceError: No known payload shape detected
        MissingFieldError: Tool name or tool input missing or mistyped
        UnknownToolError: Tool name has no ToolType mapping
    """
    try:
        payload = json.loads(raw_text)
    except (ValueError, TypeError) as e:
        raise InvalidJsonError(parse_error=str(e)) from e
    except RecursionError as e:
        raise InvalidJsonError(parse_error="nested too deeply") from e

    if not isinstance(payload, dict):
        raise InvalidJsonError(parse_error=f"expected an object, got {type(payload).__name__}")

    shape = detect_shape(payload)
    if shape is None:
        raise UnknownSourceError(keys=sorted(payload))

    source = shape.source.value
    tool_name = payload.get(shape.tool_name)
    if not isinstance(tool_name, str) or not tool_name:
        raise MissingFieldError(field_name=shape.tool_name, source=source)

    tool_input = payload.get(shape.tool_input)
    if not isinstance(tool_input, dict):
        raise MissingFieldError(field_name=shape.tool_input, source=source)

    tool_type = normalize_tool_name(tool_name)
    if tool_type is None:
        raise UnknownToolError(tool_name=tool_name, source=source)

    return Invocation(
        tool_type=tool_type,
        arguments=tool_input,
        tool_name=tool_name,
        session_id=_optional_str(payload, shape.session_id),
        working_directory=_optional_str(payload, shape.working_directory),
        source=shape.source,
        raw_payload=payload,
    )


def parse_hook_input(raw_text: str) -> Invocation | None:
    """
    Parse a hook payload, returning None instead of raising.

    Callers use this to fail open: no Invocation means nothing is evaluated
    and the tool call proceeds.
    """
    try:
        return normalize(raw_text)
    except NormalizationError as e:
        logger.warning("Ignoring hook input: %s", e.message)
        return None
