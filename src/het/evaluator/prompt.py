"""
Prompts for the semantic evaluator.

The system prompt is the built-in security prompt followed by, when they
exist, the global ``<het_home>/prompt.md`` and the repository's
``.het/prompt.md``. The user prompt describes one (already redacted)
invocation and is rendered from a Jinja2 template.
"""

import json
import logging
from pathlib import Path

from jinja2 import Environment, StrictUndefined

from het.config import PROMPT_FILENAME, find_repo_file, het_home
from het.schema import Invocation, ToolType

logger = logging.getLogger(__name__)

SECURITY_EVALUATION_PROMPT = """\
You are a security evaluator for AI coding assistant tool invocations. Your job is to analyze tool calls and determine if they are safe to execute.

For each tool invocation, you must:
1. Identify potential security risks
2. Consider the context and intent
3. Make a decision: allow, deny, or ask (prompt user for confirmation)

Risk categories to consider:
- filesystem-danger: Destructive file operations, permission changes
- network-exfiltration: Sending sensitive data to external services
- credential-exposure: Commands that might expose secrets, tokens, passwords
- system-modification: Changes to system configuration
- package-installation: Installing untrusted packages

Be conservative but practical. Common development operations should be allowed.
Deny operations that could:
- Delete important files or directories
- Expose credentials or secrets
- Modify system security settings
- Send sensitive data to untrusted destinations

When uncertain, use "ask" to let the user decide.

Respond with JSON in this format:
{
  "decision": "allow" | "deny" | "ask",
  "reason": "explanation of decision",
  "confidence": 0.0-1.0,
  "riskFactors": ["list", "of", "identified", "risks"]
}"""

GLOBAL_SECTION_HEADER = "\n\n---\n\n## Global Custom Rules\n\n"
REPO_SECTION_HEADER = "\n\n---\n\n## Repository-Specific Rules\n\n"

TOOL_DESCRIPTIONS: dict[ToolType, str] = {
    ToolType.BASH: "Executes shell commands on Unix/Linux/macOS systems",
    ToolType.POWERSHELL: "Executes PowerShell commands on Windows systems",
    ToolType.WRITE: "Creates or overwrites files on the filesystem",
    ToolType.EDIT: "Modifies existing files using string replacement",
    ToolType.READ: "Reads file contents from the filesystem",
    ToolType.GLOB: "Searches for files matching patterns",
    ToolType.GREP: "Searches file contents for patterns",
    ToolType.WEB_FETCH: "Fetches content from URLs",
    ToolType.WEB_SEARCH: "Performs web searches",
    ToolType.TASK: "Spawns subagent tasks",
    ToolType.NOTEBOOK_EDIT: "Modifies Jupyter notebook cells",
    ToolType.MCP: "MCP (Model Context Protocol) tool from an external server",
}

EVALUATION_TEMPLATE = """\
Evaluate the following tool invocation:

Tool: {{ tool_type }}
{%- if tool_name and tool_name != tool_type %}
Tool name: {{ tool_name }}
{%- endif %}
Description: {{ description }}
Input: {{ arguments_json }}

Analyze this invocation and provide your security assessment."""

_env = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)
_evaluation_template = _env.from_string(EVALUATION_TEMPLATE)


def _read_prompt_file(path: Path) -> str | None:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Failed to read prompt file %s: %s", path, e)
        return None
    return text or None


def load_global_prompt(home: Path | None = None) -> str | None:
    """Contents of <het_home>/prompt.md, if present."""
    path = (home or het_home()) / PROMPT_FILENAME
    if not path.is_file():
        return None
    return _read_prompt_file(path)


def find_repo_prompt(working_dir: Path | str) -> str | None:
    """Contents of the repository's .het/prompt.md, if present."""
    path = find_repo_file(working_dir, PROMPT_FILENAME)
    if path is None:
        return None
    return _read_prompt_file(path)


def build_system_prompt(working_dir: Path | str | None = None, home: Path | None = None) -> str:
    """
    Build the full system prompt.

    Args:
        working_dir: Invocation working directory, for the repository prompt
        home: HET home directory, for the global prompt

    Returns:
        Base prompt plus any global and repository sections
    """
    parts = [SECURITY_EVALUATION_PROMPT]

    global_prompt = load_global_prompt(home)
    if global_prompt:
        parts.append(GLOBAL_SECTION_HEADER + global_prompt)

    if working_dir:
        repo_prompt = find_repo_prompt(working_dir)
        if repo_prompt:
            parts.append(REPO_SECTION_HEADER + repo_prompt)

    return "".join(parts)


def build_evaluation_prompt(invocation: Invocation) -> str:
    """
    Render the user prompt describing one invocation.

    The invocation's arguments must already be redacted.
    """
    return _evaluation_template.render(
        tool_type=invocation.tool_type.value,
        tool_name=invocation.tool_name,
        description=TOOL_DESCRIPTIONS.get(invocation.tool_type, "Unknown tool"),
        arguments_json=json.dumps(invocation.arguments, indent=2, sort_keys=True, default=str),
    )
