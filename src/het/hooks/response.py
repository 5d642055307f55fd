"""
Hook response formatting.

claude-code reads the hook's stdout and exit code:
    - exit 0, empty stdout: allow
    - exit 0, JSON with "decision": "ask": prompt the user
    - exit 2, JSON with "decision": "block": deny

copilot reads a JSON object {"allow": bool, "message": str, "modifiedInput": {...}}.
"""

import json
from typing import Any

from het.schema import Action, Decision, HookSource

DEFAULT_BLOCK_REASON = "Blocked by HET security policy"
DEFAULT_ASK_REASON = "User confirmation required"
RISK_FACTORS_HEADER = "Risk factors identified by HET:"

EXIT_ALLOW = 0
EXIT_BLOCK = 2


def claude_code_response(decision: Decision) -> dict[str, Any]:
    """Build the claude-code response object for a decision."""
    response: dict[str, Any] = {}

    if decision.action == Action.ALLOW:
        if decision.updated_arguments:
            response["updatedInput"] = decision.updated_arguments
    elif decision.action == Action.DENY:
        response["decision"] = "block"
        response["reason"] = decision.reason or DEFAULT_BLOCK_REASON
    else:
        response["decision"] = "ask"
        response["reason"] = decision.reason or DEFAULT_ASK_REASON

    additional = decision.extra_context or ""
    if decision.risk_factors:
        bullets = "\n- ".join(decision.risk_factors)
        additional += f"\n\n{RISK_FACTORS_HEADER}\n- {bullets}"
    if additional:
        response["additionalContext"] = additional

    return response


def copilot_response(decision: Decision) -> dict[str, Any]:
    """Build the copilot response object for a decision (None values omitted)."""
    response: dict[str, Any] = {"allow": decision.action == Action.ALLOW}
    if decision.reason is not None:
        response["message"] = decision.reason
    if decision.updated_arguments is not None:
        response["modifiedInput"] = decision.updated_arguments
    return response


def format_response(decision: Decision, source: HookSource | str) -> str:
    """
    Serialize a decision for the given hook source.

    For claude-code an allow with nothing to add is the empty string, which
    the assistant reads as "proceed".
    """
    if HookSource(source) == HookSource.CLAUDE_CODE:
        response = claude_code_response(decision)
        return json.dumps(response) if response else ""
    return json.dumps(copilot_response(decision))


def exit_code(decision: Decision) -> int:
    """Process exit code for a decision: 2 blocks, everything else is 0."""
    return EXIT_BLOCK if decision.action == Action.DENY else EXIT_ALLOW
