"""
Hook I/O for HET.

Assistants call HET from a pre-tool-use hook. This package translates
between their payloads and HET's own models:

Components:
    - normalize / parse_hook_input: payload JSON -> Invocation
    - format_response / exit_code: Decision -> response body and exit code

Usage:
    from het.hooks import parse_hook_input, format_response, exit_code

    invocation = parse_hook_input(sys.stdin.read())
    if invocation is None:
        sys.exit(0)  # fail open
    decision = evaluator.evaluate(invocation, rules)
    print(format_response(decision, invocation.source))
    sys.exit(exit_code(decision))
"""

from het.hooks.parser import TOOL_NAME_MAP, normalize, normalize_tool_name, parse_hook_input
from het.hooks.response import exit_code, format_response

__all__ = [
    "TOOL_NAME_MAP",
    "exit_code",
    "format_response",
    "normalize",
    "normalize_tool_name",
    "parse_hook_input",
]
