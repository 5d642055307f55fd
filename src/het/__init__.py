"""
HET - Hook Evaluation Tool.

HET sits between an AI coding assistant's pre-tool-use hook and the tool
itself. Every pending tool call is normalized, checked against built-in and
custom rules, optionally handed to a semantic evaluator, and answered with
allow, deny or ask. It provides:
- Tiered evaluation (cache, rules, semantic fallback, safe default)
- Secret redaction before anything is logged or leaves the process
- An append-only audit log
- A hook command and a local daemon

Example usage:
    $ echo '{"tool_name": "Bash", "tool_input": {"command": "ls"}}' | het evaluate
    $ het test Bash "git push --force"
    $ het serve
"""

__version__ = "1.0.0"
__author__ = "HET Contributors"

__all__ = [
    "__version__",
    "__author__",
]
