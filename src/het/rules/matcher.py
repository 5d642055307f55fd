"""
Rule Matcher for HET.

Matching is a single ordered pass:

    1. Built-in patterns for the invocation's tool type (het.rules.builtin)
    2. Custom rules in list order (tool filter, context, pattern, pathPattern)
    3. No match

The first hit wins. Built-ins always run first, so custom rules can add
restrictions or allowances only for what the built-in table does not cover.

Each tool type has one extractor that yields the text tested by content
patterns and the text tested by path patterns. The extractor table must
cover every ToolType; this is checked when the module is imported.
"""

import functools
import json
import logging
import re
import sys
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any, NamedTuple

from het.rules.builtin import BUILTIN_PATTERNS, BuiltinPattern, Target, builtin_rule_name
from het.schema import Decision, Invocation, MatchResult, OsType, Rule, RuleContext, ToolType

logger = logging.getLogger(__name__)


# =============================================================================
# Extraction
# =============================================================================


class Extraction(NamedTuple):
    """Text a rule can match against. None means "nothing to match"."""

    content: str | None
    path: str | None


PATH_KEYS = ("file_path", "filePath", "path")


def _first_str(args: Mapping[str, Any], *keys: str) -> str | None:
    """First non-empty string among the given argument keys."""
    for key in keys:
        value = args.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _extract_bash(args: Mapping[str, Any]) -> Extraction:
    return Extraction(_first_str(args, "command"), None)


def _extract_powershell(args: Mapping[str, Any]) -> Extraction:
    return Extraction(_first_str(args, "command", "script", "code"), None)


def _extract_write(args: Mapping[str, Any]) -> Extraction:
    return Extraction(_first_str(args, "content"), _first_str(args, *PATH_KEYS))


def _extract_edit(args: Mapping[str, Any]) -> Extraction:
    return Extraction(
        _first_str(args, "new_string", "newString", "content"),
        _first_str(args, *PATH_KEYS),
    )


def _extract_notebook_edit(args: Mapping[str, Any]) -> Extraction:
    return Extraction(
        _first_str(args, "new_source"),
        _first_str(args, "notebook_path", "notebookPath"),
    )


def _extract_read(args: Mapping[str, Any]) -> Extraction:
    path = _first_str(args, *PATH_KEYS)
    return Extraction(path, path)


def _extract_search(args: Mapping[str, Any]) -> Extraction:
    return Extraction(
        _first_str(args, "pattern", "path"),
        _first_str(args, "path", "pattern"),
    )


def _extract_web_fetch(args: Mapping[str, Any]) -> Extraction:
    return Extraction(_first_str(args, "url"), None)


def _extract_web_search(args: Mapping[str, Any]) -> Extraction:
    return Extraction(_first_str(args, "query"), None)


def _extract_task(args: Mapping[str, Any]) -> Extraction:
    return Extraction(_first_str(args, "prompt", "description"), None)


def _extract_mcp(args: Mapping[str, Any]) -> Extraction:
    return Extraction(json.dumps(args, sort_keys=True, ensure_ascii=False, default=str), None)


EXTRACTORS: dict[ToolType, Callable[[Mapping[str, Any]], Extraction]] = {
    ToolType.BASH: _extract_bash,
    ToolType.POWERSHELL: _extract_powershell,
    ToolType.WRITE: _extract_write,
    ToolType.EDIT: _extract_edit,
    ToolType.NOTEBOOK_EDIT: _extract_notebook_edit,
    ToolType.READ: _extract_read,
    ToolType.GLOB: _extract_search,
    ToolType.GREP: _extract_search,
    ToolType.WEB_FETCH: _extract_web_fetch,
    ToolType.WEB_SEARCH: _extract_web_search,
    ToolType.TASK: _extract_task,
    ToolType.MCP: _extract_mcp,
}

_missing_extractors = set(ToolType) - set(EXTRACTORS)
if _missing_extractors:
    raise RuntimeError(f"No extractor for tool types: {sorted(t.value for t in _missing_extractors)}")

_missing_builtins = set(ToolType) - set(BUILTIN_PATTERNS)
if _missing_builtins:
    raise RuntimeError(f"No built-in table for tool types: {sorted(t.value for t in _missing_builtins)}")


def extract(invocation: Invocation) -> Extraction:
    """Content and path text for an invocation."""
    return EXTRACTORS[invocation.tool_type](invocation.arguments)


# =============================================================================
# Context
# =============================================================================


def current_os() -> str:
    """Platform family of the running interpreter (windows, darwin, linux, ...)."""
    if sys.platform == "win32":
        return OsType.WINDOWS.value
    if sys.platform.startswith("linux"):
        return OsType.LINUX.value
    return sys.platform


def context_matches(context: RuleContext, working_directory: str | None) -> bool:
    """
    Check a rule's context conditions. All given conditions must hold.

    Args:
        context: The rule's context block
        working_directory: Invocation working directory (default: cwd)
    """
    working_dir = working_directory or str(Path.cwd())

    if context.os_type is not None and context.os_type.value != current_os():
        return False

    if context.has_file is not None and not (Path(working_dir) / context.has_file).exists():
        return False

    if context.in_directory is not None and context.in_directory not in working_dir:
        return False

    return not (
        context.not_in_directory is not None and context.not_in_directory in working_dir
    )


# =============================================================================
# Matcher
# =============================================================================


@functools.lru_cache(maxsize=1024)
def compile_rule_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a custom rule regex (case-insensitive). Raises re.error."""
    return re.compile(pattern, re.IGNORECASE)


class RuleMatcher:
    """
    Matches invocations against the built-in table and custom rules.

    Usage:
        matcher = RuleMatcher()
        result = matcher.match(invocation, rules)
        if result.matched:
            return result.decision

    Attributes:
        builtin_patterns: Built-in table, by tool type
    """

    def __init__(
        self,
        builtin_patterns: Mapping[ToolType, Sequence[BuiltinPattern]] | None = None,
    ) -> None:
        self.builtin_patterns = BUILTIN_PATTERNS if builtin_patterns is None else builtin_patterns

    def match(self, invocation: Invocation, rules: Sequence[Rule]) -> MatchResult:
        """
        Run one matching pass.

        Args:
            invocation: The invocation to check
            rules: Custom rules, already merged and filtered, in priority order

        Returns:
            MatchResult; decision is set when matched
        """
        extraction = extract(invocation)

        builtin = self._match_builtin(invocation.tool_type, extraction)
        if builtin.matched:
            return builtin

        return self._match_custom(invocation, rules, extraction)

    def match_custom(self, invocation: Invocation, rules: Sequence[Rule]) -> MatchResult:
        """Match custom rules only, ignoring the built-in table."""
        return self._match_custom(invocation, rules, extract(invocation))

    def builtin_hits(self, invocation: Invocation) -> list[BuiltinPattern]:
        """Every built-in entry that matches, in table order."""
        extraction = extract(invocation)
        hits = []
        for entry in self.builtin_patterns.get(invocation.tool_type, ()):
            text = extraction.content if entry.target == Target.CONTENT else extraction.path
            if text is not None and entry.pattern.search(text):
                hits.append(entry)
        return hits

    def _match_custom(
        self, invocation: Invocation, rules: Sequence[Rule], extraction: Extraction
    ) -> MatchResult:
        for rule in rules:
            if self._rule_matches(rule, invocation, extraction):
                logger.debug("Rule matched: %s (%s)", rule.name, invocation.tool_type.value)
                return MatchResult(
                    matched=True,
                    rule=rule,
                    decision=Decision(
                        action=rule.action,
                        reason=rule.reason,
                        confidence=1.0,
                        matched_rule=rule.name,
                    ),
                )

        return MatchResult.no_match()

    def _match_builtin(self, tool_type: ToolType, extraction: Extraction) -> MatchResult:
        for entry in self.builtin_patterns.get(tool_type, ()):
            text = extraction.content if entry.target == Target.CONTENT else extraction.path
            if text is None or not entry.pattern.search(text):
                continue
            name = builtin_rule_name(tool_type)
            logger.debug("Built-in pattern matched: %s (%s)", name, entry.reason)
            return MatchResult(
                matched=True,
                decision=Decision(
                    action=entry.action,
                    reason=entry.reason,
                    confidence=1.0,
                    matched_rule=name,
                    risk_factors=[entry.reason],
                ),
            )
        return MatchResult.no_match()

    def _rule_matches(self, rule: Rule, invocation: Invocation, extraction: Extraction) -> bool:
        if not rule.applies_to(invocation.tool_type):
            return False

        if rule.context is not None and not context_matches(
            rule.context, invocation.working_directory
        ):
            return False

        if rule.pattern and self._search(rule, rule.pattern, extraction.content):
            return True

        return bool(rule.path_pattern and self._search(rule, rule.path_pattern, extraction.path))

    def _search(self, rule: Rule, pattern: str, text: str | None) -> bool:
        if text is None:
            return False
        try:
            regex = compile_rule_pattern(pattern)
        except re.error as e:
            logger.warning("Invalid regex in rule %r: %s (%s)", rule.name, pattern, e)
            return False
        return regex.search(text) is not None


_default_matcher = RuleMatcher()


def match_rules(invocation: Invocation, rules: Sequence[Rule]) -> MatchResult:
    """Match with the default built-in table."""
    return _default_matcher.match(invocation, rules)
