"""
Rule loading and merging.

Rule files are YAML:

    version: 1
    rules:
      - name: block-prod-db
        tool: Bash
        pattern: "psql .*prod"
        action: deny
        reason: Production database access
        category: system-modification

Loading is permissive: a bad rule is logged and dropped, a bad file yields
no rules. Nothing here raises to the caller except validate_rule, which
exists to report why a single rule is rejected.

Global rules live in <het_home>/rules.yaml; a repository may add
.het/rules.yaml, which overrides global rules of the same name.
"""

import logging
import re
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from het.config import REPO_RULES_FILENAME, find_repo_file
from het.errors import InvalidPatternError, InvalidRuleError, RuleValidationError
from het.schema import Rule, RulesFile

logger = logging.getLogger(__name__)


def validate_rule(raw: Any) -> Rule:
    """
    Validate one raw rule entry.

    Args:
        raw: A mapping from a rules file

    Returns:
        Validated Rule

    Raises:
        InvalidRuleError: Wrong shape, missing fields, bad action, no pattern
        InvalidPatternError: pattern or pathPattern does not compile
    """
    if not isinstance(raw, dict):
        raise InvalidRuleError(validation_error=f"rule must be a mapping, got {type(raw).__name__}")

    name = raw.get("name") if isinstance(raw.get("name"), str) else None

    try:
        rule = Rule.model_validate(raw)
    except ValidationError as e:
        raise InvalidRuleError(rule_name=name, validation_error=_summarize(e)) from e

    for pattern in (rule.pattern, rule.path_pattern):
        if pattern is None:
            continue
        try:
            re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise InvalidPatternError(
                rule_name=rule.name, pattern=pattern, regex_error=str(e)
            ) from e

    return rule


def _summarize(error: ValidationError) -> str:
    """One-line summary of a pydantic ValidationError."""
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item["loc"]) or "rule"
        parts.append(f"{loc}: {item['msg']}")
    return "; ".join(parts)


def load_rules(data: Any, source: str = "<rules>") -> list[Rule]:
    """
    Validate a parsed rules document.

    Args:
        data: Parsed YAML ({"version": 1, "rules": [...]})
        source: Label used in log messages

    Returns:
        Valid rules in file order; invalid entries are dropped
    """
    if data is None:
        return []

    try:
        rules_file = RulesFile.model_validate(data)
    except ValidationError as e:
        logger.warning("Invalid rules file format in %s: %s", source, _summarize(e))
        return []

    rules: list[Rule] = []
    for raw in rules_file.rules:
        try:
            rules.append(validate_rule(raw))
        except RuleValidationError as e:
            logger.warning("Skipping rule in %s: %s", source, e.message)

    logger.debug("Loaded %d rules from %s", len(rules), source)
    return rules


def load_rules_from_string(text: str, source: str = "<string>") -> list[Rule]:
    """Parse and validate rules from YAML text."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning("Invalid YAML in %s: %s", source, e)
        return []
    return load_rules(data, source)


def load_rules_file(path: Path | str) -> list[Rule]:
    """
    Load rules from a YAML file.

    A missing or unreadable file yields an empty list.
    """
    path = Path(path)
    if not path.is_file():
        logger.debug("Rules file not found: %s", path)
        return []

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error("Failed to read rules file %s: %s", path, e)
        return []

    return load_rules_from_string(text, source=str(path))


def find_repo_rules_file(working_dir: Path | str) -> Path | None:
    """Find .het/rules.yaml between working_dir and the repository root."""
    return find_repo_file(working_dir, REPO_RULES_FILENAME)


def merge_rules(base: Iterable[Rule], overlay: Iterable[Rule]) -> list[Rule]:
    """
    Merge two rule lists by name.

    Overlay rules replace base rules with the same name. Order follows each
    name's first appearance. Disabled rules are removed from the result, so
    an overlay can switch off a base rule by redefining it with
    ``enabled: false``.
    """
    merged: dict[str, Rule] = {}
    for rule in base:
        merged[rule.name] = rule
    for rule in overlay:
        merged[rule.name] = rule
    return [rule for rule in merged.values() if rule.enabled]


def rules_for_directory(global_rules: Iterable[Rule], working_dir: Path | str | None) -> list[Rule]:
    """Global rules merged with the repository rules found from working_dir."""
    repo_rules: list[Rule] = []
    if working_dir:
        repo_file = find_repo_rules_file(working_dir)
        if repo_file is not None:
            repo_rules = load_rules_file(repo_file)
    return merge_rules(global_rules, repo_rules)


class RuleStore:
    """
    Holds the global rules and resolves the effective rules per directory.

    Global rules are read once and kept until reload(). Repository rules are
    re-read on every lookup so edits take effect immediately.
    """

    def __init__(self, global_rules_path: Path | str) -> None:
        self.global_rules_path = Path(global_rules_path)
        self._lock = threading.Lock()
        self._global_rules: list[Rule] | None = None

    @property
    def global_rules(self) -> list[Rule]:
        with self._lock:
            if self._global_rules is None:
                self._global_rules = load_rules_file(self.global_rules_path)
            return list(self._global_rules)

    def reload(self) -> int:
        """Re-read the global rules file. Returns the number of rules loaded."""
        rules = load_rules_file(self.global_rules_path)
        with self._lock:
            self._global_rules = rules
        logger.info("Reloaded %d global rules from %s", len(rules), self.global_rules_path)
        return len(rules)

    def rules_for(self, working_dir: Path | str | None) -> list[Rule]:
        """Effective rules for an invocation made in working_dir."""
        return rules_for_directory(self.global_rules, working_dir)
