"""
Rules module for HET.

Components:
    - BUILTIN_PATTERNS: Fixed per-tool-type checks that always run first
    - RuleMatcher / match_rules: First-match-wins pass over built-ins and custom rules
    - load_rules_file / merge_rules / RuleStore: YAML rule loading and merging

Usage:
    from het.rules import RuleStore, match_rules

    store = RuleStore(config.rules_path)
    result = match_rules(invocation, store.rules_for(invocation.working_directory))
"""

from het.rules.builtin import BUILTIN_PATTERNS, BuiltinPattern, Target
from het.rules.loader import (
    RuleStore,
    find_repo_rules_file,
    load_rules,
    load_rules_file,
    load_rules_from_string,
    merge_rules,
    rules_for_directory,
    validate_rule,
)
from het.rules.matcher import RuleMatcher, extract, match_rules

__all__ = [
    "BUILTIN_PATTERNS",
    "BuiltinPattern",
    "RuleMatcher",
    "RuleStore",
    "Target",
    "extract",
    "find_repo_rules_file",
    "load_rules",
    "load_rules_file",
    "load_rules_from_string",
    "match_rules",
    "merge_rules",
    "rules_for_directory",
    "validate_rule",
]
