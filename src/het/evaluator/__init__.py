"""
Evaluator module for HET.

Components:
    - TieredEvaluator: cache -> rules -> semantic evaluator -> default
    - EvaluatorState: Decision cache and health counters
    - DecisionCache: TTL cache keyed by tool type and arguments
    - SemanticEvaluator: Interface for slow-path evaluators
    - KeywordEvaluator / OllamaEvaluator: Implementations

Usage:
    from het.evaluator import TieredEvaluator, create_semantic_evaluator

    evaluator = TieredEvaluator(config, semantic=create_semantic_evaluator(config))
    decision = evaluator.evaluate(invocation, rules)
"""

from het.evaluator.cache import DecisionCache, cache_key, compute_hash
from het.evaluator.engine import EvaluatorState, TieredEvaluator
from het.evaluator.ollama import OllamaEvaluator
from het.evaluator.semantic import (
    KeywordEvaluator,
    SemanticEvaluator,
    create_semantic_evaluator,
    parse_evaluation_response,
)

__all__ = [
    "DecisionCache",
    "EvaluatorState",
    "KeywordEvaluator",
    "OllamaEvaluator",
    "SemanticEvaluator",
    "TieredEvaluator",
    "cache_key",
    "compute_hash",
    "create_semantic_evaluator",
    "parse_evaluation_response",
]
