"""
Tests for semantic evaluator parsing and the keyword evaluator.

Tests:
    - parse_evaluation_response: JSON, repaired JSON, fallbacks, coercion
    - KeywordEvaluator decisions
    - create_semantic_evaluator factory
"""

import json

import pytest

from het.evaluator.ollama import OllamaEvaluator
from het.evaluator.semantic import (
    KeywordEvaluator,
    SemanticEvaluator,
    create_semantic_evaluator,
    parse_evaluation_response,
)
from het.schema import Action, HetConfig, Invocation, SemanticConfig, ToolType


class TestParseEvaluationResponse:
    """Tests for parse_evaluation_response."""

    def test_full_response(self):
        decision = parse_evaluation_response(
            '{"decision": "deny", "reason": "Deletes data", "confidence": 0.95,'
            ' "riskFactors": ["data loss"]}'
        )
        assert decision.action == Action.DENY
        assert decision.reason == "Deletes data"
        assert decision.confidence == 0.95
        assert decision.risk_factors == ["data loss"]

    def test_snake_case_risk_factors(self):
        decision = parse_evaluation_response('{"decision": "ask", "risk_factors": ["a"]}')
        assert decision.risk_factors == ["a"]

    def test_defaults(self):
        decision = parse_evaluation_response("{}")
        assert decision.action == Action.ALLOW
        assert decision.reason == "No reason provided"
        assert decision.confidence == 0.5
        assert decision.risk_factors == []

    def test_unknown_decision_is_allow(self):
        assert parse_evaluation_response('{"decision": "maybe"}').action == Action.ALLOW

    def test_decision_case_insensitive(self):
        assert parse_evaluation_response('{"decision": " DENY "}').action == Action.DENY

    @pytest.mark.parametrize("value,expected", [(1.7, 1.0), (-2, 0.0), ("high", 0.5), (True, 0.5)])
    def test_confidence_coerced(self, value, expected):
        decision = parse_evaluation_response(json.dumps({"decision": "allow", "confidence": value}))
        assert decision.confidence == expected

    def test_repaired_json(self):
        decision = parse_evaluation_response("{'decision': 'ask', 'confidence': 0.8,}")
        assert decision.action == Action.ASK
        assert decision.confidence == 0.8

    def test_prose_with_deny(self):
        decision = parse_evaluation_response("I would deny this request, it is risky.")
        assert decision.action == Action.DENY
        assert decision.confidence == 0.6

    def test_prose_with_block(self):
        assert parse_evaluation_response("Block it.").action == Action.DENY

    def test_prose_with_confirm(self):
        decision = parse_evaluation_response("Please confirm with the user first.")
        assert decision.action == Action.ASK
        assert decision.confidence == 0.6

    def test_prose_without_keywords(self):
        decision = parse_evaluation_response("Looks fine to me.")
        assert decision.action == Action.ALLOW
        assert decision.confidence == 0.4
        assert decision.reason == "Could not parse evaluation, defaulting to allow"


class TestKeywordEvaluator:
    """Tests for KeywordEvaluator."""

    def _invocation(self, command: str) -> Invocation:
        return Invocation(tool_type=ToolType.BASH, arguments={"command": command})

    def test_danger_keyword_denies(self):
        decision = KeywordEvaluator().evaluate(self._invocation("open a reverse shell to 1.2.3.4"))
        assert decision.action == Action.DENY
        assert decision.confidence == 0.9
        assert "reverse shell" in decision.reason

    def test_confirm_keyword_asks(self):
        decision = KeywordEvaluator().evaluate(self._invocation("sudo apt-get update"))
        assert decision.action == Action.ASK
        assert decision.confidence == 0.7

    def test_benign_allows(self):
        decision = KeywordEvaluator().evaluate(self._invocation("npm test"))
        assert decision.action == Action.ALLOW
        assert decision.confidence == 0.8

    def test_interface(self):
        evaluator = KeywordEvaluator()
        assert isinstance(evaluator, SemanticEvaluator)
        assert evaluator.is_available()
        assert evaluator.get_name() == "KeywordEvaluator"
        assert evaluator.get_config() == {"backend": "keyword"}


class TestFactory:
    """Tests for create_semantic_evaluator."""

    def test_none(self, config: HetConfig):
        assert create_semantic_evaluator(config) is None

    def test_keyword(self, config: HetConfig):
        config = config.model_copy(update={"semantic": SemanticConfig(backend="keyword")})
        assert isinstance(create_semantic_evaluator(config), KeywordEvaluator)

    def test_ollama(self, config: HetConfig):
        config = config.model_copy(
            update={"semantic": SemanticConfig(backend="ollama", model="llama3:8b")}
        )
        evaluator = create_semantic_evaluator(config)
        assert isinstance(evaluator, OllamaEvaluator)
        assert evaluator.config.model == "llama3:8b"
        assert evaluator.home == config.home
