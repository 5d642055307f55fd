"""
Semantic (slow-path) evaluators.

When no rule matches, the tiered evaluator may ask a semantic evaluator for
a judgement. Backends produce response text in the JSON shape described by
the security prompt; parse_evaluation_response turns that text into a
Decision, falling back to keyword sniffing when it is not JSON.

Implementations:
    - KeywordEvaluator: offline heuristic, no model required
    - OllamaEvaluator: local model via Ollama (het.evaluator.ollama)

Security Note:
    Evaluators only ever see redacted arguments. Their output is advisory
    and is validated into a Decision before use.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from het.evaluator.json_repair import parse_json_object
from het.schema import Action, Decision, Invocation, SemanticBackend

if TYPE_CHECKING:
    from het.schema import HetConfig

logger = logging.getLogger(__name__)

MAX_FALLBACK_REASON_LENGTH = 200
DEFAULT_RESPONSE_CONFIDENCE = 0.5


class SemanticEvaluator(ABC):
    """
    Abstract base class for semantic evaluators.

    Subclasses implement complete(), which returns raw response text for an
    invocation. evaluate() parses that text into a Decision.

    Example Implementation:
        class AlwaysAsk(SemanticEvaluator):
            def complete(self, invocation):
                return '{"decision": "ask", "reason": "always", "confidence": 0.9}'
    """

    @abstractmethod
    def complete(self, invocation: Invocation) -> str:
        """
        Produce response text for an invocation.

        Args:
            invocation: Invocation with redacted arguments

        Returns:
            Response text, ideally JSON

        Raises:
            SemanticEvaluationError: Backend failure of any kind
        """
        ...

    def evaluate(self, invocation: Invocation) -> Decision:
        """Judge an invocation. Raises SemanticEvaluationError on backend failure."""
        return parse_evaluation_response(self.complete(invocation))

    def is_available(self) -> bool:
        """Whether the evaluator can currently be used."""
        return True

    def get_name(self) -> str:
        """Return the evaluator's name for logging."""
        return self.__class__.__name__

    def get_config(self) -> dict[str, Any]:
        """Return evaluator configuration for debugging."""
        return {}

    def close(self) -> None:
        """Release any held resources."""
        return None


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return DEFAULT_RESPONSE_CONFIDENCE
    return min(max(float(value), 0.0), 1.0)


def _coerce_action(value: Any) -> Action:
    if isinstance(value, str):
        try:
            return Action(value.strip().lower())
        except ValueError:
            pass
    logger.warning("Unknown decision in evaluator response: %r", value)
    return Action.ALLOW


def _sniff_decision(text: str) -> Decision:
    """Best-effort decision from non-JSON response text."""
    lowered = text.lower()
    excerpt = text[:MAX_FALLBACK_REASON_LENGTH]

    if "deny" in lowered or "block" in lowered:
        return Decision.deny(excerpt, confidence=0.6)
    if "ask" in lowered or "confirm" in lowered:
        return Decision.ask(excerpt, confidence=0.6)
    return Decision.allow("Could not parse evaluation, defaulting to allow", confidence=0.4)


def parse_evaluation_response(text: str) -> Decision:
    """
    Turn evaluator response text into a Decision.

    JSON fields: decision, reason, confidence, riskFactors. A missing or
    unknown decision means allow; a missing confidence means 0.5.
    Non-JSON text is sniffed for deny/block and ask/confirm.
    """
    parsed, error = parse_json_object(text)
    if parsed is None:
        logger.warning("Evaluator response is not JSON (%s), using fallback", error)
        return _sniff_decision(text)

    if "decision" in parsed:
        action = _coerce_action(parsed["decision"])
    else:
        action = Action.ALLOW

    reason = parsed.get("reason")
    if not isinstance(reason, str) or not reason:
        reason = "No reason provided"

    risk_factors = parsed.get("riskFactors", parsed.get("risk_factors"))
    if not isinstance(risk_factors, list):
        risk_factors = []

    return Decision(
        action=action,
        reason=reason,
        confidence=_coerce_confidence(parsed.get("confidence")),
        risk_factors=[str(item) for item in risk_factors],
    )


# =============================================================================
# Keyword Evaluator
# =============================================================================

DANGER_KEYWORDS = (
    "rm -rf /",
    "delete all",
    "format disk",
    "drop database",
    "send to external",
    "exfiltrate",
    "backdoor",
    "reverse shell",
)

CONFIRM_KEYWORDS = (
    "force push",
    "overwrite",
    "sudo",
    "admin",
    "credentials",
    "password",
    "token",
    "secret",
)


class KeywordEvaluator(SemanticEvaluator):
    """
    Offline evaluator that looks for risky phrases in the invocation.

    Only the tool type and arguments are inspected, never the system
    prompt (which mentions most of the keywords itself).
    """

    def complete(self, invocation: Invocation) -> str:
        text = " ".join([
            invocation.tool_type.value,
            json.dumps(invocation.arguments, sort_keys=True, default=str),
        ]).lower()

        for keyword in DANGER_KEYWORDS:
            if keyword in text:
                return json.dumps({
                    "decision": "deny",
                    "reason": f"Detected potentially dangerous pattern: {keyword}",
                    "confidence": 0.9,
                    "riskFactors": ["dangerous-command"],
                })

        for keyword in CONFIRM_KEYWORDS:
            if keyword in text:
                return json.dumps({
                    "decision": "ask",
                    "reason": f"Operation involves {keyword}, user confirmation recommended",
                    "confidence": 0.7,
                    "riskFactors": ["needs-confirmation"],
                })

        return json.dumps({
            "decision": "allow",
            "reason": "No obvious security concerns detected",
            "confidence": 0.8,
            "riskFactors": [],
        })

    def get_config(self) -> dict[str, Any]:
        return {"backend": SemanticBackend.KEYWORD.value}


def create_semantic_evaluator(config: "HetConfig") -> SemanticEvaluator | None:
    """
    Build the semantic evaluator named by the configuration.

    Returns:
        The evaluator, or None when the backend is "none"
    """
    backend = config.semantic.backend
    if backend == SemanticBackend.KEYWORD:
        return KeywordEvaluator()
    if backend == SemanticBackend.OLLAMA:
        from het.evaluator.ollama import OllamaEvaluator

        return OllamaEvaluator(config.semantic, home=config.home)
    return None
