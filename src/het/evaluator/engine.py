"""
Tiered Evaluator for HET.

Every invocation goes through the same tiers, cheapest first:

    1. Decision cache (keyed by tool type + arguments)
    2. Rule Matcher (built-in table, then custom rules)
    3. Semantic evaluator, bounded by a deadline
    4. Default decision

Design Principles:
    - Never raises: every failure degrades to a Decision
    - Fail-open: timeouts and evaluator errors use the configured default
    - One audit record and one counter update per call, on every exit
    - Only confident answers are cached

The availability check and the semantic call run together on a daemon
thread. If they do not finish before the deadline the thread is abandoned and
its late result is discarded. A daemon thread never holds the process open.
"""

import logging
import queue
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from het.errors import SemanticEvaluationError, SemanticTimeoutError
from het.evaluator.cache import DecisionCache, cache_key
from het.evaluator.semantic import SemanticEvaluator
from het.rules.matcher import RuleMatcher
from het.schema import Decision, EvaluatorStats, HetConfig, Invocation, Rule
from het.secrets import redact_structure
from het.store.audit import AuditLogger

logger = logging.getLogger(__name__)

# Confidence of the timeout and failure defaults
FALLBACK_CONFIDENCE = 0.3
# No rule matched and no semantic evaluator answered the availability check
NO_SEMANTIC_CONFIDENCE = 0.5

TIMEOUT_REASON = "Evaluation timed out, using default decision"
FAILURE_REASON = "Semantic evaluation failed, using default decision"
NO_SEMANTIC_REASON = "No matching rules, semantic evaluator unavailable"
INTERNAL_ERROR_REASON = "Internal evaluation error, defaulting to allow"


def _no_semantic_decision() -> Decision:
    return Decision.allow(NO_SEMANTIC_REASON, confidence=NO_SEMANTIC_CONFIDENCE)


@dataclass
class EvaluatorState:
    """
    Mutable state shared by evaluations: the cache and health counters.

    Injected into TieredEvaluator so tests and embedders control its
    lifetime. Counters are updated under the lock.
    """

    cache: DecisionCache = field(default_factory=DecisionCache)
    evaluation_count: int = 0
    last_evaluation: datetime | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_evaluation(self) -> None:
        with self._lock:
            self.evaluation_count += 1
            self.last_evaluation = datetime.now(UTC)


class TieredEvaluator:
    """
    Decides allow/deny/ask for normalized invocations.

    Usage:
        evaluator = TieredEvaluator(config, semantic=KeywordEvaluator(), audit=audit)
        decision = evaluator.evaluate(invocation, rules)

    Attributes:
        config: Runtime configuration (timeouts, defaults, cache policy)
        matcher: Rule matcher
        semantic: Slow-path evaluator, or None
        audit: Audit logger, or None to skip auditing
        state: Cache and counters
    """

    def __init__(
        self,
        config: HetConfig | None = None,
        matcher: RuleMatcher | None = None,
        semantic: SemanticEvaluator | None = None,
        audit: AuditLogger | None = None,
        state: EvaluatorState | None = None,
    ) -> None:
        self.config = config or HetConfig()
        self.matcher = matcher or RuleMatcher()
        self.semantic = semantic
        self.audit = audit
        self.state = state or EvaluatorState(cache=DecisionCache(self.config.cache_ttl_seconds))

    def evaluate(self, invocation: Invocation, rules: Sequence[Rule] = ()) -> Decision:
        """
        Evaluate an invocation.

        Args:
            invocation: Normalized invocation
            rules: Effective custom rules for the invocation's directory

        Returns:
            The Decision. Never raises.
        """
        start = time.perf_counter()
        try:
            decision, cached = self._evaluate(invocation, rules)
        except Exception:
            logger.exception("Unexpected error evaluating %s invocation", invocation.tool_type.value)
            decision = Decision.allow(INTERNAL_ERROR_REASON, confidence=FALLBACK_CONFIDENCE)
            cached = False

        elapsed_ms = 0.0 if cached else (time.perf_counter() - start) * 1000
        self.state.record_evaluation()
        if self.audit is not None:
            try:
                self.audit.record_evaluation(invocation, decision, elapsed_ms, cached)
            except Exception:
                logger.exception("Audit write failed for %s invocation", invocation.tool_type.value)
        return decision

    def _evaluate(self, invocation: Invocation, rules: Sequence[Rule]) -> tuple[Decision, bool]:
        """Run the tiers. Returns (decision, served_from_cache)."""
        key = cache_key(invocation)

        cached = self.state.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s invocation", invocation.tool_type.value)
            return cached, True

        result = self.matcher.match(invocation, rules)
        if result.matched and result.decision is not None:
            logger.info(
                "Rule %s matched %s invocation: %s",
                result.decision.matched_rule,
                invocation.tool_type.value,
                result.decision.action.value,
            )
            self.state.cache.set(key, result.decision)
            return result.decision, False

        if self.semantic is None:
            return _no_semantic_decision(), False

        decision, answered = self._evaluate_semantic(self.semantic, invocation)
        if answered and decision.confidence >= self.config.min_cache_confidence:
            self.state.cache.set(key, decision)
        return decision, False

    def _evaluate_semantic(
        self, semantic: SemanticEvaluator, invocation: Invocation
    ) -> tuple[Decision, bool]:
        """
        Run the semantic evaluator on redacted arguments under the deadline.

        Returns:
            (decision, answered). answered is False for the unavailable,
            timeout and failure defaults, which are never cached.
        """
        redaction = redact_structure(invocation.arguments)
        if redaction.secrets_found:
            logger.info("Secrets redacted before semantic evaluation: %s", redaction.secrets_found)
        redacted = invocation.model_copy(
            update={"arguments": redaction.redacted, "raw_payload": {}}
        )

        try:
            decision = self._call_with_deadline(semantic, redacted)
        except TimeoutError:
            logger.warning(
                "%s timed out after %ss", semantic.get_name(), self.config.timeout_seconds
            )
            return self._default_decision(TIMEOUT_REASON), False
        except SemanticTimeoutError as e:
            logger.warning("Semantic evaluation timed out: %s", e.message)
            return self._default_decision(TIMEOUT_REASON), False
        except SemanticEvaluationError as e:
            logger.error("Semantic evaluation failed: %s", e)
            return self._default_decision(FAILURE_REASON), False
        except Exception:
            logger.exception("%s raised unexpectedly", semantic.get_name())
            return self._default_decision(FAILURE_REASON), False

        if decision is None:
            logger.info("%s unavailable, skipping semantic evaluation", semantic.get_name())
            return _no_semantic_decision(), False

        logger.info(
            "%s judged %s invocation: %s (%.2f)",
            semantic.get_name(),
            invocation.tool_type.value,
            decision.action.value,
            decision.confidence,
        )

        if redaction.secrets_found:
            note = f"Secrets detected and redacted: {', '.join(redaction.secrets_found)}"
            decision = decision.model_copy(update={"risk_factors": [*decision.risk_factors, note]})
        return decision, True

    def _call_with_deadline(
        self, semantic: SemanticEvaluator, invocation: Invocation
    ) -> Decision | None:
        """
        Check availability and evaluate on a daemon thread, waiting at most
        config.timeout_seconds for both.

        Returns:
            The evaluator's Decision, or None when it reports itself unavailable

        Raises:
            TimeoutError: Nothing arrived before the deadline
            Exception: Whatever the evaluator raised
        """
        outcome: queue.Queue[tuple[Decision | None, Exception | None]] = queue.Queue(maxsize=1)

        def call() -> None:
            try:
                if not semantic.is_available():
                    outcome.put((None, None))
                    return
                outcome.put((semantic.evaluate(invocation), None))
            except Exception as e:
                outcome.put((None, e))

        worker = threading.Thread(target=call, name="het-semantic", daemon=True)
        worker.start()
        try:
            decision, error = outcome.get(timeout=self.config.timeout_seconds)
        except queue.Empty:
            raise TimeoutError from None
        if error is not None:
            raise error
        return decision

    def _default_decision(self, reason: str) -> Decision:
        return Decision(
            action=self.config.default_on_timeout,
            reason=reason,
            confidence=FALLBACK_CONFIDENCE,
        )

    def semantic_available(self) -> bool:
        return self.semantic is not None and self.semantic.is_available()

    def stats(self) -> EvaluatorStats:
        """Counters for health reporting."""
        return EvaluatorStats(
            evaluation_count=self.state.evaluation_count,
            last_evaluation=self.state.last_evaluation,
            cache_size=len(self.state.cache),
            semantic_available=self.semantic_available(),
        )

    def clear_cache(self) -> int:
        """Flush the decision cache. Returns how many entries were dropped."""
        count = self.state.cache.clear()
        logger.info("Evaluation cache cleared (%d entries)", count)
        return count

    def close(self) -> None:
        """Release the semantic evaluator. Abandoned calls are not waited for."""
        if self.semantic is not None:
            self.semantic.close()

    def __enter__(self) -> "TieredEvaluator":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
