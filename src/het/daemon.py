"""
HET daemon: the evaluator behind a local HTTP API.

Hooks that cannot afford a process start per tool call POST their payload
to the daemon instead of running ``het evaluate``.

Endpoints:
    GET  /health         Status, uptime, rule and evaluation counts
    POST /evaluate       Raw hook JSON in, hook response out
    GET  /stats          Evaluator, audit and rule statistics
    GET  /logs?limit=N   Recent audit records, newest first
    POST /reload-rules   Re-read the global rules file
    POST /clear-cache    Flush the decision cache
    GET  /version        Name and version

/evaluate answers 204 when a claude-code allow needs no body, and always
sets X-HET-Decision, X-HET-Confidence and X-HET-Time-Ms.
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from het import __version__
from het.errors import NormalizationError
from het.evaluator.engine import TieredEvaluator
from het.evaluator.semantic import create_semantic_evaluator
from het.hooks.parser import normalize
from het.hooks.response import format_response
from het.rules.loader import RuleStore
from het.schema import Decision, HetConfig
from het.store.audit import AuditLogger

logger = logging.getLogger(__name__)

APP_NAME = "HET - Hook Evaluation Tool"
DEFAULT_LOGS_LIMIT = 50
MAX_LOGS_LIMIT = 500


class HealthReport(BaseModel):
    """Response body of GET /health."""

    status: str = "healthy"
    version: str = __version__
    uptime_seconds: int = 0
    rules_loaded: int = 0
    evaluation_count: int = 0
    last_evaluation: datetime | None = None
    cache_size: int = 0
    semantic_available: bool = False


class DaemonState:
    """Objects shared by all requests."""

    def __init__(
        self,
        config: HetConfig,
        evaluator: TieredEvaluator,
        rule_store: RuleStore,
        audit: AuditLogger | None,
    ) -> None:
        self.config = config
        self.evaluator = evaluator
        self.rule_store = rule_store
        self.audit = audit
        self.start_time = time.monotonic()

    def uptime_seconds(self) -> int:
        return int(time.monotonic() - self.start_time)


def _decision_headers(decision: Decision, elapsed_ms: float) -> dict[str, str]:
    return {
        "X-HET-Decision": decision.action.value,
        "X-HET-Confidence": str(decision.confidence),
        "X-HET-Time-Ms": str(round(elapsed_ms)),
    }


def create_app(
    config: HetConfig | None = None,
    evaluator: TieredEvaluator | None = None,
    rule_store: RuleStore | None = None,
) -> FastAPI:
    """
    Build the daemon application.

    Args:
        config: Runtime configuration (default: HetConfig())
        evaluator: Evaluator to serve. Built from config when omitted.
        rule_store: Global rule source. Built from config when omitted.
    """
    config = config or HetConfig()
    if evaluator is None:
        audit = AuditLogger(config.audit_path, config.audit_max_bytes)
        evaluator = TieredEvaluator(
            config,
            semantic=create_semantic_evaluator(config),
            audit=audit,
        )
    state = DaemonState(
        config=config,
        evaluator=evaluator,
        rule_store=rule_store or RuleStore(config.rules_path),
        audit=evaluator.audit,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        count = state.rule_store.reload()
        logger.info("HET daemon ready with %d global rules", count)
        yield
        state.evaluator.close()
        logger.info("HET daemon stopped")

    app = FastAPI(title="HET", version=__version__, lifespan=lifespan)
    app.state.het = state

    @app.get("/health")
    def health() -> HealthReport:
        stats = state.evaluator.stats()
        return HealthReport(
            uptime_seconds=state.uptime_seconds(),
            rules_loaded=len(state.rule_store.global_rules),
            evaluation_count=stats.evaluation_count,
            last_evaluation=stats.last_evaluation,
            cache_size=stats.cache_size,
            semantic_available=stats.semantic_available,
        )

    @app.post("/evaluate")
    async def evaluate(request: Request) -> Response:
        start = time.perf_counter()
        raw = (await request.body()).decode("utf-8", errors="replace")

        try:
            invocation = normalize(raw)
        except NormalizationError as e:
            logger.warning("Rejected hook input: %s", e.message)
            return JSONResponse(
                status_code=400,
                content={"error": "Invalid hook input format", "detail": e.to_dict()},
            )

        rules = await run_in_threadpool(state.rule_store.rules_for, invocation.working_directory)
        decision = await run_in_threadpool(state.evaluator.evaluate, invocation, rules)
        elapsed_ms = (time.perf_counter() - start) * 1000

        headers = _decision_headers(decision, elapsed_ms)
        body = format_response(decision, invocation.source)
        if not body:
            return Response(status_code=204, headers=headers)
        return Response(content=body, media_type="application/json", headers=headers)

    @app.get("/stats")
    def stats() -> dict[str, Any]:
        audit_stats = state.audit.stats() if state.audit is not None else None
        return {
            "evaluator": state.evaluator.stats().model_dump(mode="json"),
            "audit": audit_stats.model_dump(mode="json") if audit_stats else None,
            "rules": {"global_count": len(state.rule_store.global_rules)},
        }

    @app.get("/logs")
    def logs(limit: int = DEFAULT_LOGS_LIMIT) -> dict[str, Any]:
        if state.audit is None:
            return {"entries": []}
        limit = min(max(limit, 1), MAX_LOGS_LIMIT)
        return {
            "entries": [record.model_dump(mode="json") for record in state.audit.read_recent(limit)]
        }

    @app.post("/reload-rules")
    def reload_rules() -> dict[str, Any]:
        count = state.rule_store.reload()
        return {"message": "Rules reloaded", "count": count}

    @app.post("/clear-cache")
    def clear_cache() -> dict[str, Any]:
        cleared = state.evaluator.clear_cache()
        return {"message": "Cache cleared", "cleared": cleared}

    @app.get("/version")
    def version() -> dict[str, str]:
        return {"version": __version__, "name": APP_NAME}

    return app


def run(config: HetConfig) -> None:
    """Serve the daemon with uvicorn until interrupted."""
    logger.info("Starting HET daemon on http://%s:%d", config.host, config.port)
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level,
    )
