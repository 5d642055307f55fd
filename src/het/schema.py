"""
Schema definitions for HET.

This module defines all the Pydantic models used throughout HET:
- Invocation: One normalized tool call awaiting a decision
- Rule/RuleContext: Custom, YAML-configured rules
- Decision/MatchResult: The result of evaluation
- AuditRecord/AuditStats: What the audit log stores and reports
- SemanticConfig/HetConfig: Runtime configuration

Design Decisions:
    - Closed enums for tool types, actions and categories
    - Models are immutable where possible (frozen=True)
    - Rule fields accept the camelCase spellings used in rule files
"""

import logging
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================


class ToolType(str, Enum):
    """Canonical tool types. Every Invocation carries exactly one of these."""

    BASH = "Bash"
    POWERSHELL = "PowerShell"
    WRITE = "Write"
    EDIT = "Edit"
    READ = "Read"
    GLOB = "Glob"
    GREP = "Grep"
    WEB_FETCH = "WebFetch"
    WEB_SEARCH = "WebSearch"
    TASK = "Task"
    NOTEBOOK_EDIT = "NotebookEdit"
    MCP = "MCP"


class Action(str, Enum):
    """Verdict for a tool invocation (also the action a rule prescribes)."""

    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


class RuleCategory(str, Enum):
    """Closed taxonomy tag for rules."""

    FILESYSTEM_DANGER = "filesystem-danger"
    NETWORK_EXFILTRATION = "network-exfiltration"
    CREDENTIAL_EXPOSURE = "credential-exposure"
    SYSTEM_MODIFICATION = "system-modification"
    PACKAGE_INSTALLATION = "package-installation"
    GENERAL = "general"


class HookSource(str, Enum):
    """Assistant product that produced the hook payload."""

    CLAUDE_CODE = "claude-code"
    COPILOT = "copilot"


class OsType(str, Enum):
    """Platform family used by rule context predicates."""

    WINDOWS = "windows"
    LINUX = "linux"
    DARWIN = "darwin"


class SemanticBackend(str, Enum):
    """Which semantic evaluator to run when no rule matches."""

    NONE = "none"
    KEYWORD = "keyword"
    OLLAMA = "ollama"


# =============================================================================
# Invocation
# =============================================================================


class Invocation(BaseModel):
    """
    A normalized tool invocation.

    Built by the hook normalizer from an assistant-specific payload.
    The raw payload is kept so responses can be shaped for the caller.

    Attributes:
        tool_type: Canonical tool type
        arguments: Tool arguments (shape depends on tool type)
        tool_name: The assistant's own name for the tool
        session_id: Assistant session identifier, if sent
        working_directory: Caller's working directory, if sent
        source: Which assistant produced the payload
        raw_payload: The original parsed payload
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tool_type: ToolType = Field(..., description="Canonical tool type")
    arguments: dict[str, Any] = Field(
        default_factory=dict,
        description="Tool arguments",
    )
    tool_name: str | None = Field(
        default=None,
        description="Original tool name from the assistant",
    )
    session_id: str | None = Field(default=None, description="Session identifier")
    working_directory: str | None = Field(
        default=None,
        description="Working directory of the caller",
    )
    source: HookSource = Field(
        default=HookSource.CLAUDE_CODE,
        description="Assistant product that produced the payload",
    )
    raw_payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Original parsed payload",
    )


# =============================================================================
# Rule Models
# =============================================================================


class RuleContext(BaseModel):
    """
    Context conditions for a rule. All given conditions must hold.

    Attributes:
        os_type: Platform family the rule applies to
        has_file: File that must exist, relative to the working directory
        in_directory: Substring the working directory must contain
        not_in_directory: Substring the working directory must not contain
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    os_type: OsType | None = Field(default=None, alias="osType")
    has_file: str | None = Field(default=None, alias="hasFile")
    in_directory: str | None = Field(default=None, alias="inDirectory")
    not_in_directory: str | None = Field(default=None, alias="notInDirectory")


class Rule(BaseModel):
    """
    A custom rule.

    Attributes:
        name: Unique key; later files override earlier ones by name
        tool: Tool types the rule applies to (None = all)
        pattern: Regex over the tool's content extraction
        path_pattern: Regex over the tool's path extraction
        context: Optional context conditions
        action: allow, deny or ask
        reason: Human-readable explanation
        category: Taxonomy tag
        enabled: Disabled rules are dropped at merge time
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str = Field(..., min_length=1, description="Unique rule name")
    tool: list[ToolType] | None = Field(
        default=None,
        description="Tool types this rule applies to",
    )
    pattern: str | None = Field(default=None, description="Content regex")
    path_pattern: str | None = Field(
        default=None,
        alias="pathPattern",
        description="Path regex",
    )
    context: RuleContext | None = Field(default=None, description="Context conditions")
    action: Action = Field(..., description="Action when the rule matches")
    reason: str = Field(..., min_length=1, description="Why the rule exists")
    category: RuleCategory = Field(
        default=RuleCategory.GENERAL,
        description="Taxonomy tag",
    )
    enabled: bool = Field(default=True, description="Whether the rule is active")

    @field_validator("tool", mode="before")
    @classmethod
    def normalize_tool_filter(cls, v: Any) -> Any:
        """Accept a single tool or a list; drop unknown tool names."""
        if v is None:
            return None
        values = [v] if isinstance(v, str) else v
        if not isinstance(values, list):
            msg = f"tool must be a string or a list, got {type(v).__name__}"
            raise ValueError(msg)

        known = {t.value for t in ToolType}
        kept = []
        for value in values:
            if isinstance(value, str) and value in known:
                kept.append(value)
            else:
                logger.warning("Ignoring unknown tool in rule filter: %s", value)
        if not kept:
            msg = f"tool filter names no known tool: {v}"
            raise ValueError(msg)
        return kept

    @field_validator("category", mode="before")
    @classmethod
    def default_unknown_category(cls, v: Any) -> Any:
        """Unknown categories fall back to general."""
        if not isinstance(v, str) or v not in {c.value for c in RuleCategory}:
            return RuleCategory.GENERAL
        return v

    @model_validator(mode="after")
    def require_a_pattern(self) -> "Rule":
        """A rule must match on content, path, or both."""
        if not self.pattern and not self.path_pattern:
            msg = "rule must have pattern or pathPattern"
            raise ValueError(msg)
        return self

    def applies_to(self, tool_type: ToolType) -> bool:
        """Whether the tool filter admits this tool type."""
        return self.tool is None or tool_type in self.tool


class RulesFile(BaseModel):
    """Top-level structure of a rules YAML file."""

    model_config = ConfigDict(extra="ignore")

    version: int = Field(default=1, description="Rules file schema version")
    rules: list[Any] = Field(
        default_factory=list,
        description="Raw rule entries, validated individually",
    )


# =============================================================================
# Decision Models
# =============================================================================


class Decision(BaseModel):
    """
    Result of evaluating an invocation.

    Attributes:
        action: allow, deny or ask
        reason: Human-readable explanation
        confidence: 0.0-1.0, advisory (also drives cache writes)
        matched_rule: Name of the rule that decided, if any
        risk_factors: Ordered list of identified risks
        updated_arguments: Optional rewritten tool arguments
        extra_context: Free text passed back to the assistant
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    action: Action = Field(..., description="The verdict")
    reason: str | None = Field(default=None, description="Explanation")
    confidence: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Advisory confidence",
    )
    matched_rule: str | None = Field(default=None, description="Deciding rule")
    risk_factors: list[str] = Field(
        default_factory=list,
        description="Identified risks",
    )
    updated_arguments: dict[str, Any] | None = Field(
        default=None,
        description="Rewritten tool arguments",
    )
    extra_context: str | None = Field(default=None, description="Extra context")

    @classmethod
    def allow(cls, reason: str | None = None, **kwargs: Any) -> "Decision":
        """Create an ALLOW decision."""
        return cls(action=Action.ALLOW, reason=reason, **kwargs)

    @classmethod
    def deny(cls, reason: str | None = None, **kwargs: Any) -> "Decision":
        """Create a DENY decision."""
        return cls(action=Action.DENY, reason=reason, **kwargs)

    @classmethod
    def ask(cls, reason: str | None = None, **kwargs: Any) -> "Decision":
        """Create an ASK decision."""
        return cls(action=Action.ASK, reason=reason, **kwargs)


class MatchResult(BaseModel):
    """Outcome of a rule matching pass."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    matched: bool = Field(..., description="Whether any rule matched")
    rule: Rule | None = Field(default=None, description="Matching custom rule")
    decision: Decision | None = Field(default=None, description="Resulting decision")

    @classmethod
    def no_match(cls) -> "MatchResult":
        """Create a miss."""
        return cls(matched=False)


# =============================================================================
# Audit Models
# =============================================================================


class AuditRecord(BaseModel):
    """
    One line of the audit log.

    Arguments are redacted before the record is written.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the decision was made",
    )
    session_id: str | None = None
    tool_type: ToolType
    tool_name: str | None = None
    arguments: dict[str, Any] = Field(default_factory=dict)
    action: Action
    reason: str | None = None
    confidence: float = 0.0
    matched_rule: str | None = None
    source: HookSource = HookSource.CLAUDE_CODE
    working_directory: str | None = None
    evaluation_time_ms: float = Field(default=0.0, ge=0.0)
    cached: bool = False


class AuditStats(BaseModel):
    """Aggregate statistics over recent audit records."""

    total_count: int = 0
    counts_by_decision: dict[str, int] = Field(
        default_factory=lambda: {a.value: 0 for a in Action}
    )
    counts_by_tool: dict[str, int] = Field(default_factory=dict)


class EvaluatorStats(BaseModel):
    """Process-wide evaluator counters used for health reporting."""

    evaluation_count: int = 0
    last_evaluation: datetime | None = None
    cache_size: int = 0
    semantic_available: bool = False


# =============================================================================
# Configuration Models
# =============================================================================


class SemanticConfig(BaseModel):
    """
    Configuration for the semantic (LLM) fallback.

    Attributes:
        backend: none, keyword or ollama
        base_url: Ollama server URL
        model: Model name
        timeout_seconds: HTTP timeout for one request
        temperature: Sampling temperature
        max_tokens: Maximum tokens in the response
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backend: SemanticBackend = Field(default=SemanticBackend.NONE)
    base_url: str = Field(default="http://localhost:11434")
    model: str = Field(default="qwen2.5:0.5b")
    timeout_seconds: float = Field(default=8.0, gt=0)
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(default=512, gt=0)


class HetConfig(BaseModel):
    """
    Complete runtime configuration.

    Attributes:
        home: State directory (rules, audit log, prompts, logs)
        host: Daemon bind address
        port: Daemon port
        log_level: Logging level name
        timeout_seconds: Overall budget for the semantic fallback
        default_on_timeout: Action used when the fallback times out or fails
        cache_ttl_seconds: Lifetime of cached decisions
        min_cache_confidence: Semantic results below this are not cached
        audit_log_path: Audit log file (default: <home>/audit.log)
        audit_max_bytes: Rotation threshold for the audit log
        global_rules_path: Global rules file (default: <home>/rules.yaml)
        semantic: Semantic fallback configuration
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    home: Path = Field(default_factory=lambda: Path.home() / ".het")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=7483, gt=0, lt=65536)
    log_level: str = Field(default="info")
    timeout_seconds: float = Field(default=10.0, gt=0)
    default_on_timeout: Action = Field(default=Action.ALLOW)
    cache_ttl_seconds: int = Field(default=300, ge=0)
    min_cache_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    audit_log_path: Path | None = Field(default=None)
    audit_max_bytes: int = Field(default=50 * 1024 * 1024, gt=0)
    global_rules_path: Path | None = Field(default=None)
    semantic: SemanticConfig = Field(default_factory=SemanticConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Accept the usual level names, case-insensitively."""
        level = v.lower()
        if level == "warn":
            level = "warning"
        if level not in ("debug", "info", "warning", "error"):
            msg = f"Invalid log level: {v}"
            raise ValueError(msg)
        return level

    @property
    def audit_path(self) -> Path:
        """Resolved audit log path."""
        return self.audit_log_path or self.home / "audit.log"

    @property
    def rules_path(self) -> Path:
        """Resolved global rules path."""
        return self.global_rules_path or self.home / "rules.yaml"
