"""
Exception hierarchy for HET.

All HET exceptions inherit from HetError, allowing callers to catch
all HET-specific exceptions with a single except clause.

Exception Categories:
    - NormalizationError: Hook payload could not become an Invocation
    - RuleValidationError: A single rule (or its regex) is malformed
    - SemanticEvaluationError: The semantic fallback failed or timed out
    - StorageError: Audit log read/write failed
    - ConfigError: Configuration file is invalid

None of these escape the evaluation path. The evaluator and its callers
turn every one of them into a Decision (usually a fail-open default).
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Normalization errors: 1xxx
ERROR_NORMALIZE_INVALID_JSON = 1001
ERROR_NORMALIZE_UNKNOWN_SOURCE = 1002
ERROR_NORMALIZE_MISSING_FIELD = 1003
ERROR_NORMALIZE_UNKNOWN_TOOL = 1004

# Rule errors: 2xxx
ERROR_RULE_INVALID = 2001
ERROR_RULE_INVALID_PATTERN = 2002

# Semantic evaluation errors: 3xxx
ERROR_SEMANTIC_CONNECTION = 3001
ERROR_SEMANTIC_TIMEOUT = 3002
ERROR_SEMANTIC_PARSE = 3003
ERROR_SEMANTIC_MODEL_NOT_FOUND = 3004

# Storage errors: 4xxx
ERROR_STORAGE_WRITE = 4001
ERROR_STORAGE_READ = 4002

# Config errors: 5xxx
ERROR_CONFIG_INVALID = 5001


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class HetError(Exception):
    """
    Base exception for all HET errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Normalization Errors
# =============================================================================


@dataclass
class NormalizationError(HetError):
    """
    Raised when a hook payload cannot be turned into an Invocation.

    Callers treat this as "nothing to evaluate" and fail open.

    Attributes:
        source: Detected hook source, if detection got that far
    """

    source: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if self.code == 0:
            self.code = ERROR_NORMALIZE_INVALID_JSON
        self.context["source"] = self.source


@dataclass
class InvalidJsonError(NormalizationError):
    """Raised when the payload is not a JSON object."""

    parse_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Hook input is not valid JSON: {self.parse_error}"
        if self.code == 0:
            self.code = ERROR_NORMALIZE_INVALID_JSON
        super().__post_init__()
        self.context["parse_error"] = self.parse_error


@dataclass
class UnknownSourceError(NormalizationError):
    """Raised when the payload matches no known hook format."""

    keys: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "Could not detect hook input source format"
        if self.code == 0:
            self.code = ERROR_NORMALIZE_UNKNOWN_SOURCE
        if not self.suggestion:
            self.suggestion = "Send tool_name/tool_input or toolName/toolInput"
        super().__post_init__()
        self.context["keys"] = self.keys


@dataclass
class MissingFieldError(NormalizationError):
    """Raised when a required hook field is absent or has the wrong type."""

    field_name: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Hook input missing required field: {self.field_name}"
        if self.code == 0:
            self.code = ERROR_NORMALIZE_MISSING_FIELD
        super().__post_init__()
        self.context["field_name"] = self.field_name


@dataclass
class UnknownToolError(NormalizationError):
    """Raised when the assistant's tool name maps to no known tool type."""

    tool_name: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Unknown tool name: {self.tool_name}"
        if self.code == 0:
            self.code = ERROR_NORMALIZE_UNKNOWN_TOOL
        super().__post_init__()
        self.context["tool_name"] = self.tool_name


# =============================================================================
# Rule Errors
# =============================================================================


@dataclass
class RuleValidationError(HetError):
    """
    Raised when a single rule fails validation.

    Rule loading drops the offending rule and keeps going; this error is
    never fatal to a load or a match pass.

    Attributes:
        rule_name: Name of the rule, if it had one
    """

    rule_name: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if self.code == 0:
            self.code = ERROR_RULE_INVALID
        self.context["rule_name"] = self.rule_name


@dataclass
class InvalidRuleError(RuleValidationError):
    """Raised when a rule is structurally invalid."""

    validation_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            label = self.rule_name or "<unnamed>"
            self.message = f"Invalid rule {label}: {self.validation_error}"
        if self.code == 0:
            self.code = ERROR_RULE_INVALID
        super().__post_init__()
        self.context["validation_error"] = self.validation_error


@dataclass
class InvalidPatternError(RuleValidationError):
    """Raised when a rule's regular expression does not compile."""

    pattern: str = ""
    regex_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Invalid regex in rule {self.rule_name}: {self.pattern} ({self.regex_error})"
            )
        if self.code == 0:
            self.code = ERROR_RULE_INVALID_PATTERN
        super().__post_init__()
        self.context.update({
            "pattern": self.pattern,
            "regex_error": self.regex_error,
        })


# =============================================================================
# Semantic Evaluation Errors
# =============================================================================


@dataclass
class SemanticEvaluationError(HetError):
    """
    Base class for semantic (LLM) evaluator errors.

    The tiered evaluator degrades these to its configured default decision.

    Attributes:
        evaluator: Name of the evaluator backend (e.g., "ollama")
        model: Model name being used
    """

    evaluator: str = ""
    model: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context.update({
            "evaluator": self.evaluator,
            "model": self.model,
        })


@dataclass
class SemanticConnectionError(SemanticEvaluationError):
    """Raised when the evaluator backend cannot be reached."""

    url: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cannot connect to {self.evaluator} at {self.url}"
            if self.underlying_error:
                self.message += f": {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_SEMANTIC_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the evaluator backend is running"
        super().__post_init__()
        self.context.update({
            "url": self.url,
            "underlying_error": self.underlying_error,
        })


@dataclass
class SemanticTimeoutError(SemanticEvaluationError):
    """Raised when the evaluator does not answer in time."""

    timeout_seconds: float = 0.0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"{self.evaluator} timed out after {self.timeout_seconds}s"
        if self.code == 0:
            self.code = ERROR_SEMANTIC_TIMEOUT
        if not self.suggestion:
            self.suggestion = "Increase timeout_seconds or use a smaller model"
        super().__post_init__()
        self.context["timeout_seconds"] = self.timeout_seconds


@dataclass
class SemanticParseError(SemanticEvaluationError):
    """Raised when the evaluator's response cannot be used."""

    raw_response: str = ""
    parse_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to parse {self.evaluator} response: {self.parse_error}"
        if self.code == 0:
            self.code = ERROR_SEMANTIC_PARSE
        super().__post_init__()
        self.context.update({
            "raw_response": self.raw_response[:500],
            "parse_error": self.parse_error,
        })


@dataclass
class SemanticModelNotFoundError(SemanticEvaluationError):
    """Raised when the requested model is not available."""

    available_models: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Model not found: {self.model}"
        if self.code == 0:
            self.code = ERROR_SEMANTIC_MODEL_NOT_FOUND
        if not self.suggestion:
            self.suggestion = f"Run: ollama pull {self.model}"
        super().__post_init__()
        self.context["available_models"] = self.available_models


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(HetError):
    """
    Base class for audit storage errors.

    Logged and swallowed by the audit logger; never blocks evaluation.

    Attributes:
        operation: The operation that failed (e.g., "append", "read")
        path: The file involved
    """

    operation: str = ""
    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context.update({
            "operation": self.operation,
            "path": self.path,
        })


@dataclass
class StorageWriteError(StorageError):
    """Raised when an audit write or rotation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Audit log write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when the audit log cannot be read."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Audit log read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Config Errors
# =============================================================================


@dataclass
class ConfigError(HetError):
    """Raised when the configuration file is unreadable or invalid."""

    config_path: str = ""
    validation_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration in {self.config_path}: {self.validation_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context.update({
            "config_path": self.config_path,
            "validation_error": self.validation_error,
        })
