"""
Secret detection and redaction.

Anything that leaves the process (semantic evaluator prompts) or reaches
disk (audit log) passes through here first.

Detectors run in a fixed order. Each one that fires replaces its matches
with a marker such as ``[REDACTED_GITHUB_TOKEN]`` and reports
"<name> (<n> occurrence[s])". Markers never match any detector, so
redacting already-redacted text changes nothing.
"""

import re
from dataclasses import dataclass, field
from typing import Any

# Values already replaced by a detector are left alone by the key=value
# detectors below.
_NOT_REDACTED = r"(?!\[REDACTED)"


@dataclass(frozen=True)
class SecretDetector:
    """A named credential pattern and its replacement marker."""

    name: str
    pattern: re.Pattern[str]
    replacement: str


SECRET_DETECTORS: tuple[SecretDetector, ...] = (
    SecretDetector(
        "AWS Access Key",
        re.compile(r"AKIA[0-9A-Z]{16}"),
        "[REDACTED_AWS_KEY]",
    ),
    SecretDetector(
        "GitHub Token",
        re.compile(r"(?:ghp|gho|ghu|ghs|ghr)_[A-Za-z0-9_]{36,}"),
        "[REDACTED_GITHUB_TOKEN]",
    ),
    SecretDetector(
        "Generic API Key",
        re.compile(
            r"[\"']?api[_-]?key[\"']?\s*[:=]\s*[\"']?" + _NOT_REDACTED + r"[A-Za-z0-9_-]{20,}[\"']?",
            re.IGNORECASE,
        ),
        "[REDACTED_API_KEY]",
    ),
    SecretDetector(
        "Bearer Token",
        re.compile(
            r"Bearer\s+[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+",
            re.IGNORECASE,
        ),
        "Bearer [REDACTED_JWT]",
    ),
    SecretDetector(
        "Password in URL",
        re.compile(r"://(?P<user>[^:/\s@\[]+):" + _NOT_REDACTED + r"[^@\s/\[]+@"),
        r"://\g<user>:[REDACTED]@",
    ),
    SecretDetector(
        "Generic Password",
        re.compile(
            r"[\"']?password[\"']?\s*[:=]\s*[\"']?" + _NOT_REDACTED + r"[^\"'\s]+[\"']?",
            re.IGNORECASE,
        ),
        "[REDACTED_PASSWORD]",
    ),
    SecretDetector(
        "Generic Secret",
        re.compile(
            r"[\"']?secret[\"']?\s*[:=]\s*[\"']?" + _NOT_REDACTED + r"[^\"'\s]+[\"']?",
            re.IGNORECASE,
        ),
        "[REDACTED_SECRET]",
    ),
    SecretDetector(
        "Private Key",
        re.compile(
            r"-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----[\s\S]*?"
            r"-----END (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----"
        ),
        "[REDACTED_PRIVATE_KEY]",
    ),
    SecretDetector(
        "Slack Token",
        re.compile(r"xox[baprs]-[0-9a-zA-Z]{10,}"),
        "[REDACTED_SLACK_TOKEN]",
    ),
    SecretDetector(
        "Azure Key",
        re.compile(r"[A-Za-z0-9/+]{86}=="),
        "[REDACTED_AZURE_KEY]",
    ),
    # Must run last: markers from earlier detectors can bound a 40-char run.
    SecretDetector(
        "AWS Secret Key",
        # 40 base64 chars with mixed case; excludes hex digests like git SHAs
        re.compile(
            r"(?<![A-Za-z0-9/+=])"
            r"(?=[A-Za-z0-9/+=]*[A-Z])(?=[A-Za-z0-9/+=]*[a-z])"
            r"[A-Za-z0-9/+=]{40}"
            r"(?=\s|$|\")"
        ),
        "[REDACTED_AWS_SECRET]",
    ),
)


@dataclass
class RedactionResult:
    """Redacted text plus the kinds of secret found in it."""

    redacted_text: str
    secrets_found: list[str] = field(default_factory=list)


@dataclass
class StructureRedaction:
    """Redacted copy of a nested value plus the kinds of secret found."""

    redacted: Any
    secrets_found: list[str] = field(default_factory=list)


def _describe(name: str, count: int) -> str:
    plural = "s" if count > 1 else ""
    return f"{name} ({count} occurrence{plural})"


def redact_text(text: str) -> RedactionResult:
    """
    Redact secrets from a string.

    Args:
        text: Arbitrary text

    Returns:
        RedactionResult with the masked text and found secret kinds
    """
    redacted = text
    found: list[str] = []

    for detector in SECRET_DETECTORS:
        redacted, count = detector.pattern.subn(detector.replacement, redacted)
        if count:
            found.append(_describe(detector.name, count))

    return RedactionResult(redacted_text=redacted, secrets_found=found)


def redact_structure(value: Any) -> StructureRedaction:
    """
    Redact secrets from every string leaf of a nested value.

    Dicts, lists and tuples are copied; keys and non-string leaves are kept
    as they are. Found secret kinds are de-duplicated in first-seen order.
    """
    found: list[str] = []

    def redact_value(item: Any) -> Any:
        if isinstance(item, str):
            result = redact_text(item)
            found.extend(result.secrets_found)
            return result.redacted_text
        if isinstance(item, dict):
            return {key: redact_value(val) for key, val in item.items()}
        if isinstance(item, list):
            return [redact_value(val) for val in item]
        if isinstance(item, tuple):
            return tuple(redact_value(val) for val in item)
        return item

    redacted = redact_value(value)
    return StructureRedaction(redacted=redacted, secrets_found=list(dict.fromkeys(found)))


def contains_secrets(text: str) -> bool:
    """Cheap existence check using the same detectors as redact_text."""
    return any(detector.pattern.search(text) for detector in SECRET_DETECTORS)
