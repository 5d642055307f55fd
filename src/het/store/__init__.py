"""
Storage module for HET.

HET persists one thing: the audit log of decisions, a JSON-lines file
(default ``~/.het/audit.log``) that rotates by size.

Design principles:
    - Append-only: records are never modified
    - Redacted: tool arguments pass through the secret redactor first
    - Non-blocking for callers: write failures are logged, never raised
    - Tolerant reads: malformed lines are skipped
"""

from het.store.audit import AuditLogger

__all__ = [
    "AuditLogger",
]
