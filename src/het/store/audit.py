"""
Audit log for HET decisions.

One JSON object per line, appended after every evaluation. Tool arguments
are redacted before they are serialized, so secrets never reach disk.

When the file grows past max_bytes it is renamed to
``<path>.<epoch-ms>.bak`` before the next append. Rotation and append
share a lock, so concurrent writers never interleave lines or append to a
file that is being renamed.

Writing never raises into the evaluation path: failures are logged and the
record is dropped. Reading skips lines that do not parse.
"""

import logging
import threading
import time
from collections import deque
from pathlib import Path

from pydantic import ValidationError

from het.errors import StorageError, StorageReadError, StorageWriteError
from het.schema import Action, AuditRecord, AuditStats, Decision, Invocation
from het.secrets import redact_structure

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 50 * 1024 * 1024
DEFAULT_RECENT_LIMIT = 100
DEFAULT_STATS_SAMPLE = 10000


class AuditLogger:
    """
    Append-only JSON-lines audit log.

    Usage:
        audit = AuditLogger(config.audit_path, config.audit_max_bytes)
        audit.record_evaluation(invocation, decision, elapsed_ms=3.2, cached=False)
        for record in audit.read_recent(20):
            print(record.action, record.tool_type)

    Attributes:
        path: Log file
        max_bytes: Size above which the file is rotated
    """

    def __init__(self, path: Path | str, max_bytes: int = DEFAULT_MAX_BYTES) -> None:
        self.path = Path(path)
        self.max_bytes = max_bytes
        self._lock = threading.Lock()

    # =========================================================================
    # Writing
    # =========================================================================

    def append(self, record: AuditRecord) -> bool:
        """
        Append a record, redacting its arguments first.

        Returns:
            True if the record was written
        """
        redaction = redact_structure(record.arguments)
        try:
            line = record.model_copy(update={"arguments": redaction.redacted}).model_dump_json()
        except (ValueError, TypeError) as e:
            # PydanticSerializationError is a ValueError
            logger.error("Dropping unserializable audit record for %s: %s", record.tool_type.value, e)
            return False

        with self._lock:
            try:
                self._rotate_if_needed()
                self._write_line(line)
            except StorageError as e:
                logger.error("Dropping audit record: %s", e.message)
                return False
        return True

    def record_evaluation(
        self,
        invocation: Invocation,
        decision: Decision,
        elapsed_ms: float,
        cached: bool,
    ) -> bool:
        """Build and append the record for one evaluation."""
        record = AuditRecord(
            session_id=invocation.session_id,
            tool_type=invocation.tool_type,
            tool_name=invocation.tool_name,
            arguments=invocation.arguments,
            action=decision.action,
            reason=decision.reason,
            confidence=decision.confidence,
            matched_rule=decision.matched_rule,
            source=invocation.source,
            working_directory=invocation.working_directory,
            evaluation_time_ms=0.0 if cached else max(elapsed_ms, 0.0),
            cached=cached,
        )
        return self.append(record)

    def _rotate_if_needed(self) -> None:
        try:
            if not self.path.exists() or self.path.stat().st_size <= self.max_bytes:
                return
            backup = self.path.with_name(f"{self.path.name}.{int(time.time() * 1000)}.bak")
            self.path.rename(backup)
        except OSError as e:
            raise StorageWriteError(
                operation="rotate",
                path=str(self.path),
                underlying_error=str(e),
            ) from e
        logger.info("Rotated audit log to %s", backup)

    def _write_line(self, line: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            raise StorageWriteError(
                operation="append",
                path=str(self.path),
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Reading
    # =========================================================================

    def _read_lines(self, limit: int) -> list[str]:
        """Last `limit` non-empty lines, oldest first."""
        if not self.path.exists():
            return []
        try:
            with self.path.open(encoding="utf-8", errors="replace") as f:
                return list(deque((line for line in f if line.strip()), maxlen=limit))
        except OSError as e:
            raise StorageReadError(
                operation="read",
                path=str(self.path),
                underlying_error=str(e),
            ) from e

    def read_recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[AuditRecord]:
        """
        Most recent records, newest first.

        Malformed lines are skipped; at most `limit` lines are considered.
        """
        if limit <= 0:
            return []
        try:
            lines = self._read_lines(limit)
        except StorageReadError as e:
            logger.error("Cannot read audit log: %s", e.message)
            return []

        records: list[AuditRecord] = []
        for line in reversed(lines):
            try:
                records.append(AuditRecord.model_validate_json(line))
            except ValidationError:
                logger.debug("Skipping malformed audit line: %.80s", line)
        return records

    def stats(self, sample: int = DEFAULT_STATS_SAMPLE) -> AuditStats:
        """Counts by decision and by tool over the most recent records."""
        stats = AuditStats()
        for record in self.read_recent(sample):
            stats.total_count += 1
            action = Action(record.action).value
            stats.counts_by_decision[action] = stats.counts_by_decision.get(action, 0) + 1
            tool = record.tool_type.value
            stats.counts_by_tool[tool] = stats.counts_by_tool.get(tool, 0) + 1
        return stats
