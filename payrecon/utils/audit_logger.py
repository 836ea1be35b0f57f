"""
Audit logging for reconciliation runs and run management.
"""

from collections import Counter, deque
from typing import Any, Deque, Dict, List, Optional

import structlog

from ..models import AuditAction, AuditEntry
from ..storage.base import AuditSink

logger = structlog.get_logger()


class AuditLogger:
    """
    Best-effort audit trail.
    Keeps the most recent entries in memory and forwards every entry to an
    optional durable sink. Sink failures are logged and never reach the caller.
    """

    def __init__(self, sink: Optional[AuditSink] = None, max_entries: int = 1000):
        self.sink = sink
        self.entries: Deque[AuditEntry] = deque(maxlen=max_entries)

    def log(
        self,
        action: AuditAction,
        actor: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Record an audit event."""
        entry = AuditEntry(action=action, actor=actor, details=details or {})
        self.entries.append(entry)

        logger.info("Audit event", action=action.value, actor=actor)

        if self.sink is not None:
            try:
                self.sink.record(entry)
            except Exception:
                logger.exception("Audit sink failed", action=action.value, entry_id=entry.id)

        return entry

    def get_entries(
        self,
        action_filter: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AuditEntry]:
        """Get entries newest first, optionally filtered by action."""
        entries = list(reversed(self.entries))

        if action_filter:
            entries = [e for e in entries if e.action.value == action_filter]

        entries = entries[offset:]
        if limit is not None:
            entries = entries[:limit]
        return entries

    def summary(self) -> dict:
        """Get summary statistics of audit log."""
        action_counts = Counter(e.action.value for e in self.entries)
        return {
            "total_entries": len(self.entries),
            "action_counts": dict(action_counts),
        }
