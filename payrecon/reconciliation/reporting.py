"""
Read-only queries over persisted reconciliation runs, plus run management.
"""

import csv
import io
from typing import List, Optional, Tuple

import structlog

from ..config import Settings, get_settings
from ..models import (
    AuditAction,
    ReconciliationDetail,
    ReconciliationRun,
    ReconciliationStatus,
    ReconciliationSummary,
)
from ..storage.base import RunRepository
from ..utils.audit_logger import AuditLogger
from .errors import NoRunsError, RunNotFoundError

logger = structlog.get_logger()

CSV_COLUMNS = [
    "transaction_id",
    "transaction_amount",
    "transaction_status",
    "reconciliation_status",
    "match_type",
    "matched_amount",
    "confidence",
    "reason",
]


def _format_cents(cents: Optional[int]) -> str:
    if cents is None:
        return ""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"


def detail_to_row(detail: ReconciliationDetail) -> List[str]:
    """Flatten a detail into CSV_COLUMNS order; missing values become blank."""
    return [
        detail.transaction_id,
        _format_cents(detail.transaction_amount_cents),
        detail.transaction_status or "",
        detail.reconciliation_status.value,
        detail.match_type.value if detail.match_type else "",
        _format_cents(detail.matched_amount_cents),
        f"{detail.confidence:g}",
        detail.reason or "",
    ]


class ReconciliationReporter:
    """Queries over the run repository."""

    def __init__(
        self,
        run_repository: RunRepository,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.run_repository = run_repository
        self.audit_logger = audit_logger or AuditLogger()

    def latest_run(self) -> ReconciliationRun:
        run = self.run_repository.latest()
        if run is None:
            raise NoRunsError()
        return run

    def latest_summary(self) -> ReconciliationSummary:
        return self.latest_run().summary

    def mismatches(self, show_all: bool = False) -> List[ReconciliationDetail]:
        """
        Details of the latest run that need attention.

        Non-matched details that either require review or are unmatched.
        With show_all, every detail of the run is returned.
        """
        details = list(self.latest_run().details)
        if show_all:
            return details

        return [
            d for d in details
            if d.reconciliation_status != ReconciliationStatus.MATCHED
            and (d.requires_review or d.reconciliation_status == ReconciliationStatus.UNMATCHED)
        ]

    def history(
        self,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Tuple[int, int, int, List[ReconciliationRun]]:
        """Return (total, limit, offset, runs) with runs newest first."""
        if limit is None or limit < 1:
            limit = self.settings.history_default_limit
        limit = min(limit, self.settings.history_max_limit)
        offset = max(offset, 0)

        total, runs = self.run_repository.list(limit=limit, offset=offset)
        return total, limit, offset, runs

    def to_csv(self, run: Optional[ReconciliationRun] = None) -> str:
        """CSV projection of a run's details (latest run by default)."""
        if run is None:
            run = self.latest_run()

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)
        for detail in run.details:
            writer.writerow(detail_to_row(detail))
        return buffer.getvalue()

    def delete_run(self, run_id: str, actor: Optional[str] = None) -> None:
        if not self.run_repository.delete(run_id):
            raise RunNotFoundError(run_id)
        logger.info("Reconciliation run deleted", run_id=run_id)
        self.audit_logger.log(
            AuditAction.RECONCILE_DELETE_ONE, actor=actor, details={"id": run_id}
        )

    def delete_all(self, actor: Optional[str] = None) -> int:
        deleted = self.run_repository.delete_all()
        logger.info("Reconciliation runs deleted", count=deleted)
        self.audit_logger.log(
            AuditAction.RECONCILE_DELETE_ALL,
            actor=actor,
            details={"message": "Deleted all reconciliation results", "deleted": deleted},
        )
        return deleted
