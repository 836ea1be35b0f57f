"""Reconciliation result models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple
from uuid import uuid4

from .enums import (
    AuditAction,
    MatchType,
    ReconciliationStatus,
    SUMMARY_MATCH_TYPES,
    TransactionStatus,
)
from .transaction import BankStatement, cents_to_amount, utcnow


@dataclass(frozen=True)
class MatchCandidate:
    """A statement proposed for a transaction by one of the matching tiers."""
    statement: BankStatement
    match_type: MatchType
    confidence: float
    candidate_count: int = 1

    @property
    def is_ambiguous(self) -> bool:
        return self.candidate_count > 1


@dataclass(frozen=True)
class DuplicatePair:
    """Two statements sharing merchant, amount and settlement day."""
    baseline_id: str
    duplicate_id: str
    key: str
    reason: str = "Same merchant + amount + date"


@dataclass(frozen=True)
class ReconciliationDetail:
    """Verdict for one transaction within a run."""
    transaction_id: str
    transaction_amount_cents: int
    transaction_status: str
    reconciliation_status: ReconciliationStatus
    match_type: Optional[MatchType] = None
    matched_statement_id: Optional[str] = None
    matched_amount_cents: Optional[int] = None
    confidence: float = 0.0
    reason: str = ""
    requires_review: bool = False
    candidate_count: int = 0

    @property
    def transaction_amount(self) -> float:
        return self.transaction_amount_cents / 100.0

    @property
    def matched_amount(self) -> Optional[float]:
        return cents_to_amount(self.matched_amount_cents)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "transaction_amount_cents": self.transaction_amount_cents,
            "transaction_amount": self.transaction_amount,
            "transaction_status": self.transaction_status,
            "reconciliation_status": self.reconciliation_status.value,
            "match_type": self.match_type.value if self.match_type else None,
            "matched_statement_id": self.matched_statement_id,
            "matched_amount_cents": self.matched_amount_cents,
            "matched_amount": self.matched_amount,
            "confidence": self.confidence,
            "reason": self.reason,
            "requires_review": self.requires_review,
            "candidate_count": self.candidate_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReconciliationDetail":
        match_type = data.get("match_type")
        return cls(
            transaction_id=data["transaction_id"],
            transaction_amount_cents=int(data.get("transaction_amount_cents", 0)),
            transaction_status=data.get("transaction_status", "unknown"),
            reconciliation_status=ReconciliationStatus(data["reconciliation_status"]),
            match_type=MatchType(match_type) if match_type else None,
            matched_statement_id=data.get("matched_statement_id"),
            matched_amount_cents=data.get("matched_amount_cents"),
            confidence=float(data.get("confidence", 0.0)),
            reason=data.get("reason", ""),
            requires_review=bool(data.get("requires_review", False)),
            candidate_count=int(data.get("candidate_count", 0)),
        )


def _empty_match_counts() -> Dict[str, int]:
    return {match_type.value: 0 for match_type in SUMMARY_MATCH_TYPES}


@dataclass
class ReconciliationSummary:
    """
    Counters of a reconciliation run.

    Transaction-side counters (matched, partial, unmatched, review) add up to
    total_transactions. `failed` counts failed-status transactions, which are
    also counted under review. Leftover statements count towards `duplicate`
    or `unmatched_statements`.
    """
    total_transactions: int = 0
    matched: int = 0
    partial: int = 0
    unmatched: int = 0
    duplicate: int = 0
    failed: int = 0
    review: int = 0
    unmatched_statements: int = 0
    matches_by_type: Dict[str, int] = field(default_factory=_empty_match_counts)

    def record_detail(self, detail: ReconciliationDetail) -> None:
        """Count a transaction verdict exactly once."""
        status = detail.reconciliation_status
        if status == ReconciliationStatus.MATCHED:
            self.matched += 1
        elif status == ReconciliationStatus.PARTIAL:
            self.partial += 1
        elif status == ReconciliationStatus.REVIEW:
            self.review += 1
        else:
            self.unmatched += 1

        if detail.transaction_status == TransactionStatus.FAILED.value:
            self.failed += 1

        if detail.match_type is not None:
            key = detail.match_type.value
            self.matches_by_type[key] = self.matches_by_type.get(key, 0) + 1

    def record_leftover_statement(self, status: ReconciliationStatus) -> None:
        """Count a statement that no transaction claimed."""
        if status == ReconciliationStatus.DUPLICATE:
            self.duplicate += 1
        else:
            self.unmatched_statements += 1

    @property
    def requires_review(self) -> int:
        return self.partial + self.review

    @property
    def is_consistent(self) -> bool:
        return (
            self.matched + self.partial + self.unmatched + self.review
            == self.total_transactions
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_transactions": self.total_transactions,
            "matched": self.matched,
            "partial": self.partial,
            "unmatched": self.unmatched,
            "duplicate": self.duplicate,
            "failed": self.failed,
            "review": self.review,
            "unmatched_statements": self.unmatched_statements,
            "matches_by_type": dict(self.matches_by_type),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReconciliationSummary":
        counts = _empty_match_counts()
        counts.update(data.get("matches_by_type") or {})
        return cls(
            total_transactions=data.get("total_transactions", 0),
            matched=data.get("matched", 0),
            partial=data.get("partial", 0),
            unmatched=data.get("unmatched", 0),
            duplicate=data.get("duplicate", 0),
            failed=data.get("failed", 0),
            review=data.get("review", 0),
            unmatched_statements=data.get("unmatched_statements", 0),
            matches_by_type=counts,
        )


@dataclass(frozen=True)
class ReconciliationRun:
    """
    One complete execution of the reconciliation algorithm.
    Never updated once persisted; repositories hand out copies.
    """
    summary: ReconciliationSummary
    details: Tuple[ReconciliationDetail, ...] = ()
    id: str = field(default_factory=lambda: str(uuid4()))
    run_date: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "run_date": self.run_date.isoformat(),
            "summary": self.summary.to_dict(),
            "details": [detail.to_dict() for detail in self.details],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReconciliationRun":
        return cls(
            id=data["id"],
            run_date=datetime.fromisoformat(data["run_date"]),
            summary=ReconciliationSummary.from_dict(data.get("summary") or {}),
            details=tuple(
                ReconciliationDetail.from_dict(d) for d in data.get("details") or []
            ),
        )


@dataclass(frozen=True)
class RunOutcome:
    """Headline counts returned to the caller of a reconciliation run."""
    run_id: str
    summary: ReconciliationSummary
    total: int

    @property
    def matched_count(self) -> int:
        return self.summary.matched

    @property
    def partial_count(self) -> int:
        return self.summary.partial

    @property
    def unmatched_count(self) -> int:
        return self.summary.unmatched

    @property
    def requires_review(self) -> int:
        return self.summary.requires_review

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": "Reconciliation completed",
            "run_id": self.run_id,
            "summary": self.summary.to_dict(),
            "matched_count": self.matched_count,
            "partial_count": self.partial_count,
            "unmatched_count": self.unmatched_count,
            "requires_review": self.requires_review,
            "total": self.total,
        }


@dataclass
class AuditEntry:
    """An entry in the audit log."""
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utcnow)

    action: AuditAction = AuditAction.RECONCILE_RUN
    actor: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "actor": self.actor,
            "details": self.details,
        }
