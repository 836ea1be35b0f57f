"""Data models for the settlement reconciliation system."""

from .enums import (
    AuditAction,
    MatchType,
    ReconciliationStatus,
    StatementStatus,
    SUMMARY_MATCH_TYPES,
    TransactionStatus,
)
from .transaction import (
    BankStatement,
    Transaction,
    cents_to_amount,
)
from .reconciliation import (
    AuditEntry,
    DuplicatePair,
    MatchCandidate,
    ReconciliationDetail,
    ReconciliationRun,
    ReconciliationSummary,
    RunOutcome,
)

__all__ = [
    # Enums
    "AuditAction",
    "MatchType",
    "ReconciliationStatus",
    "StatementStatus",
    "SUMMARY_MATCH_TYPES",
    "TransactionStatus",
    # Records
    "BankStatement",
    "Transaction",
    "cents_to_amount",
    # Reconciliation
    "AuditEntry",
    "DuplicatePair",
    "MatchCandidate",
    "ReconciliationDetail",
    "ReconciliationRun",
    "ReconciliationSummary",
    "RunOutcome",
]
