"""Enumerations for the settlement reconciliation system."""

from enum import Enum


class TransactionStatus(str, Enum):
    """Lifecycle status of an internally recorded payment."""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class StatementStatus(str, Enum):
    """Clearing status reported by the bank for a settlement."""
    CLEARED = "cleared"
    PENDING = "pending"
    FAILED = "failed"


class ReconciliationStatus(str, Enum):
    """
    Verdict of a reconciliation run for a single record.

    MATCHED: Firm match (reference or unambiguous three-way)
    PARTIAL: Match that needs confirmation (ambiguous three-way, single fuzzy, pending)
    UNMATCHED: No statement found
    REVIEW: Requires human intervention
    DUPLICATE: Unclaimed statement indistinguishable from another statement
    """
    MATCHED = "matched"
    PARTIAL = "partial"
    UNMATCHED = "unmatched"
    REVIEW = "review"
    DUPLICATE = "duplicate"


class MatchType(str, Enum):
    """Rule that produced a match."""
    REFERENCE = "reference"
    THREEWAY = "threeway"
    FUZZY = "fuzzy"
    PARTIAL = "partial"  # legacy tag for ambiguous three-way matches in older runs
    FAILED_TRANSACTION = "failed_transaction"
    PENDING_MATCH = "pending_match"
    MANUAL = "manual"


# Buckets of ReconciliationSummary.matches_by_type, in display order.
SUMMARY_MATCH_TYPES = (
    MatchType.REFERENCE,
    MatchType.THREEWAY,
    MatchType.FUZZY,
    MatchType.MANUAL,
    MatchType.FAILED_TRANSACTION,
    MatchType.PENDING_MATCH,
)


class AuditAction(str, Enum):
    """Type of audit action."""
    RECONCILE_RUN = "reconcile.run"
    RECONCILE_DELETE_ALL = "reconcile.deleteAll"
    RECONCILE_DELETE_ONE = "reconcile.deleteOne"
