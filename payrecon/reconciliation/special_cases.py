"""
Special-case handling for transactions whose status makes tiered matching unsafe.
"""

from dataclasses import dataclass
from typing import Container, Optional, Sequence

from ..models import (
    BankStatement,
    MatchType,
    ReconciliationStatus,
    StatementStatus,
    Transaction,
    TransactionStatus,
)

FAILED_TRANSACTION_REASON = "Failed transaction should not match a cleared settlement"
PENDING_MATCH_REASON = "Pending transaction matched to a pending settlement"


@dataclass(frozen=True)
class SpecialCaseOutcome:
    """Verdict produced before the matching tiers run."""
    status: ReconciliationStatus
    match_type: MatchType
    reason: str
    statement: Optional[BankStatement] = None
    requires_review: bool = True


class SpecialCaseHandler:
    """
    Intercepts failed and pending transactions.

    - FAILED: always sent to review, nothing is claimed
    - PENDING: paired with the first unclaimed pending statement, if any
    - anything else: no special case
    """

    def evaluate(
        self,
        transaction: Transaction,
        statements: Sequence[BankStatement],
        claimed: Container[str],
    ) -> Optional[SpecialCaseOutcome]:
        if transaction.status == TransactionStatus.FAILED:
            return SpecialCaseOutcome(
                status=ReconciliationStatus.REVIEW,
                match_type=MatchType.FAILED_TRANSACTION,
                reason=FAILED_TRANSACTION_REASON,
            )

        if transaction.status == TransactionStatus.PENDING:
            for stmt in statements:
                if stmt.id in claimed or stmt.status != StatementStatus.PENDING:
                    continue
                return SpecialCaseOutcome(
                    status=ReconciliationStatus.PARTIAL,
                    match_type=MatchType.PENDING_MATCH,
                    reason=PENDING_MATCH_REASON,
                    statement=stmt,
                )

        return None
