"""Record models for the settlement reconciliation system."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4

from .enums import (
    MatchType,
    ReconciliationStatus,
    StatementStatus,
    TransactionStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def cents_to_amount(cents: Optional[int]) -> Optional[float]:
    """Return cents in standard units."""
    if cents is None:
        return None
    return cents / 100.0


@dataclass
class Transaction:
    """
    Internally recorded payment awaiting settlement confirmation.
    All monetary amounts are stored in CENTS (integer) to avoid floating point errors.
    """
    # Identity
    id: str = field(default_factory=lambda: str(uuid4()))
    transaction_id: str = ""
    merchant_id: str = ""

    # Financial data
    amount_cents: int = 0
    currency: str = "USD"
    payment_method: str = ""

    # Event
    timestamp: datetime = field(default_factory=utcnow)
    status: TransactionStatus = TransactionStatus.SUCCESS
    bank_reference_id: Optional[str] = None

    # Reconciliation outcome (written by the orchestrator only)
    reconciliation_status: ReconciliationStatus = ReconciliationStatus.UNMATCHED
    matched_statement_id: Optional[str] = None
    match_type: Optional[MatchType] = None

    @property
    def amount(self) -> float:
        """Return amount in standard units."""
        return self.amount_cents / 100.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "merchant_id": self.merchant_id,
            "amount_cents": self.amount_cents,
            "amount": self.amount,
            "currency": self.currency,
            "payment_method": self.payment_method,
            "timestamp": _isoformat(self.timestamp),
            "status": self.status.value,
            "bank_reference_id": self.bank_reference_id,
            "reconciliation_status": self.reconciliation_status.value,
            "matched_statement_id": self.matched_statement_id,
            "match_type": self.match_type.value if self.match_type else None,
        }


@dataclass
class BankStatement:
    """
    Settlement record reported by the bank.
    The ground truth for whether money actually moved.
    """
    # Identity
    id: str = field(default_factory=lambda: str(uuid4()))
    bank_reference_id: str = ""
    merchant_account_id: str = ""
    bank_name: str = "MockBank"

    # Financial data (in cents)
    amount_cents: int = 0

    # Settlement
    settlement_date: Optional[datetime] = None
    status: StatementStatus = StatementStatus.CLEARED

    # Reconciliation outcome (written by the orchestrator only)
    reconciliation_status: ReconciliationStatus = ReconciliationStatus.UNMATCHED
    matched_transaction_id: Optional[str] = None
    match_type: Optional[MatchType] = None

    @property
    def amount(self) -> float:
        """Return amount in standard units."""
        return self.amount_cents / 100.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "bank_reference_id": self.bank_reference_id,
            "merchant_account_id": self.merchant_account_id,
            "bank_name": self.bank_name,
            "amount_cents": self.amount_cents,
            "amount": self.amount,
            "settlement_date": _isoformat(self.settlement_date),
            "status": self.status.value,
            "reconciliation_status": self.reconciliation_status.value,
            "matched_transaction_id": self.matched_transaction_id,
            "match_type": self.match_type.value if self.match_type else None,
        }
