"""
Tiered Matcher - matching rules for one transaction against the statement pool.

Tiers, in strict priority order:
1. Reference: bank reference id + amount (confidence 1.0)
2. Three-way: merchant + amount + settlement within the date window
3. Fuzzy: merchant + amount only, always needs review

The matcher never claims statements. It reads the claim registry to skip
statements already taken and returns a MatchCandidate or None.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Container, List, Optional, Sequence, Tuple

import structlog

from ..config import Settings, get_settings
from ..models import BankStatement, MatchCandidate, MatchType, Transaction

logger = structlog.get_logger()

TierFn = Callable[
    [Transaction, Sequence[BankStatement], Container[str]],
    Optional[MatchCandidate],
]


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so aware and naive values compare."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def amounts_match(a_cents: int, b_cents: int, tolerance_cents: int = 1) -> bool:
    return abs(a_cents - b_cents) <= tolerance_cents


def within_days(
    first: Optional[datetime],
    second: Optional[datetime],
    days: int = 2,
) -> bool:
    """Absolute distance between two instants is at most `days` days (inclusive)."""
    if first is None or second is None:
        return False
    return abs(as_utc(first) - as_utc(second)) <= timedelta(days=days)


class TieredMatcher:
    """Read-only matching rules, one entry point per tier."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.tolerance_cents = self.settings.amount_tolerance_cents
        self.window_days = self.settings.threeway_window_days

    @property
    def tiers(self) -> List[Tuple[MatchType, TierFn]]:
        """Tiers in the order they must be tried."""
        return [
            (MatchType.REFERENCE, self.match_by_reference),
            (MatchType.THREEWAY, self.match_by_threeway),
            (MatchType.FUZZY, self.match_by_fuzzy),
        ]

    def match_by_reference(
        self,
        transaction: Transaction,
        statements: Sequence[BankStatement],
        claimed: Container[str],
    ) -> Optional[MatchCandidate]:
        """Match on bank reference id, with the amount as a safety check."""
        if not transaction.bank_reference_id:
            return None

        for stmt in statements:
            if stmt.id in claimed:
                continue
            if stmt.bank_reference_id != transaction.bank_reference_id:
                continue
            if amounts_match(transaction.amount_cents, stmt.amount_cents, self.tolerance_cents):
                return MatchCandidate(
                    statement=stmt,
                    match_type=MatchType.REFERENCE,
                    confidence=self.settings.reference_confidence,
                )
            logger.debug(
                "Reference collision with mismatched amount",
                transaction_id=transaction.transaction_id,
                statement_id=stmt.id,
                transaction_cents=transaction.amount_cents,
                statement_cents=stmt.amount_cents,
            )

        return None

    def match_by_threeway(
        self,
        transaction: Transaction,
        statements: Sequence[BankStatement],
        claimed: Container[str],
    ) -> Optional[MatchCandidate]:
        """Match on merchant + amount + settlement date within the window."""
        candidates = [
            stmt for stmt in statements
            if stmt.id not in claimed
            and self._merchant_and_amount_match(transaction, stmt)
            and within_days(transaction.timestamp, stmt.settlement_date, self.window_days)
        ]

        if not candidates:
            return None

        if len(candidates) == 1:
            return MatchCandidate(
                statement=candidates[0],
                match_type=MatchType.THREEWAY,
                confidence=self.settings.threeway_confidence,
            )

        return MatchCandidate(
            statement=self._representative(transaction, candidates),
            match_type=MatchType.THREEWAY,
            confidence=self.settings.threeway_ambiguous_confidence,
            candidate_count=len(candidates),
        )

    def match_by_fuzzy(
        self,
        transaction: Transaction,
        statements: Sequence[BankStatement],
        claimed: Container[str],
    ) -> Optional[MatchCandidate]:
        """Match on merchant + amount only."""
        candidates = [
            stmt for stmt in statements
            if stmt.id not in claimed
            and self._merchant_and_amount_match(transaction, stmt)
        ]

        if not candidates:
            return None

        return MatchCandidate(
            statement=self._representative(transaction, candidates),
            match_type=MatchType.FUZZY,
            confidence=self.settings.fuzzy_confidence,
            candidate_count=len(candidates),
        )

    def _merchant_and_amount_match(
        self,
        transaction: Transaction,
        stmt: BankStatement,
    ) -> bool:
        return (
            stmt.merchant_account_id == transaction.merchant_id
            and amounts_match(transaction.amount_cents, stmt.amount_cents, self.tolerance_cents)
        )

    def _representative(
        self,
        transaction: Transaction,
        candidates: List[BankStatement],
    ) -> BankStatement:
        """
        Pick the candidate reported for an ambiguous match.

        Closest settlement date first (undated last), then reference id, then id,
        so the choice does not depend on storage order.
        """
        def sort_key(stmt: BankStatement):
            if stmt.settlement_date is None or transaction.timestamp is None:
                distance = math.inf
            else:
                distance = abs(
                    as_utc(stmt.settlement_date) - as_utc(transaction.timestamp)
                ).total_seconds()
            return (distance, stmt.bank_reference_id, stmt.id)

        return min(candidates, key=sort_key)
