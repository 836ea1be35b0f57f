"""
Duplicate statement detection.

Statements sharing merchant account, amount and settlement day cannot be told
apart by any matching tier. The first statement seen for a key is the
baseline; every later one is paired with it as a duplicate.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Sequence, Set, Tuple

import structlog

from ..models import BankStatement, DuplicatePair
from .matcher import as_utc

logger = structlog.get_logger()

NO_DATE = "NODATE"
UNKNOWN_MERCHANT = "UNKNOWN"


@dataclass(frozen=True)
class DuplicateReport:
    """
    Result of one duplicate scan.
    statement_ids holds every statement that belongs to at least one pair.
    """
    pairs: Tuple[DuplicatePair, ...] = ()
    statement_ids: FrozenSet[str] = frozenset()

    def __contains__(self, statement_id: object) -> bool:
        return statement_id in self.statement_ids


class DuplicateDetector:
    """Flags statements that are indistinguishable from one another."""

    @staticmethod
    def duplicate_key(stmt: BankStatement) -> str:
        """Key = merchant||amount_cents||settlement day."""
        day = NO_DATE
        if stmt.settlement_date is not None:
            day = as_utc(stmt.settlement_date).date().isoformat()
        merchant = stmt.merchant_account_id or UNKNOWN_MERCHANT
        return f"{merchant}||{stmt.amount_cents}||{day}"

    def detect(self, statements: Sequence[BankStatement]) -> DuplicateReport:
        baselines: Dict[str, BankStatement] = {}
        pairs: List[DuplicatePair] = []
        ids: Set[str] = set()

        for stmt in statements:
            key = self.duplicate_key(stmt)
            baseline = baselines.get(key)
            if baseline is None:
                baselines[key] = stmt
                continue
            pairs.append(DuplicatePair(
                baseline_id=baseline.id,
                duplicate_id=stmt.id,
                key=key,
            ))
            ids.update((baseline.id, stmt.id))

        report = DuplicateReport(pairs=tuple(pairs), statement_ids=frozenset(ids))

        if report.pairs:
            logger.info(
                "Duplicate statements detected",
                pairs=len(report.pairs),
                statements=len(report.statement_ids),
            )

        return report
