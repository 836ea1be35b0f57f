"""
Interfaces of the collaborators the reconciliation engine depends on.
"""

from typing import Iterable, List, Optional, Protocol, Tuple

from ..models import (
    AuditEntry,
    BankStatement,
    MatchType,
    ReconciliationRun,
    ReconciliationStatus,
    Transaction,
)


class TransactionStore(Protocol):
    def list_all(self) -> List[Transaction]:
        """Snapshot of every transaction. Callers may mutate the returned copies."""
        ...

    def replace_all(self, records: Iterable[Transaction]) -> int:
        ...

    def update_outcome(
        self,
        record_id: str,
        status: ReconciliationStatus,
        matched_statement_id: Optional[str],
        match_type: Optional[MatchType],
    ) -> bool:
        """Write the outcome fields; False when the record is no longer stored."""
        ...


class StatementStore(Protocol):
    def list_all(self) -> List[BankStatement]:
        ...

    def replace_all(self, records: Iterable[BankStatement]) -> int:
        ...

    def update_outcome(
        self,
        record_id: str,
        status: ReconciliationStatus,
        matched_transaction_id: Optional[str],
        match_type: Optional[MatchType],
    ) -> bool:
        """Write the outcome fields; False when the record is no longer stored."""
        ...


class RunRepository(Protocol):
    def create(self, run: ReconciliationRun) -> None:
        """Persist a run as a whole, or not at all."""
        ...

    def latest(self) -> Optional[ReconciliationRun]:
        ...

    def get(self, run_id: str) -> Optional[ReconciliationRun]:
        ...

    def list(self, limit: int, offset: int = 0) -> Tuple[int, List[ReconciliationRun]]:
        """Return (total, runs) with runs ordered newest first."""
        ...

    def delete(self, run_id: str) -> bool:
        ...

    def delete_all(self) -> int:
        ...


class AuditSink(Protocol):
    def record(self, entry: AuditEntry) -> None:
        ...
