"""
In-memory implementations of the record stores and run repository.
"""

import threading
from dataclasses import replace
from typing import Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

import structlog

from ..models import (
    BankStatement,
    MatchType,
    ReconciliationRun,
    ReconciliationStatus,
    Transaction,
)

logger = structlog.get_logger()

RecordT = TypeVar("RecordT", Transaction, BankStatement)


class _InMemoryRecordStore(Generic[RecordT]):
    """Records keyed by storage id, kept in insertion order."""

    def __init__(self, records: Optional[Iterable[RecordT]] = None):
        self._lock = threading.Lock()
        self._records: Dict[str, RecordT] = {}
        if records is not None:
            self.replace_all(records)

    def list_all(self) -> List[RecordT]:
        with self._lock:
            return [replace(record) for record in self._records.values()]

    def get(self, record_id: str) -> Optional[RecordT]:
        with self._lock:
            record = self._records.get(record_id)
            return replace(record) if record else None

    def replace_all(self, records: Iterable[RecordT]) -> int:
        fresh = {record.id: replace(record) for record in records}
        with self._lock:
            self._records = fresh
        return len(fresh)

    def _update(self, record_id: str, **changes) -> bool:
        """Apply changes to a stored record. False when the id is no longer stored."""
        with self._lock:
            if record_id not in self._records:
                logger.debug("Record not found for outcome update", record_id=record_id)
                return False
            self._records[record_id] = replace(self._records[record_id], **changes)
        return True


class InMemoryTransactionStore(_InMemoryRecordStore[Transaction]):

    def update_outcome(
        self,
        record_id: str,
        status: ReconciliationStatus,
        matched_statement_id: Optional[str],
        match_type: Optional[MatchType],
    ) -> bool:
        return self._update(
            record_id,
            reconciliation_status=status,
            matched_statement_id=matched_statement_id,
            match_type=match_type,
        )


class InMemoryStatementStore(_InMemoryRecordStore[BankStatement]):

    def update_outcome(
        self,
        record_id: str,
        status: ReconciliationStatus,
        matched_transaction_id: Optional[str],
        match_type: Optional[MatchType],
    ) -> bool:
        return self._update(
            record_id,
            reconciliation_status=status,
            matched_transaction_id=matched_transaction_id,
            match_type=match_type,
        )


class InMemoryRunRepository:
    """
    Runs held as serialized documents, so nothing handed out can alter
    a stored run.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._runs: Dict[str, dict] = {}

    def create(self, run: ReconciliationRun) -> None:
        document = run.to_dict()
        with self._lock:
            if run.id in self._runs:
                raise ValueError(f"Run {run.id} already exists")
            self._runs[run.id] = document

    def _ordered(self) -> List[ReconciliationRun]:
        # insertion order breaks ties between runs stamped in the same microsecond
        indexed = [
            (ReconciliationRun.from_dict(doc), position)
            for position, doc in enumerate(self._runs.values())
        ]
        indexed.sort(key=lambda item: (item[0].run_date, item[1]), reverse=True)
        return [run for run, _ in indexed]

    def latest(self) -> Optional[ReconciliationRun]:
        with self._lock:
            runs = self._ordered()
        return runs[0] if runs else None

    def get(self, run_id: str) -> Optional[ReconciliationRun]:
        with self._lock:
            document = self._runs.get(run_id)
        return ReconciliationRun.from_dict(document) if document else None

    def list(self, limit: int, offset: int = 0) -> Tuple[int, List[ReconciliationRun]]:
        with self._lock:
            runs = self._ordered()
        return len(runs), runs[offset:offset + limit]

    def delete(self, run_id: str) -> bool:
        with self._lock:
            return self._runs.pop(run_id, None) is not None

    def delete_all(self) -> int:
        with self._lock:
            count = len(self._runs)
            self._runs.clear()
        return count

