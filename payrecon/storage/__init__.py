"""Record stores, run repositories and audit sinks."""

from .base import AuditSink, RunRepository, StatementStore, TransactionStore
from .memory import (
    InMemoryRunRepository,
    InMemoryStatementStore,
    InMemoryTransactionStore,
)
from .json_store import JsonLinesAuditSink, JsonRunRepository

__all__ = [
    "AuditSink",
    "RunRepository",
    "StatementStore",
    "TransactionStore",
    "InMemoryRunRepository",
    "InMemoryStatementStore",
    "InMemoryTransactionStore",
    "JsonLinesAuditSink",
    "JsonRunRepository",
]
