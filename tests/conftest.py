"""
Shared fixtures for the reconciliation tests.
"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from payrecon.config import Settings
from payrecon.models import (
    BankStatement,
    StatementStatus,
    Transaction,
    TransactionStatus,
)
from payrecon.reconciliation import ReconciliationOrchestrator, ReconciliationReporter
from payrecon.storage import (
    InMemoryRunRepository,
    InMemoryStatementStore,
    InMemoryTransactionStore,
)
from payrecon.utils import AuditLogger

BASE_TIME = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings():
    return Settings(storage_backend="memory", log_dir=None)


@pytest.fixture
def make_txn():
    def factory(**overrides) -> Transaction:
        fields = dict(
            transaction_id="T1",
            merchant_id="M1",
            amount_cents=10000,
            payment_method="card",
            timestamp=BASE_TIME,
            status=TransactionStatus.SUCCESS,
            bank_reference_id=None,
        )
        fields.update(overrides)
        return Transaction(**fields)
    return factory


@pytest.fixture
def make_stmt():
    def factory(**overrides) -> BankStatement:
        fields = dict(
            bank_reference_id="R1",
            merchant_account_id="M1",
            amount_cents=10000,
            settlement_date=BASE_TIME,
            status=StatementStatus.CLEARED,
        )
        fields.update(overrides)
        return BankStatement(**fields)
    return factory


@pytest.fixture
def env(settings):
    """In-memory stores wired to an orchestrator and a reporter."""
    transactions = InMemoryTransactionStore()
    statements = InMemoryStatementStore()
    runs = InMemoryRunRepository()
    audit = AuditLogger()
    return SimpleNamespace(
        transactions=transactions,
        statements=statements,
        runs=runs,
        audit=audit,
        orchestrator=ReconciliationOrchestrator(
            transactions, statements, runs, audit_logger=audit, settings=settings
        ),
        reporter=ReconciliationReporter(runs, audit_logger=audit, settings=settings),
    )
