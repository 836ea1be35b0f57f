"""
Tests for the reconciliation orchestrator.
"""

from datetime import datetime, timedelta, timezone

import pytest

from payrecon.models import (
    MatchType,
    ReconciliationStatus,
    StatementStatus,
    TransactionStatus,
)
from payrecon.reconciliation import PersistenceError, PreconditionError

BASE_TIME = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def _load(env, transactions, statements):
    env.transactions.replace_all(transactions)
    env.statements.replace_all(statements)


class TestScenarios:

    def test_reference_match(self, env, make_txn, make_stmt):
        """T1 with reference R1 matches the R1 statement with full confidence."""
        txn = make_txn(transaction_id="T1", merchant_id="M1", amount_cents=10000, bank_reference_id="R1")
        stmt = make_stmt(bank_reference_id="R1", merchant_account_id="M1", amount_cents=10000)
        _load(env, [txn], [stmt])

        outcome = env.orchestrator.run()
        detail = env.runs.latest().details[0]

        assert outcome.matched_count == 1
        assert detail.reconciliation_status == ReconciliationStatus.MATCHED
        assert detail.match_type == MatchType.REFERENCE
        assert detail.confidence == 1.0
        assert detail.matched_statement_id == stmt.id
        assert not detail.requires_review

    def test_ambiguous_threeway_is_partial(self, env, make_txn, make_stmt):
        txn = make_txn(merchant_id="M2", amount_cents=5000, bank_reference_id=None)
        stmts = [
            make_stmt(
                bank_reference_id="S-B",
                merchant_account_id="M2",
                amount_cents=5000,
                settlement_date=BASE_TIME + timedelta(days=1),
            ),
            make_stmt(
                bank_reference_id="S-A",
                merchant_account_id="M2",
                amount_cents=5000,
                settlement_date=BASE_TIME - timedelta(days=1),
            ),
        ]
        _load(env, [txn], stmts)

        outcome = env.orchestrator.run()
        detail = env.runs.latest().details[0]

        assert detail.reconciliation_status == ReconciliationStatus.PARTIAL
        assert detail.match_type == MatchType.THREEWAY
        assert detail.candidate_count == 2
        assert detail.confidence == 0.8
        assert detail.requires_review
        assert detail.matched_statement_id == stmts[1].id
        assert outcome.summary.matches_by_type["threeway"] == 1
        assert outcome.summary.unmatched_statements == 1

    def test_failed_transaction_leaves_statement_unclaimed(self, env, make_txn, make_stmt):
        txn = make_txn(status=TransactionStatus.FAILED, bank_reference_id="R1")
        stmt = make_stmt(bank_reference_id="R1")
        _load(env, [txn], [stmt])

        outcome = env.orchestrator.run()
        detail = env.runs.latest().details[0]

        assert detail.reconciliation_status == ReconciliationStatus.REVIEW
        assert detail.match_type == MatchType.FAILED_TRANSACTION
        assert detail.matched_statement_id is None
        assert outcome.summary.review == 1
        assert outcome.summary.failed == 1
        assert outcome.summary.matches_by_type["failed_transaction"] == 1
        assert env.statements.get(stmt.id).reconciliation_status == ReconciliationStatus.UNMATCHED

    def test_pending_transaction_claims_pending_statement(self, env, make_txn, make_stmt):
        txn = make_txn(status=TransactionStatus.PENDING, bank_reference_id="R1")
        cleared = make_stmt(bank_reference_id="R1")
        pending = make_stmt(bank_reference_id="P1", status=StatementStatus.PENDING, amount_cents=777)
        _load(env, [txn], [cleared, pending])

        env.orchestrator.run()
        detail = env.runs.latest().details[0]

        assert detail.reconciliation_status == ReconciliationStatus.PARTIAL
        assert detail.match_type == MatchType.PENDING_MATCH
        assert detail.matched_statement_id == pending.id
        assert detail.matched_amount_cents == 777
        stored = env.statements.get(pending.id)
        assert stored.reconciliation_status == ReconciliationStatus.PARTIAL
        assert stored.matched_transaction_id == txn.id

    def test_pending_without_pending_statement_uses_tiers(self, env, make_txn, make_stmt):
        txn = make_txn(status=TransactionStatus.PENDING, bank_reference_id="R1")
        _load(env, [txn], [make_stmt(bank_reference_id="R1")])

        env.orchestrator.run()

        assert env.runs.latest().details[0].match_type == MatchType.REFERENCE

    def test_reference_collision_is_not_reference_match(self, env, make_txn, make_stmt):
        txn = make_txn(bank_reference_id="R1", amount_cents=10000)
        stmt = make_stmt(bank_reference_id="R1", amount_cents=10005)
        _load(env, [txn], [stmt])

        env.orchestrator.run()
        detail = env.runs.latest().details[0]

        assert detail.reconciliation_status == ReconciliationStatus.UNMATCHED
        assert detail.match_type is None

    def test_reference_collision_falls_through_to_threeway(self, env, make_txn, make_stmt):
        txn = make_txn(bank_reference_id="R1", amount_cents=10000)
        collision = make_stmt(bank_reference_id="R1", amount_cents=20000)
        other = make_stmt(bank_reference_id="R2", amount_cents=10000)
        _load(env, [txn], [collision, other])

        env.orchestrator.run()
        detail = env.runs.latest().details[0]

        assert detail.match_type == MatchType.THREEWAY
        assert detail.matched_statement_id == other.id

    def test_single_fuzzy_is_partial_and_multiple_is_review(self, env, make_txn, make_stmt):
        far = BASE_TIME + timedelta(days=20)
        txns = [
            make_txn(transaction_id="T1", merchant_id="M1"),
            make_txn(transaction_id="T2", merchant_id="M9", amount_cents=300),
        ]
        stmts = [
            make_stmt(bank_reference_id="S-1", merchant_account_id="M1", settlement_date=far),
            make_stmt(bank_reference_id="S-2", merchant_account_id="M9", amount_cents=300, settlement_date=far),
            make_stmt(
                bank_reference_id="S-3",
                merchant_account_id="M9",
                amount_cents=300,
                settlement_date=far + timedelta(days=3),
            ),
        ]
        _load(env, txns, stmts)

        outcome = env.orchestrator.run()
        first, second = env.runs.latest().details

        assert first.reconciliation_status == ReconciliationStatus.PARTIAL
        assert first.match_type == MatchType.FUZZY
        assert second.reconciliation_status == ReconciliationStatus.REVIEW
        assert second.candidate_count == 2
        assert outcome.summary.matches_by_type["fuzzy"] == 2


class TestRunInvariants:

    def test_one_detail_per_transaction_and_exclusive_claims(self, env, make_txn, make_stmt):
        txns = [make_txn(transaction_id=f"T{i}") for i in range(4)]
        stmts = [make_stmt(bank_reference_id=f"S{i}") for i in range(2)]
        _load(env, txns, stmts)

        env.orchestrator.run()
        details = env.runs.latest().details

        assert [d.transaction_id for d in details] == ["T0", "T1", "T2", "T3"]
        claimed = [d.matched_statement_id for d in details if d.matched_statement_id]
        assert len(claimed) == 2
        assert len(set(claimed)) == 2

    def test_summary_is_consistent(self, env, make_txn, make_stmt):
        txns = [
            make_txn(transaction_id="T1", bank_reference_id="R1"),
            make_txn(transaction_id="T2", status=TransactionStatus.FAILED),
            make_txn(transaction_id="T3", merchant_id="NOPE"),
            make_txn(transaction_id="T4", status=TransactionStatus.PENDING),
        ]
        stmts = [
            make_stmt(bank_reference_id="R1"),
            make_stmt(bank_reference_id="P1", status=StatementStatus.PENDING, amount_cents=1),
        ]
        _load(env, txns, stmts)

        summary = env.orchestrator.run().summary

        assert summary.total_transactions == 4
        assert summary.is_consistent
        assert (summary.matched, summary.partial, summary.unmatched, summary.review) == (1, 1, 1, 1)

    def test_unclaimed_duplicates_counted_as_duplicate(self, env, make_txn, make_stmt):
        txn = make_txn(merchant_id="OTHER")
        dup_a = make_stmt(bank_reference_id="D1")
        dup_b = make_stmt(bank_reference_id="D2", settlement_date=BASE_TIME + timedelta(hours=2))
        _load(env, [txn], [dup_a, dup_b])

        summary = env.orchestrator.run().summary

        assert summary.duplicate == 2
        assert summary.unmatched_statements == 0
        assert env.statements.get(dup_a.id).reconciliation_status == ReconciliationStatus.DUPLICATE
        assert env.statements.get(dup_b.id).reconciliation_status == ReconciliationStatus.DUPLICATE

    def test_claimed_statement_is_never_duplicate(self, env, make_txn, make_stmt):
        txn = make_txn(bank_reference_id="D1")
        dup_a = make_stmt(bank_reference_id="D1")
        dup_b = make_stmt(bank_reference_id="D2")
        _load(env, [txn], [dup_a, dup_b])

        summary = env.orchestrator.run().summary

        assert summary.duplicate == 1
        assert env.statements.get(dup_a.id).reconciliation_status == ReconciliationStatus.MATCHED

    def test_outcomes_written_back(self, env, make_txn, make_stmt):
        txn = make_txn(bank_reference_id="R1")
        stmt = make_stmt(bank_reference_id="R1")
        unmatched = make_txn(transaction_id="T2", merchant_id="X")
        _load(env, [txn, unmatched], [stmt])

        env.orchestrator.run()

        stored_txn = env.transactions.get(txn.id)
        assert stored_txn.reconciliation_status == ReconciliationStatus.MATCHED
        assert stored_txn.matched_statement_id == stmt.id
        assert stored_txn.match_type == MatchType.REFERENCE
        stored_stmt = env.statements.get(stmt.id)
        assert stored_stmt.matched_transaction_id == txn.id
        assert stored_stmt.match_type == MatchType.REFERENCE
        assert env.transactions.get(unmatched.id).reconciliation_status == ReconciliationStatus.UNMATCHED

    def test_rerun_creates_new_record_with_same_summary(self, env, make_txn, make_stmt):
        _load(env, [make_txn(bank_reference_id="R1")], [make_stmt(bank_reference_id="R1")])

        first = env.orchestrator.run()
        second = env.orchestrator.run()

        assert first.run_id != second.run_id
        assert first.summary.to_dict() == second.summary.to_dict()
        total, _ = env.runs.list(limit=10)
        assert total == 2


class TestErrorHandling:

    def test_no_transactions(self, env, make_stmt):
        _load(env, [], [make_stmt()])

        with pytest.raises(PreconditionError):
            env.orchestrator.run()
        assert env.runs.latest() is None

    def test_no_statements(self, env, make_txn):
        _load(env, [make_txn()], [])

        with pytest.raises(PreconditionError):
            env.orchestrator.run()
        assert env.runs.latest() is None

    def test_records_without_identifier_are_ignored(self, env, make_txn, make_stmt):
        _load(env, [make_txn(transaction_id="")], [make_stmt()])

        with pytest.raises(PreconditionError):
            env.orchestrator.run()

    def test_processing_fault_becomes_review(self, env, make_txn, make_stmt, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(env.orchestrator.matcher, "match_by_reference", boom)
        txns = [make_txn(transaction_id="T1"), make_txn(transaction_id="T2", status=TransactionStatus.FAILED)]
        _load(env, txns, [make_stmt()])

        outcome = env.orchestrator.run()
        first, second = env.runs.latest().details

        assert outcome.total == 2
        assert first.reconciliation_status == ReconciliationStatus.REVIEW
        assert first.reason == "Processing error: boom"
        assert first.requires_review
        assert second.match_type == MatchType.FAILED_TRANSACTION
        assert outcome.summary.review == 2

    def test_persistence_failure_leaves_records_untouched(self, env, make_txn, make_stmt, monkeypatch):
        def fail(run):
            raise OSError("disk full")

        monkeypatch.setattr(env.runs, "create", fail)
        txn = make_txn(bank_reference_id="R1")
        stmt = make_stmt(bank_reference_id="R1")
        _load(env, [txn], [stmt])

        with pytest.raises(PersistenceError):
            env.orchestrator.run()

        assert env.transactions.get(txn.id).matched_statement_id is None
        assert env.statements.get(stmt.id).match_type is None
        assert len(env.audit.entries) == 0

    def test_fault_after_claim_releases_statement(self, env, make_txn, make_stmt, monkeypatch):
        """A transaction that faults mid-match leaves its statement for the next one."""
        original = env.orchestrator._tier_verdict

        def flaky(txn, candidate):
            if txn.transaction_id == "T1":
                raise RuntimeError("detail build failed")
            return original(txn, candidate)

        monkeypatch.setattr(env.orchestrator, "_tier_verdict", flaky)
        txns = [
            make_txn(transaction_id="T1", bank_reference_id="R1"),
            make_txn(transaction_id="T2", bank_reference_id="R1"),
        ]
        stmt = make_stmt(bank_reference_id="R1")
        _load(env, txns, [stmt])

        summary = env.orchestrator.run().summary
        first, second = env.runs.latest().details

        assert first.reconciliation_status == ReconciliationStatus.REVIEW
        assert first.matched_statement_id is None
        assert second.reconciliation_status == ReconciliationStatus.MATCHED
        assert second.matched_statement_id == stmt.id
        assert env.statements.get(stmt.id).matched_transaction_id == txns[1].id
        assert summary.is_consistent

    def test_fault_with_unclaimed_statement_counts_it_as_leftover(self, env, make_txn, make_stmt, monkeypatch):
        def flaky(txn, candidate):
            raise RuntimeError("detail build failed")

        monkeypatch.setattr(env.orchestrator, "_tier_verdict", flaky)
        stmt = make_stmt(bank_reference_id="R1")
        _load(env, [make_txn(bank_reference_id="R1")], [stmt])

        summary = env.orchestrator.run().summary

        assert summary.review == 1
        assert summary.unmatched_statements == 1
        assert env.statements.get(stmt.id).reconciliation_status == ReconciliationStatus.UNMATCHED

    def test_records_replaced_during_run_are_skipped(self, env, make_txn, make_stmt, monkeypatch):
        """Records that vanish after the snapshot do not fail an already persisted run."""
        original_create = env.runs.create
        replacement = make_txn(transaction_id="T9")

        def create_then_reload(run):
            original_create(run)
            env.transactions.replace_all([replacement])

        monkeypatch.setattr(env.runs, "create", create_then_reload)
        stmt = make_stmt(bank_reference_id="R1")
        _load(env, [make_txn(bank_reference_id="R1")], [stmt])

        outcome = env.orchestrator.run(actor="ops")

        assert outcome.matched_count == 1
        assert env.runs.get(outcome.run_id) is not None
        assert env.transactions.get(replacement.id).reconciliation_status == ReconciliationStatus.UNMATCHED
        assert env.statements.get(stmt.id).reconciliation_status == ReconciliationStatus.MATCHED
        assert env.audit.entries[-1].details["run_id"] == outcome.run_id

    def test_audit_failure_does_not_fail_run(self, env, make_txn, make_stmt):
        class BrokenSink:
            def record(self, entry):
                raise ConnectionError("audit store down")

        env.audit.sink = BrokenSink()
        _load(env, [make_txn(bank_reference_id="R1")], [make_stmt(bank_reference_id="R1")])

        outcome = env.orchestrator.run(actor="alice")

        assert outcome.matched_count == 1
        assert env.audit.entries[0].actor == "alice"

    def test_audit_event_recorded(self, env, make_txn, make_stmt):
        _load(env, [make_txn(bank_reference_id="R1")], [make_stmt(bank_reference_id="R1")])

        outcome = env.orchestrator.run(actor="ops")

        entry = env.audit.entries[-1]
        assert entry.action.value == "reconcile.run"
        assert entry.actor == "ops"
        assert entry.details["run_id"] == outcome.run_id


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
