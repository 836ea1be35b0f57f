"""
Reconciliation Orchestrator - runs one reconciliation over a frozen snapshot.

Pipeline:
1. Snapshot transactions and statements (precondition: both non-empty)
2. Duplicate detection over the statement pool
3. Per transaction: special cases, then reference, three-way and fuzzy tiers
4. Classification of leftover statements (duplicate / unmatched)
5. Persist the run as a single immutable record
6. Write reconciliation outcomes back to both stores in one batch
7. Audit event (best-effort)
"""

import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from ..config import Settings, get_settings
from ..models import (
    AuditAction,
    BankStatement,
    MatchCandidate,
    MatchType,
    ReconciliationDetail,
    ReconciliationRun,
    ReconciliationStatus,
    ReconciliationSummary,
    RunOutcome,
    Transaction,
)
from ..storage.base import RunRepository, StatementStore, TransactionStore
from ..utils.audit_logger import AuditLogger
from .claims import ClaimRegistry
from .duplicates import DuplicateDetector
from .errors import PersistenceError, PreconditionError
from .matcher import TieredMatcher
from .special_cases import SpecialCaseHandler, SpecialCaseOutcome

logger = structlog.get_logger()


@dataclass(frozen=True)
class _Verdict:
    """Detail for one transaction plus the statement it claimed, if any."""
    detail: ReconciliationDetail
    statement: Optional[BankStatement] = None


@dataclass(frozen=True)
class _OutcomeWrite:
    record_id: str
    status: ReconciliationStatus
    counterpart_id: Optional[str]
    match_type: Optional[MatchType]


class ReconciliationOrchestrator:
    """
    Main coordinator for a reconciliation run.

    Owns the per-run claim registry and the write-back of outcome fields.
    Matching rules live in TieredMatcher, SpecialCaseHandler and
    DuplicateDetector.
    """

    def __init__(
        self,
        transaction_store: TransactionStore,
        statement_store: StatementStore,
        run_repository: RunRepository,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.transaction_store = transaction_store
        self.statement_store = statement_store
        self.run_repository = run_repository
        self.audit_logger = audit_logger or AuditLogger()
        self.matcher = TieredMatcher(self.settings)
        self.duplicate_detector = DuplicateDetector()
        self.special_cases = SpecialCaseHandler()

    def run(self, actor: Optional[str] = None) -> RunOutcome:
        """
        Execute a full reconciliation run.

        Args:
            actor: Identity recorded in the audit trail

        Returns:
            RunOutcome with the summary and headline counts

        Raises:
            PreconditionError: no transactions or no statements to reconcile
            PersistenceError: the run could not be saved
        """
        start_time = time.time()
        transactions, statements = self._load_snapshot()

        logger.info(
            "Starting reconciliation",
            transactions=len(transactions),
            statements=len(statements),
            actor=actor,
        )

        duplicates = self.duplicate_detector.detect(statements)
        claims = ClaimRegistry()
        summary = ReconciliationSummary(total_transactions=len(transactions))

        details: List[ReconciliationDetail] = []
        transaction_writes: List[_OutcomeWrite] = []
        statement_writes: Dict[str, _OutcomeWrite] = {}

        for txn in transactions:
            try:
                verdict = self._reconcile_transaction(txn, statements, claims)
            except Exception as e:
                logger.exception(
                    "Error processing transaction",
                    transaction_id=txn.transaction_id,
                )
                # a faulted transaction must not keep a statement out of the run
                freed = claims.release_claims(txn.id)
                if freed:
                    logger.warning(
                        "Released claims of faulted transaction",
                        transaction_id=txn.transaction_id,
                        statement_ids=freed,
                    )
                verdict = self._fault_verdict(txn, e)

            detail = verdict.detail
            details.append(detail)
            summary.record_detail(detail)

            transaction_writes.append(_OutcomeWrite(
                record_id=txn.id,
                status=detail.reconciliation_status,
                counterpart_id=verdict.statement.id if verdict.statement else None,
                match_type=detail.match_type,
            ))
            if verdict.statement is not None:
                statement_writes[verdict.statement.id] = _OutcomeWrite(
                    record_id=verdict.statement.id,
                    status=detail.reconciliation_status,
                    counterpart_id=txn.id,
                    match_type=detail.match_type,
                )

        # Leftover statements: duplicate if flagged, otherwise unmatched
        duplicate_ids = duplicates.statement_ids
        for stmt in statements:
            if stmt.id in claims:
                continue
            status = (
                ReconciliationStatus.DUPLICATE
                if stmt.id in duplicate_ids
                else ReconciliationStatus.UNMATCHED
            )
            summary.record_leftover_statement(status)
            statement_writes[stmt.id] = _OutcomeWrite(
                record_id=stmt.id,
                status=status,
                counterpart_id=None,
                match_type=None,
            )

        run = ReconciliationRun(summary=summary, details=tuple(details))
        self._persist(run)
        skipped = self._apply_outcomes(transaction_writes, list(statement_writes.values()))

        self.audit_logger.log(
            AuditAction.RECONCILE_RUN,
            actor=actor,
            details={"run_id": run.id, **summary.to_dict()},
        )

        logger.info(
            "Reconciliation complete",
            run_id=run.id,
            matched=summary.matched,
            partial=summary.partial,
            unmatched=summary.unmatched,
            review=summary.review,
            duplicate=summary.duplicate,
            skipped_writes=skipped,
            time=round(time.time() - start_time, 3),
        )

        return RunOutcome(run_id=run.id, summary=summary, total=len(details))

    def _load_snapshot(self) -> Tuple[List[Transaction], List[BankStatement]]:
        """Load both record sets; records without a business identifier are ignored."""
        transactions = [t for t in self.transaction_store.list_all() if t.transaction_id]
        statements = [s for s in self.statement_store.list_all() if s.bank_reference_id]

        if not transactions:
            raise PreconditionError("No transactions to reconcile")
        if not statements:
            raise PreconditionError("No bank statements to reconcile")

        return transactions, statements

    def _reconcile_transaction(
        self,
        txn: Transaction,
        statements: Sequence[BankStatement],
        claims: ClaimRegistry,
    ) -> _Verdict:
        special = self.special_cases.evaluate(txn, statements, claims)
        if special is not None:
            if special.statement is None:
                return self._special_verdict(txn, special)
            if claims.claim(special.statement.id, txn.id):
                return self._special_verdict(txn, special)
            logger.debug(
                "Pending statement already claimed, falling through to tiers",
                transaction_id=txn.transaction_id,
                statement_id=special.statement.id,
            )

        for match_type, tier in self.matcher.tiers:
            candidate = tier(txn, statements, claims)
            if candidate is None:
                continue
            if not claims.claim(candidate.statement.id, txn.id):
                logger.debug(
                    "Candidate already claimed, trying next tier",
                    tier=match_type.value,
                    transaction_id=txn.transaction_id,
                    statement_id=candidate.statement.id,
                )
                continue
            return self._tier_verdict(txn, candidate)

        return _Verdict(detail=ReconciliationDetail(
            transaction_id=txn.transaction_id,
            transaction_amount_cents=txn.amount_cents,
            transaction_status=txn.status.value,
            reconciliation_status=ReconciliationStatus.UNMATCHED,
            reason="No matching bank statement found",
        ))

    def _special_verdict(self, txn: Transaction, special: SpecialCaseOutcome) -> _Verdict:
        stmt = special.statement
        return _Verdict(
            detail=ReconciliationDetail(
                transaction_id=txn.transaction_id,
                transaction_amount_cents=txn.amount_cents,
                transaction_status=txn.status.value,
                reconciliation_status=special.status,
                match_type=special.match_type,
                matched_statement_id=stmt.id if stmt else None,
                matched_amount_cents=stmt.amount_cents if stmt else None,
                reason=special.reason,
                requires_review=special.requires_review,
                candidate_count=1 if stmt else 0,
            ),
            statement=stmt,
        )

    def _tier_verdict(self, txn: Transaction, candidate: MatchCandidate) -> _Verdict:
        status, reason, requires_review = self._classify(candidate)
        return _Verdict(
            detail=ReconciliationDetail(
                transaction_id=txn.transaction_id,
                transaction_amount_cents=txn.amount_cents,
                transaction_status=txn.status.value,
                reconciliation_status=status,
                match_type=candidate.match_type,
                matched_statement_id=candidate.statement.id,
                matched_amount_cents=candidate.statement.amount_cents,
                confidence=candidate.confidence,
                reason=reason,
                requires_review=requires_review,
                candidate_count=candidate.candidate_count,
            ),
            statement=candidate.statement,
        )

    def _classify(self, candidate: MatchCandidate) -> Tuple[ReconciliationStatus, str, bool]:
        """Map a tier candidate to (status, reason, requires_review)."""
        count = candidate.candidate_count

        if candidate.match_type == MatchType.REFERENCE:
            return ReconciliationStatus.MATCHED, "Perfect match by bank reference ID", False

        if candidate.match_type == MatchType.THREEWAY:
            if candidate.is_ambiguous:
                return (
                    ReconciliationStatus.PARTIAL,
                    f"Multiple potential matches ({count}). Needs manual review.",
                    True,
                )
            return (
                ReconciliationStatus.MATCHED,
                "Three-way match: merchant + amount + date within "
                f"{self.settings.threeway_window_days} days",
                False,
            )

        if candidate.is_ambiguous:
            return (
                ReconciliationStatus.REVIEW,
                f"Multiple fuzzy matches ({count}). Requires manual review.",
                True,
            )
        return (
            ReconciliationStatus.PARTIAL,
            "Fuzzy match: merchant + amount, but date mismatch. Requires review.",
            True,
        )

    def _fault_verdict(self, txn: Transaction, error: Exception) -> _Verdict:
        status = getattr(txn.status, "value", txn.status)
        amount = txn.amount_cents if isinstance(txn.amount_cents, int) else 0
        return _Verdict(detail=ReconciliationDetail(
            transaction_id=txn.transaction_id or "UNKNOWN",
            transaction_amount_cents=amount,
            transaction_status=str(status or "unknown"),
            reconciliation_status=ReconciliationStatus.REVIEW,
            reason=f"Processing error: {error}",
            requires_review=True,
        ))

    def _persist(self, run: ReconciliationRun) -> None:
        try:
            self.run_repository.create(run)
        except Exception as e:
            logger.exception("Failed to persist reconciliation run", run_id=run.id)
            raise PersistenceError(
                "Failed to persist reconciliation run",
                details={"run_id": run.id, "error": str(e)},
            ) from e

    def _apply_outcomes(
        self,
        transaction_writes: List[_OutcomeWrite],
        statement_writes: List[_OutcomeWrite],
    ) -> int:
        """
        Write outcome fields back to both stores.

        Records replaced or removed since the snapshot are skipped; the
        persisted run still describes them. Returns the number skipped.
        """
        skipped = 0
        for store, writes in (
            (self.transaction_store, transaction_writes),
            (self.statement_store, statement_writes),
        ):
            for write in writes:
                if not store.update_outcome(
                    write.record_id, write.status, write.counterpart_id, write.match_type
                ):
                    skipped += 1

        if skipped:
            logger.warning(
                "Records changed since snapshot, outcome not written",
                skipped=skipped,
            )
        return skipped
