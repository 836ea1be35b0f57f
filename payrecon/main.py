"""
FastAPI application for the settlement reconciliation service.
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

import structlog
from fastapi import APIRouter, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from .config import Settings, get_settings
from .models import (
    BankStatement,
    StatementStatus,
    Transaction,
    TransactionStatus,
)
from .reconciliation import (
    NoRunsError,
    PersistenceError,
    PreconditionError,
    ReconciliationOrchestrator,
    ReconciliationReporter,
    RunNotFoundError,
)
from .storage import (
    InMemoryRunRepository,
    InMemoryStatementStore,
    InMemoryTransactionStore,
    JsonLinesAuditSink,
    JsonRunRepository,
)
from .utils.audit_logger import AuditLogger

logger = structlog.get_logger()


def setup_logging(settings: Settings) -> None:
    """Configure logging to console and, when log_dir is set, to a file."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_dir is not None:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.FileHandler(settings.log_dir / "payrecon.log", encoding="utf-8")
        )

    logging.basicConfig(
        level=getattr(logging, settings.app_log_level.upper(), logging.INFO),
        format="%(message)s",
        handlers=handlers,
        force=True,
    )

    # Configure structlog to use standard logging
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer() if settings.app_debug
            else structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@dataclass
class Services:
    """Stores and engine components shared by the request handlers."""
    transactions: InMemoryTransactionStore
    statements: InMemoryStatementStore
    orchestrator: ReconciliationOrchestrator
    reporter: ReconciliationReporter
    audit: AuditLogger


def build_services(settings: Settings) -> Services:
    if settings.storage_backend == "json":
        runs = JsonRunRepository(settings.runs_dir)
        audit_sink = JsonLinesAuditSink(settings.audit_log_path)
    else:
        runs = InMemoryRunRepository()
        audit_sink = None
    audit = AuditLogger(audit_sink, max_entries=settings.audit_max_entries)

    transactions = InMemoryTransactionStore()
    statements = InMemoryStatementStore()
    return Services(
        transactions=transactions,
        statements=statements,
        orchestrator=ReconciliationOrchestrator(
            transactions, statements, runs, audit_logger=audit, settings=settings
        ),
        reporter=ReconciliationReporter(runs, audit_logger=audit, settings=settings),
        audit=audit,
    )


# Request/Response models
def _to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class TransactionIn(BaseModel):
    transaction_id: str = Field(min_length=1)
    merchant_id: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    currency: str = "USD"
    payment_method: str = "card"
    timestamp: datetime
    status: TransactionStatus = TransactionStatus.SUCCESS
    bank_reference_id: Optional[str] = None

    def to_record(self) -> Transaction:
        return Transaction(
            transaction_id=self.transaction_id,
            merchant_id=self.merchant_id,
            amount_cents=_to_cents(self.amount),
            currency=self.currency,
            payment_method=self.payment_method,
            timestamp=self.timestamp,
            status=self.status,
            bank_reference_id=self.bank_reference_id or None,
        )


class BankStatementIn(BaseModel):
    bank_reference_id: str = Field(min_length=1)
    merchant_account_id: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    bank_name: str = "MockBank"
    settlement_date: Optional[datetime] = None
    status: StatementStatus = StatementStatus.CLEARED

    def to_record(self) -> BankStatement:
        return BankStatement(
            bank_reference_id=self.bank_reference_id,
            merchant_account_id=self.merchant_account_id,
            amount_cents=_to_cents(self.amount),
            bank_name=self.bank_name,
            settlement_date=self.settlement_date,
            status=self.status,
        )


class LoadResponse(BaseModel):
    loaded: int


router = APIRouter()


def _services(request: Request) -> Services:
    return request.app.state.services


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.put("/api/transactions", response_model=LoadResponse)
async def load_transactions(request: Request, payload: List[TransactionIn]):
    """Replace the transaction set."""
    loaded = _services(request).transactions.replace_all(p.to_record() for p in payload)
    logger.info("Transactions loaded", count=loaded)
    return LoadResponse(loaded=loaded)


@router.get("/api/transactions")
async def list_transactions(request: Request):
    records = _services(request).transactions.list_all()
    return {"count": len(records), "items": [r.to_dict() for r in records]}


@router.put("/api/bank-statements", response_model=LoadResponse)
async def load_statements(request: Request, payload: List[BankStatementIn]):
    """Replace the bank statement set."""
    references = [p.bank_reference_id for p in payload]
    if len(references) != len(set(references)):
        raise HTTPException(400, "bank_reference_id must be unique")
    loaded = _services(request).statements.replace_all(p.to_record() for p in payload)
    logger.info("Bank statements loaded", count=loaded)
    return LoadResponse(loaded=loaded)


@router.get("/api/bank-statements")
async def list_statements(request: Request):
    records = _services(request).statements.list_all()
    return {"count": len(records), "items": [r.to_dict() for r in records]}


@router.post("/api/reconcile")
async def run_reconciliation(
    request: Request,
    x_actor: Optional[str] = Header(default=None),
):
    """Run reconciliation over the current transactions and statements."""
    orchestrator = _services(request).orchestrator
    try:
        outcome = await asyncio.to_thread(orchestrator.run, x_actor)
    except PreconditionError as e:
        raise HTTPException(400, e.message)
    except PersistenceError as e:
        raise HTTPException(500, e.message)
    return outcome.to_dict()


@router.get("/api/reconcile/summary")
async def get_summary(request: Request):
    try:
        summary = _services(request).reporter.latest_summary()
    except NoRunsError as e:
        raise HTTPException(404, e.message)
    return summary.to_dict()


@router.get("/api/reconcile/mismatches")
async def get_mismatches(request: Request, show_all: bool = False):
    try:
        items = _services(request).reporter.mismatches(show_all=show_all)
    except NoRunsError as e:
        raise HTTPException(404, e.message)
    return {"count": len(items), "items": [d.to_dict() for d in items]}


@router.get("/api/reconcile/download")
async def download_report(request: Request):
    try:
        content = _services(request).reporter.to_csv()
    except NoRunsError as e:
        raise HTTPException(404, e.message)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="reconciliation_report.csv"'},
    )


@router.get("/api/reconcile/history")
async def get_history(
    request: Request,
    limit: Optional[int] = Query(default=None),
    offset: int = Query(default=0),
):
    total, limit, offset, runs = _services(request).reporter.history(limit, offset)
    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "items": [
            {"id": run.id, "run_date": run.run_date.isoformat(), "summary": run.summary.to_dict()}
            for run in runs
        ],
    }


@router.delete("/api/reconcile/all")
async def delete_all_runs(request: Request, x_actor: Optional[str] = Header(default=None)):
    deleted = _services(request).reporter.delete_all(actor=x_actor)
    return {"message": "All reconciliation results deleted", "deleted": deleted}


@router.delete("/api/reconcile/{run_id}")
async def delete_run(request: Request, run_id: str, x_actor: Optional[str] = Header(default=None)):
    try:
        _services(request).reporter.delete_run(run_id, actor=x_actor)
    except RunNotFoundError as e:
        raise HTTPException(404, e.message)
    return {"message": "Deleted reconciliation result", "id": run_id}


@router.get("/api/audit/logs")
async def get_audit_logs(
    request: Request,
    action: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    audit = _services(request).audit
    matching = audit.get_entries(action_filter=action)
    items = matching[offset:offset + limit]
    return {
        "total": len(matching),
        "limit": limit,
        "offset": offset,
        "items": [e.to_dict() for e in items],
    }


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info(
            "Starting settlement reconciliation API",
            storage_backend=settings.storage_backend,
        )
        yield
        logger.info("Shutting down settlement reconciliation API")

    app = FastAPI(
        title="Settlement Reconciliation",
        description="Tiered matching of payment transactions against bank settlements",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = build_services(settings)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=get_settings().host, port=get_settings().port)
