"""Reconciliation engine components."""

from .claims import ClaimRegistry
from .duplicates import DuplicateDetector, DuplicateReport
from .errors import (
    NoRunsError,
    PersistenceError,
    PreconditionError,
    ReconciliationError,
    RunNotFoundError,
)
from .matcher import TieredMatcher
from .orchestrator import ReconciliationOrchestrator
from .reporting import CSV_COLUMNS, ReconciliationReporter
from .special_cases import SpecialCaseHandler, SpecialCaseOutcome

__all__ = [
    "ClaimRegistry",
    "DuplicateDetector",
    "DuplicateReport",
    "NoRunsError",
    "PersistenceError",
    "PreconditionError",
    "ReconciliationError",
    "RunNotFoundError",
    "TieredMatcher",
    "ReconciliationOrchestrator",
    "CSV_COLUMNS",
    "ReconciliationReporter",
    "SpecialCaseHandler",
    "SpecialCaseOutcome",
]
