"""Exceptions raised by the reconciliation engine and reporting layer."""

from typing import Any, Optional


class ReconciliationError(Exception):
    """Base exception for reconciliation failures."""
    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class PreconditionError(ReconciliationError):
    """Run rejected before matching started (nothing to reconcile)."""


class PersistenceError(ReconciliationError):
    """The run record could not be saved."""


class NoRunsError(ReconciliationError):
    """No reconciliation run has been persisted yet."""
    def __init__(self, message: str = "No reconciliation results found"):
        super().__init__(message)


class RunNotFoundError(ReconciliationError):
    """A run id does not exist in the repository."""
    def __init__(self, run_id: str):
        super().__init__("Reconciliation result not found", details={"id": run_id})
        self.run_id = run_id
