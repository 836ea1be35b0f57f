"""Settlement reconciliation service."""
