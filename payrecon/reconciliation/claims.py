"""
Claim registry for bank statements within a single run.

A statement may be claimed by at most one transaction. Claiming is an atomic
claim-or-fail operation so the registry stays correct if matching is spread
across threads.
"""

import threading
from typing import Dict, FrozenSet, List, Optional


class ClaimRegistry:
    """Tracks which statements have been claimed, and by whom."""

    def __init__(self):
        self._lock = threading.Lock()
        self._claims: Dict[str, str] = {}

    def claim(self, statement_id: str, transaction_id: str) -> bool:
        """Claim a statement. Returns False if it was already claimed."""
        with self._lock:
            if statement_id in self._claims:
                return False
            self._claims[statement_id] = transaction_id
            return True

    def release_claims(self, transaction_id: str) -> List[str]:
        """Drop every claim held by a transaction. Returns the freed statement ids."""
        with self._lock:
            freed = [sid for sid, owner in self._claims.items() if owner == transaction_id]
            for statement_id in freed:
                del self._claims[statement_id]
        return freed

    def is_claimed(self, statement_id: str) -> bool:
        return statement_id in self._claims

    def __contains__(self, statement_id: object) -> bool:
        return statement_id in self._claims

    def __len__(self) -> int:
        return len(self._claims)

    def claimant(self, statement_id: str) -> Optional[str]:
        return self._claims.get(statement_id)

    def claimed_ids(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._claims)
