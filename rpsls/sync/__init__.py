"""
Sync Module - Keeping local games consistent with the ledger.

Pipeline:
1. ReconciliationEngine reads each tracked game's ledger snapshot
2. StateReconciler maps the snapshot onto at most one transition
3. The store commits it and observers hear about phase changes
"""

from .locks import GameLocks
from .reconciler import StateReconciler, ReconciliationResult, Conflict, ConflictType
from .poller import ReconciliationEngine, PollReport, GamesChanged

__all__ = [
    "GameLocks",
    "StateReconciler",
    "ReconciliationResult",
    "Conflict",
    "ConflictType",
    "ReconciliationEngine",
    "PollReport",
    "GamesChanged",
]
