"""
Ledger Module - The authoritative side, seen from the client.

The ledger is the single source of truth for stakes and finality.
The client only submits transactions and reads snapshots through
LedgerClient; InMemoryLedger simulates a chain for tests and the
local sandbox.
"""

from .base import LedgerClient, LedgerSnapshot, DeployReceipt, TxReceipt
from .memory import InMemoryLedger, InMemoryLedgerClient

__all__ = [
    "LedgerClient",
    "LedgerSnapshot",
    "DeployReceipt",
    "TxReceipt",
    "InMemoryLedger",
    "InMemoryLedgerClient",
]
