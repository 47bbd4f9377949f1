"""
Sandbox - A GameManager wired to the simulated ledger.

Used by `rpsls serve` and by create_app() when no manager is given.
Accounts are auto-funded, so any address can create and join games.
"""

from __future__ import annotations

from ..config import Settings
from ..ledger.memory import InMemoryLedger
from ..store.backends import JsonFileBackend
from ..store.game_store import GameStore
from .manager import GameManager

SANDBOX_ACCOUNT = "0x" + "a1" * 20
SANDBOX_OPPONENT = "0x" + "b2" * 20


def sandbox_manager(
    settings: Settings | None = None,
    account: str = SANDBOX_ACCOUNT,
    ledger: InMemoryLedger | None = None,
    persist: bool = False,
) -> GameManager:
    settings = settings or Settings()
    if ledger is None:
        ledger = InMemoryLedger(timeout_seconds=settings.timeout_seconds, auto_fund=True)
    if persist:
        store = GameStore(JsonFileBackend(settings.store_dir), storage_key=settings.storage_key)
    else:
        store = GameStore(storage_key=settings.storage_key)
    return GameManager(ledger.client(account), store, settings=settings, clock=ledger.clock)
