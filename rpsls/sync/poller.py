"""
Reconciliation Engine - The background poll task.

Each cycle:
1. Lists every submitted, non-terminal game in the store
2. Reads each game's ledger snapshot concurrently, without any lock
3. Under the game's lock, re-reads the record and reconciles it
4. Persists changed records and publishes one GamesChanged event
   naming the games whose phase moved

Failure isolation:
- A read that errors or exceeds `ledger_timeout` becomes a
  ReconciliationSkip for that game only
- The game is retried on the next natural cycle

Lifecycle:
- start() schedules the loop (idempotent)
- stop() prevents any further cycle from starting and never waits
  for the one in flight
- aclose() stops and then waits for the loop to finish
"""

from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from ..engine_core.errors import ProtocolViolation, ReconciliationSkip
from ..engine_core.reducer import GameStateMachine
from ..engine_core.state import SUBMITTED_PHASES
from ..ledger.base import LedgerClient, LedgerSnapshot
from ..store.game_store import GameStore
from .locks import GameLocks
from .reconciler import Conflict, ConflictType, ReconciliationResult, StateReconciler

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_LEDGER_TIMEOUT = 10.0


@dataclass(frozen=True)
class GamesChanged:
    """
    Notification that committed game records changed.

    `reason` is "reconciliation" for poll-applied transitions and the
    command name for confirmed local actions.
    """
    game_ids: tuple[str, ...]
    reason: str
    timestamp: float = 0.0


@dataclass
class PollReport:
    """What one poll cycle did."""
    started_at: float
    finished_at: float | None = None

    polled: list[str] = field(default_factory=list)
    transitioned: list[str] = field(default_factory=list)
    refreshed: list[str] = field(default_factory=list)

    skipped: list[ReconciliationSkip] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.skipped and not self.conflicts


class ReconciliationEngine:
    """
    Keeps the store eventually consistent with the ledger.

    Usage:
        engine = ReconciliationEngine(ledger, store, on_change=print)
        engine.start()
        ...
        await engine.aclose()
    """

    def __init__(
        self,
        ledger: LedgerClient,
        store: GameStore,
        machine: GameStateMachine | None = None,
        locks: GameLocks | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        ledger_timeout: float = DEFAULT_LEDGER_TIMEOUT,
        clock: Callable[[], float] = time.time,
        on_change: Callable[[GamesChanged], None] | None = None,
    ):
        self.ledger = ledger
        self.store = store
        self.reconciler = StateReconciler(machine or GameStateMachine())
        self.locks = locks if locks is not None else GameLocks()
        self.poll_interval = poll_interval
        self.ledger_timeout = ledger_timeout
        self.clock = clock
        self.on_change = on_change

        self.last_report: PollReport | None = None
        self.cycles = 0

        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stopping(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    def start(self) -> asyncio.Task:
        """Schedule the poll loop. Returns the running task if already started."""
        if self.running and not self.stopping:
            return self._task
        # Each loop owns its stop event, so a stopped loop never resumes
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run(self._stop_event), name="rpsls-poller")
        logger.info("Polling started (interval=%.1fs)", self.poll_interval)
        return self._task

    def stop(self):
        """No further cycle will start. An in-flight cycle finishes on its own."""
        if self._stop_event is None or self._stop_event.is_set():
            return
        self._stop_event.set()
        logger.info("Polling stopped")

    async def aclose(self):
        self.stop()
        task, self._task = self._task, None
        if task is not None:
            await task

    async def _run(self, stop_event: asyncio.Event):
        while not stop_event.is_set():
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Poll cycle failed")

            if stop_event.is_set():
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    # -------------------------------------------------------------------------
    # One cycle
    # -------------------------------------------------------------------------

    async def poll_once(self) -> PollReport:
        """
        Run one reconciliation cycle over every tracked, unresolved game.

        Safe to call while the loop is running ("refresh now").
        """
        report = PollReport(started_at=self.clock())
        games = self.store.in_phases(SUBMITTED_PHASES)
        report.polled = [g.game_id for g in games]

        outcomes = await asyncio.gather(*(self._poll_game(g.game_id) for g in games))

        for game_id, outcome in zip(report.polled, outcomes):
            if isinstance(outcome, ReconciliationSkip):
                report.skipped.append(outcome)
                continue
            if outcome is None:
                continue
            report.conflicts.extend(outcome.conflicts)
            if outcome.transitioned:
                report.transitioned.append(game_id)
            elif outcome.changed:
                report.refreshed.append(game_id)

        report.finished_at = self.clock()
        self.cycles += 1
        self.last_report = report

        logger.debug(
            "Poll cycle %d: %d polled, %d transitioned, %d skipped",
            self.cycles, len(report.polled), len(report.transitioned), len(report.skipped),
        )
        if report.transitioned and self.on_change is not None:
            self.on_change(GamesChanged(
                game_ids=tuple(report.transitioned),
                reason="reconciliation",
                timestamp=report.finished_at,
            ))
        return report

    async def _poll_game(self, game_id: str) -> ReconciliationResult | ReconciliationSkip | None:
        try:
            snapshot = await asyncio.wait_for(self.ledger.read_state(game_id), timeout=self.ledger_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            skip = ReconciliationSkip(game_id, exc)
            logger.warning("%s", skip)
            return skip

        async with self.locks.hold(game_id):
            result = self._apply_snapshot(game_id, snapshot)
            current = self.store.get(game_id)
            if current is None or current.is_terminal:
                self.locks.forget(game_id)
        return result

    def _apply_snapshot(self, game_id: str, snapshot: LedgerSnapshot) -> ReconciliationResult | None:
        # The record may have moved on while the snapshot was in flight
        current = self.store.get(game_id)
        if current is None or current.is_terminal:
            return None

        try:
            result = self.reconciler.reconcile(current, snapshot, self.clock())
        except ValueError as exc:
            result = ReconciliationResult(previous=current, game=current)
            result.conflicts.append(Conflict(
                game_id=game_id,
                conflict_type=ConflictType.GUARD_FAILED,
                description=f"Unreadable snapshot: {exc}",
            ))

        for conflict in result.conflicts:
            logger.warning("Reconciliation conflict on %s: %s", game_id, conflict.description)

        if not result.changed:
            return result

        try:
            self.store.update(game_id, lambda _: result.game)
        except ProtocolViolation as exc:
            logger.warning("Discarded reconciliation of %s: %s", game_id, exc)
            result.conflicts.append(Conflict(
                game_id=game_id,
                conflict_type=ConflictType.GUARD_FAILED,
                description=str(exc),
                guard=exc.guard,
            ))
            result.game = current
            return result

        if result.transitioned:
            logger.info(
                "Game %s: %s -> %s (%s)",
                game_id, current.phase.value, result.game.phase.value, result.action.value,
            )
        else:
            logger.debug("Game %s refreshed: %s", game_id, ", ".join(result.changes))
        return result
