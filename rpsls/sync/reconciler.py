"""
State Reconciler - Maps a ledger snapshot onto a local game.

The reconciler is the bridge between the ledger (authoritative) and
the local record (a remembered view). It:

1. Refreshes observed fields (last action time, remaining stake)
2. Detects snapshots that contradict the local record
3. Derives at most one state-machine event from the snapshot
4. Applies it through the GameStateMachine

Key principle: The LEDGER owns finality, not the client.
A zero remaining stake is the only completion signal, and it
overrides any locally guessed outcome.

Reconciliation is pure and idempotent: the same snapshot applied to
its own output changes nothing.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..engine_core.action import Action, ActionType
from ..engine_core.commitment import normalize_commitment
from ..engine_core.reducer import GameStateMachine
from ..engine_core.state import Game, GamePhase
from ..engine_core.validation import same_address
from ..ledger.base import LedgerSnapshot


class ConflictType(Enum):
    """Ways a snapshot can disagree with the local record."""
    GUARD_FAILED = "guard_failed"  # Implied event rejected by the state machine
    STALE_SNAPSHOT = "stale_snapshot"  # Snapshot older than what we already know
    COMMITMENT_DIVERGED = "commitment_diverged"
    PARTICIPANT_DIVERGED = "participant_diverged"


@dataclass
class Conflict:
    """
    A disagreement between a snapshot and the local record.

    Conflicts never change the record; they are reported and logged.
    """
    game_id: str
    conflict_type: ConflictType
    description: str

    expected_value: Any = None
    observed_value: Any = None
    guard: str | None = None


@dataclass
class ReconciliationResult:
    """
    Result of reconciling one snapshot with one game.
    """
    previous: Game
    game: Game

    # Event applied, if the snapshot implied a transition
    action: ActionType | None = None

    # Human-readable changes (for logs)
    changes: list[str] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)

    @property
    def transitioned(self) -> bool:
        return self.game.phase != self.previous.phase

    @property
    def changed(self) -> bool:
        return self.game != self.previous


@dataclass
class StateReconciler:
    """
    Reconciles ledger snapshots with local games.

    Stateless apart from the state machine it applies events through.
    """
    machine: GameStateMachine = field(default_factory=GameStateMachine)

    def reconcile(self, game: Game, snapshot: LedgerSnapshot, now: float) -> ReconciliationResult:
        """
        Reconcile a snapshot with a game.

        Steps:
        1. Skip terminal games (their outcome is frozen)
        2. Reject stale or contradictory snapshots
        3. Refresh observed fields
        4. Derive and apply the minimal transition
        """
        result = ReconciliationResult(previous=game, game=game)
        if game.is_terminal:
            return result

        # Step 2: Consistency
        result.conflicts.extend(self._check_consistency(game, snapshot))
        if result.conflicts:
            return result

        # Step 3: Observed fields
        refreshed, changes = self._refresh_fields(game, snapshot)
        result.game = refreshed
        result.changes.extend(changes)

        # Step 4: At most one transition
        action = self._derive_action(refreshed, snapshot, now)
        if action is None:
            return result

        applied = self.machine.apply(refreshed, action)
        if not applied.success:
            result.conflicts.append(Conflict(
                game_id=game.game_id,
                conflict_type=ConflictType.GUARD_FAILED,
                description=applied.error or "Transition rejected",
                expected_value=game.phase.value,
                observed_value=action.action_type.value,
                guard=applied.error_code,
            ))
            return result

        result.game = applied.new_state
        result.action = action.action_type
        result.changes.extend(applied.state_changes)
        return result

    def _check_consistency(self, game: Game, snapshot: LedgerSnapshot) -> list[Conflict]:
        conflicts = []

        if game.last_action is not None and snapshot.last_action < game.last_action:
            conflicts.append(Conflict(
                game_id=game.game_id,
                conflict_type=ConflictType.STALE_SNAPSHOT,
                description="Snapshot predates the last observed action",
                expected_value=game.last_action,
                observed_value=snapshot.last_action,
            ))

        if (
            game.phase.rank >= GamePhase.WAITING_FOR_REVEAL.rank
            and not snapshot.opponent_joined
            and not snapshot.completed
        ):
            conflicts.append(Conflict(
                game_id=game.game_id,
                conflict_type=ConflictType.STALE_SNAPSHOT,
                description="Snapshot shows no opponent move for a joined game",
                expected_value=game.phase.value,
                observed_value=snapshot.opponent_move,
            ))

        if game.commitment and snapshot.commitment:
            try:
                diverged = normalize_commitment(game.commitment) != normalize_commitment(snapshot.commitment)
            except ValueError:
                diverged = True
            if diverged:
                conflicts.append(Conflict(
                    game_id=game.game_id,
                    conflict_type=ConflictType.COMMITMENT_DIVERGED,
                    description="Ledger commitment differs from the local one",
                    expected_value=game.commitment,
                    observed_value=snapshot.commitment,
                ))

        if not (same_address(game.creator, snapshot.creator) and same_address(game.opponent, snapshot.opponent)):
            conflicts.append(Conflict(
                game_id=game.game_id,
                conflict_type=ConflictType.PARTICIPANT_DIVERGED,
                description="Ledger participants differ from the local record",
                expected_value=(game.creator, game.opponent),
                observed_value=(snapshot.creator, snapshot.opponent),
            ))

        return conflicts

    def _refresh_fields(self, game: Game, snapshot: LedgerSnapshot) -> tuple[Game, list[str]]:
        updates: dict[str, Any] = {}
        changes = []

        if snapshot.last_action != game.last_action:
            updates["last_action"] = snapshot.last_action
            changes.append(f"last_action -> {snapshot.last_action}")
        if snapshot.stake_remaining != game.stake_remaining:
            updates["stake_remaining"] = snapshot.stake_remaining
            changes.append(f"stake_remaining -> {snapshot.stake_remaining}")

        if not updates:
            return game, changes
        return game._copy_with(**updates), changes

    def _derive_action(self, game: Game, snapshot: LedgerSnapshot, now: float) -> Action | None:
        """
        The single event implied by the snapshot, in priority order.

        Stake zero beats everything else: the pot is gone, whatever
        happened on the way.
        """
        if snapshot.completed:
            return Action.payout_observed(
                stake_remaining=0,
                opponent_move=snapshot.opponent_move_as_move(),
                timestamp=now,
            )
        if snapshot.opponent_joined and game.phase == GamePhase.WAITING_FOR_OPPONENT:
            return Action.opponent_joined(
                move=snapshot.opponent_move_as_move(),
                stake=snapshot.stake_remaining,
                last_action=snapshot.last_action,
                timestamp=now,
            )
        return None
