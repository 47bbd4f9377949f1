"""
Action System - Events, payloads, and results.

Actions are the only way a Game changes. They come from two places:
1. Local commands, once the ledger has accepted them (submit, reveal,
   timeout claim, joining as opponent)
2. Reconciliation, when a ledger snapshot shows something new
   (opponent joined, stake paid out)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .moves import Move
from .state import TimeoutSide


class ActionType(Enum):
    """Events accepted by the game state machine."""
    # Local commands
    SUBMIT = "submit"
    REVEAL = "reveal"
    CLAIM_TIMEOUT = "claim_timeout"

    # Observed on the ledger (or confirmed locally when joining)
    OPPONENT_JOINED = "opponent_joined"
    PAYOUT_OBSERVED = "payout_observed"


@dataclass
class ActionPayload:
    """
    Parameters for an action.

    Different action types use different fields; the reducer
    validates what each one needs.
    """
    game_id: str | None = None  # Ledger-assigned id on SUBMIT
    move: Move | None = None
    salt: int | None = None
    stake: int | None = None
    timeout_side: TimeoutSide | None = None
    last_action: int | None = None
    tx_ref: str | None = None


@dataclass
class Action:
    """
    A complete event to apply to a game.

    `timestamp` is the wall-clock time the event is judged against
    (deadlines) and recorded with.
    """
    action_type: ActionType
    payload: ActionPayload
    timestamp: float | None = None

    @classmethod
    def submit(cls, game_id: str, tx_ref: str | None = None, timestamp: float | None = None) -> Action:
        """Factory for the ledger accepting a new game."""
        return cls(
            action_type=ActionType.SUBMIT,
            payload=ActionPayload(game_id=game_id, tx_ref=tx_ref),
            timestamp=timestamp,
        )

    @classmethod
    def opponent_joined(
        cls,
        move: Move | None,
        stake: int | None,
        last_action: int | None = None,
        tx_ref: str | None = None,
        timestamp: float | None = None,
    ) -> Action:
        """Factory for the opponent's join being seen."""
        return cls(
            action_type=ActionType.OPPONENT_JOINED,
            payload=ActionPayload(move=move, stake=stake, last_action=last_action, tx_ref=tx_ref),
            timestamp=timestamp,
        )

    @classmethod
    def reveal(
        cls,
        move: Move | None,
        salt: int | None,
        tx_ref: str | None = None,
        timestamp: float | None = None,
    ) -> Action:
        """Factory for the creator's reveal."""
        return cls(
            action_type=ActionType.REVEAL,
            payload=ActionPayload(move=move, salt=salt, tx_ref=tx_ref),
            timestamp=timestamp,
        )

    @classmethod
    def claim_timeout(
        cls,
        side: TimeoutSide,
        tx_ref: str | None = None,
        timestamp: float | None = None,
    ) -> Action:
        """Factory for a forfeiture claim against `side`."""
        return cls(
            action_type=ActionType.CLAIM_TIMEOUT,
            payload=ActionPayload(timeout_side=side, tx_ref=tx_ref),
            timestamp=timestamp,
        )

    @classmethod
    def payout_observed(
        cls,
        stake_remaining: int,
        opponent_move: Move | None = None,
        timestamp: float | None = None,
    ) -> Action:
        """Factory for the ledger showing the stake paid out."""
        return cls(
            action_type=ActionType.PAYOUT_OBSERVED,
            payload=ActionPayload(stake=stake_remaining, move=opponent_move),
            timestamp=timestamp,
        )


@dataclass
class ActionResult:
    """
    Result of applying an action.

    On failure `error_code` names the guard that was violated.
    """
    success: bool
    new_state: Any | None = None  # Game
    error: str | None = None
    error_code: str | None = None

    # Human-readable changes for logs and UI
    state_changes: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ActionResult:
        """Create a failure result."""
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def success_with_state(cls, state: Any, changes: list[str] | None = None) -> ActionResult:
        """Create a success result with new state."""
        return cls(success=True, new_state=state, state_changes=changes or [])
