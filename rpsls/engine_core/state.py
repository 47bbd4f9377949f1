"""
Game State - The local record of one wager.

A Game is owned by exactly one local account, playing either the
CREATOR role (holds the secret move and salt) or the OPPONENT role
(plays a plaintext move). Records are immutable; every change produces
a new Game through the reducer or `_copy_with`.

Phases only move forward:

    CREATED -> WAITING_FOR_OPPONENT -> WAITING_FOR_REVEAL -> REVEALED -> COMPLETED
                        |                      |
                        +------> TIMED_OUT <---+

COMPLETED and TIMED_OUT are terminal.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum

from .moves import Move


class GamePhase(Enum):
    """Lifecycle phase of a game."""
    CREATED = "created"  # Commitment formed, not yet accepted by the ledger
    WAITING_FOR_OPPONENT = "waiting_for_opponent"
    WAITING_FOR_REVEAL = "waiting_for_reveal"
    REVEALED = "revealed"  # Creator's reveal confirmed, payout pending
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"

    @property
    def rank(self) -> int:
        return _PHASE_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


_PHASE_RANK = {
    GamePhase.CREATED: 0,
    GamePhase.WAITING_FOR_OPPONENT: 1,
    GamePhase.WAITING_FOR_REVEAL: 2,
    GamePhase.REVEALED: 3,
    GamePhase.COMPLETED: 4,
    GamePhase.TIMED_OUT: 4,
}

TERMINAL_PHASES = frozenset({GamePhase.COMPLETED, GamePhase.TIMED_OUT})

# Phases the ledger knows about and the poller must track
SUBMITTED_PHASES = frozenset({
    GamePhase.WAITING_FOR_OPPONENT,
    GamePhase.WAITING_FOR_REVEAL,
    GamePhase.REVEALED,
})


class Role(Enum):
    """The local player's seat in a game."""
    CREATOR = "creator"
    OPPONENT = "opponent"


class TimeoutSide(Enum):
    """The side that failed to act before the deadline."""
    CREATOR = "creator"  # never revealed
    OPPONENT = "opponent"  # never joined


class GameResult(Enum):
    """Outcome as known to the local client."""
    PENDING = "pending"
    CREATOR_WINS = "creator_wins"
    OPPONENT_WINS = "opponent_wins"
    TIE = "tie"
    UNKNOWN = "unknown"  # Finished, but the creator's move is hidden from us


# Fields that are frozen once a game is terminal
OUTCOME_FIELDS = ("phase", "result", "timeout_side", "move", "opponent_move", "stake")


@dataclass(frozen=True)
class Game:
    """
    One wager as tracked by the local client.

    Timestamps are wall-clock seconds. `last_action` is the ledger's own
    seconds-precision timestamp and drives the timeout deadlines.
    """
    game_id: str
    role: Role
    account: str  # Local player's address
    creator: str
    opponent: str
    stake: int  # Per-player stake in wei

    phase: GamePhase = GamePhase.CREATED
    commitment: str | None = None

    # Creator-only secrets
    move: Move | None = None
    salt: int | None = None

    # Opponent's plaintext move, once played
    opponent_move: Move | None = None

    # Local timeline
    created_at: float | None = None
    joined_at: float | None = None
    revealed_at: float | None = None
    completed_at: float | None = None

    # Last observed ledger facts
    last_action: int | None = None
    stake_remaining: int | None = None

    # Resolution
    result: GameResult = GameResult.PENDING
    timeout_side: TimeoutSide | None = None

    tx_refs: dict[str, str] = field(default_factory=dict)

    # Submission sent but not yet confirmed: "deploy", "join" or "reveal"
    pending_tx: str | None = None

    @property
    def is_creator(self) -> bool:
        return self.role == Role.CREATOR

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def is_active(self) -> bool:
        return not self.phase.is_terminal

    @property
    def counterparty(self) -> str:
        return self.opponent if self.is_creator else self.creator

    @property
    def local_move(self) -> Move | None:
        """The move this client played, if known."""
        return self.move if self.is_creator else self.opponent_move

    @property
    def winner(self) -> str | None:
        """Address of the winner, if decided and not a tie."""
        if self.result == GameResult.CREATOR_WINS:
            return self.creator
        if self.result == GameResult.OPPONENT_WINS:
            return self.opponent
        return None

    def deadline_reference(self) -> float | None:
        """
        Start of the current timeout window.

        Prefers the ledger's last-action time, falling back to the
        local creation or join time.
        """
        if self.last_action is not None:
            return float(self.last_action)
        if self.phase == GamePhase.WAITING_FOR_REVEAL and self.joined_at is not None:
            return self.joined_at
        return self.created_at

    def with_tx(self, kind: str, tx_ref: str | None) -> Game:
        if not tx_ref:
            return self
        refs = dict(self.tx_refs)
        refs[kind] = tx_ref
        return self._copy_with(tx_refs=refs)

    def _copy_with(self, **kwargs) -> Game:
        """Create a copy with some fields replaced."""
        return replace(self, **kwargs)
