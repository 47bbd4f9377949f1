"""
Persisted Records - The on-disk shape of tracked games.

One document per storage key:

    {"version": 1, "games": [GameRecord, ...]}

Records ignore unknown fields and default every optional one, so a
document written by a newer client stays readable by an older one
and vice versa. StoreEnvelope reads the outer shape alone, so one bad
record can be skipped without losing the rest.
"""

from __future__ import annotations
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..engine_core.commitment import salt_from_hex, salt_to_hex
from ..engine_core.moves import Move
from ..engine_core.state import Game, GamePhase, GameResult, Role, TimeoutSide

DOCUMENT_VERSION = 1


class GameRecord(BaseModel):
    """One game as stored."""
    model_config = ConfigDict(extra="ignore")

    id: str
    role: Role
    account: str
    player1: str = Field(description="Creator address")
    player2: str = Field(description="Opponent address")
    stake: str = Field(description="Per-player stake in wei, decimal string")
    state: GamePhase = GamePhase.CREATED
    commitment: Optional[str] = None

    move: Optional[int] = Field(default=None, description="Creator's move, ledger encoding")
    salt: Optional[str] = Field(default=None, description="0x-prefixed 256-bit salt")
    opponent_move: Optional[int] = None

    created_at: Optional[float] = None
    joined_at: Optional[float] = None
    revealed_at: Optional[float] = None
    completed_at: Optional[float] = None

    last_action: Optional[int] = None
    stake_remaining: Optional[str] = None

    result: GameResult = GameResult.PENDING
    timeout_side: Optional[TimeoutSide] = None
    tx_refs: dict[str, str] = Field(default_factory=dict)
    pending_tx: Optional[str] = None

    @classmethod
    def from_game(cls, game: Game) -> GameRecord:
        return cls(
            id=game.game_id,
            role=game.role,
            account=game.account,
            player1=game.creator,
            player2=game.opponent,
            stake=str(game.stake),
            state=game.phase,
            commitment=game.commitment,
            move=game.move.value if game.move else None,
            salt=salt_to_hex(game.salt) if game.salt is not None else None,
            opponent_move=game.opponent_move.value if game.opponent_move else None,
            created_at=game.created_at,
            joined_at=game.joined_at,
            revealed_at=game.revealed_at,
            completed_at=game.completed_at,
            last_action=game.last_action,
            stake_remaining=str(game.stake_remaining) if game.stake_remaining is not None else None,
            result=game.result,
            timeout_side=game.timeout_side,
            tx_refs=dict(game.tx_refs),
            pending_tx=game.pending_tx,
        )

    def to_game(self) -> Game:
        return Game(
            game_id=self.id,
            role=self.role,
            account=self.account,
            creator=self.player1,
            opponent=self.player2,
            stake=int(self.stake),
            phase=self.state,
            commitment=self.commitment,
            move=Move(self.move) if self.move else None,
            salt=salt_from_hex(self.salt) if self.salt else None,
            opponent_move=Move(self.opponent_move) if self.opponent_move else None,
            created_at=self.created_at,
            joined_at=self.joined_at,
            revealed_at=self.revealed_at,
            completed_at=self.completed_at,
            last_action=self.last_action,
            stake_remaining=int(self.stake_remaining) if self.stake_remaining is not None else None,
            result=self.result,
            timeout_side=self.timeout_side,
            tx_refs=dict(self.tx_refs),
            pending_tx=self.pending_tx,
        )


class StoreDocument(BaseModel):
    """Everything stored under one key."""
    model_config = ConfigDict(extra="ignore")

    version: int = DOCUMENT_VERSION
    games: list[GameRecord] = Field(default_factory=list)


class StoreEnvelope(BaseModel):
    """A stored document read without validating its records."""
    model_config = ConfigDict(extra="ignore")

    version: int = DOCUMENT_VERSION
    games: list[Any] = Field(default_factory=list)
