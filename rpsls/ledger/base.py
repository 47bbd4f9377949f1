"""
Ledger Boundary - What the client needs from the authoritative side.

The ledger deploys one game contract per wager, holds the stakes,
verifies reveals against the published commitment, and pays out.
Wallet connection, signing, gas, and confirmation are the
implementation's business; the client only sees this interface.

Every call is a suspension point. Implementations raise
ExternalRejection when the ledger refuses a transaction; other
exceptions (network, timeouts) propagate unchanged.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..engine_core.moves import Move, NO_MOVE


@dataclass(frozen=True)
class DeployReceipt:
    game_id: str
    tx_ref: str


@dataclass(frozen=True)
class TxReceipt:
    tx_ref: str


@dataclass(frozen=True)
class LedgerSnapshot:
    """
    Authoritative state of one game contract as last read.

    `stake_remaining` drops to zero once the pot has been paid out;
    that is the only completion signal the contract exposes.
    """
    game_id: str
    creator: str
    opponent: str
    stake_remaining: int
    opponent_move: int  # 0 until the opponent plays
    commitment: str
    last_action: int  # Ledger seconds

    @property
    def opponent_joined(self) -> bool:
        return self.opponent_move != NO_MOVE

    @property
    def completed(self) -> bool:
        return self.stake_remaining == 0

    def opponent_move_as_move(self) -> Move | None:
        if not self.opponent_joined:
            return None
        return Move.from_encoding(self.opponent_move)


class LedgerClient(ABC):
    """A ledger connection acting on behalf of one account."""

    @property
    @abstractmethod
    def account(self) -> str:
        """Address that signs this client's transactions."""

    @abstractmethod
    async def deploy(self, commitment: str, opponent: str, stake: int) -> DeployReceipt:
        """Create a game holding the creator's commitment and stake."""

    @abstractmethod
    async def join(self, game_id: str, move_encoding: int, stake: int) -> TxReceipt:
        """Play the opponent's plaintext move with a matching stake."""

    @abstractmethod
    async def reveal(self, game_id: str, move_encoding: int, salt: int) -> TxReceipt:
        """Reveal the creator's move; the ledger verifies and pays out."""

    @abstractmethod
    async def claim_creator_timeout(self, game_id: str) -> TxReceipt:
        """Creator failed to reveal in time; the opponent takes the pot."""

    @abstractmethod
    async def claim_opponent_timeout(self, game_id: str) -> TxReceipt:
        """Opponent failed to join in time; the creator recovers the stake."""

    @abstractmethod
    async def read_state(self, game_id: str) -> LedgerSnapshot:
        """Read the game's current authoritative state."""
