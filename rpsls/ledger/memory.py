"""
In-Memory Ledger - A simulated chain running the game contract.

Executes the same rules the deployed contract enforces:
- deploy: stake > 0 escrowed with the creator's commitment
- join: only the named opponent, once, with exactly the stake
- reveal: only the creator, after the join, and only if
  keccak256(move || salt) matches; pays out by the parity rule
- timeouts: strictly after last_action + TIMEOUT

Several accounts share one InMemoryLedger; each gets its own
LedgerClient view through `client(account)`. Used by the test suite
and by the local sandbox server.
"""

from __future__ import annotations
import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from ..engine_core.commitment import keccak256, make_commitment, normalize_commitment
from ..engine_core.errors import ExternalRejection
from ..engine_core.moves import NO_MOVE, is_valid_encoding, parity_beats
from ..engine_core.reducer import DEFAULT_TIMEOUT_SECONDS
from ..engine_core.validation import is_valid_address, same_address
from .base import DeployReceipt, LedgerClient, LedgerSnapshot, TxReceipt

logger = logging.getLogger(__name__)


@dataclass
class _Contract:
    creator: str
    opponent: str
    stake: int
    commitment: str
    opponent_move: int = NO_MOVE
    last_action: int = 0


@dataclass
class InMemoryLedger:
    """
    Shared simulated chain.

    `balances` are in wei. Accounts without a balance entry are
    unfunded unless `auto_fund` is set.
    """
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    clock: Callable[[], float] = time.time
    auto_fund: bool = False
    latency: float = 0.0

    balances: dict[str, int] = field(default_factory=dict)
    contracts: dict[str, _Contract] = field(default_factory=dict)

    # Fault injection: game_id -> exception raised by read_state
    read_failures: dict[str, BaseException] = field(default_factory=dict)

    # Every call made, as (account, operation, game_id)
    calls: list[tuple[str, str, str | None]] = field(default_factory=list)

    _nonce: itertools.count = field(default_factory=itertools.count)

    def fund(self, account: str, amount: int):
        key = account.lower()
        self.balances[key] = self.balances.get(key, 0) + amount

    def balance_of(self, account: str) -> int:
        return self.balances.get(account.lower(), 0)

    def client(self, account: str) -> InMemoryLedgerClient:
        if not is_valid_address(account):
            raise ValueError(f"Invalid account address: {account}")
        return InMemoryLedgerClient(self, account)

    # -------------------------------------------------------------------------
    # Contract operations (sender is explicit)
    # -------------------------------------------------------------------------

    def deploy(self, sender: str, commitment: str, opponent: str, stake: int) -> DeployReceipt:
        self.calls.append((sender, "deploy", None))
        if stake <= 0:
            raise ExternalRejection("revert: stake must be positive", operation="deploy")
        if not is_valid_address(opponent):
            raise ExternalRejection("revert: invalid opponent address", operation="deploy")
        try:
            commitment = normalize_commitment(commitment)
        except ValueError as exc:
            raise ExternalRejection(f"revert: {exc}", operation="deploy") from exc
        self._debit(sender, stake, "deploy")

        nonce = next(self._nonce)
        game_id = "0x" + keccak256(bytes.fromhex(sender[2:]) + nonce.to_bytes(32, "big"))[12:].hex()
        self.contracts[game_id] = _Contract(
            creator=sender,
            opponent=opponent,
            stake=stake,
            commitment=commitment,
            last_action=self._now(),
        )
        logger.debug("Deployed %s for %s", game_id, sender)
        return DeployReceipt(game_id=game_id, tx_ref=self._tx_ref())

    def join(self, sender: str, game_id: str, move_encoding: int, stake: int) -> TxReceipt:
        self.calls.append((sender, "join", game_id))
        contract = self._contract(game_id, "join")
        if not same_address(sender, contract.opponent):
            raise ExternalRejection("revert: only the opponent can play", operation="join", game_id=game_id)
        if contract.opponent_move != NO_MOVE:
            raise ExternalRejection("revert: opponent already played", operation="join", game_id=game_id)
        if contract.stake == 0:
            raise ExternalRejection("revert: game is over", operation="join", game_id=game_id)
        if not is_valid_encoding(move_encoding):
            raise ExternalRejection("revert: invalid move", operation="join", game_id=game_id)
        if stake != contract.stake:
            raise ExternalRejection("revert: stake mismatch", operation="join", game_id=game_id)
        self._debit(sender, stake, "join")

        contract.opponent_move = move_encoding
        contract.last_action = self._now()
        return TxReceipt(tx_ref=self._tx_ref())

    def reveal(self, sender: str, game_id: str, move_encoding: int, salt: int) -> TxReceipt:
        self.calls.append((sender, "reveal", game_id))
        contract = self._contract(game_id, "reveal")
        if not same_address(sender, contract.creator):
            raise ExternalRejection("revert: only the creator can reveal", operation="reveal", game_id=game_id)
        if contract.opponent_move == NO_MOVE:
            raise ExternalRejection("revert: opponent has not played", operation="reveal", game_id=game_id)
        if contract.stake == 0:
            raise ExternalRejection("revert: game is over", operation="reveal", game_id=game_id)
        try:
            recomputed = make_commitment(move_encoding, salt)
        except ValueError as exc:
            raise ExternalRejection(f"revert: {exc}", operation="reveal", game_id=game_id) from exc
        if recomputed != contract.commitment:
            raise ExternalRejection("revert: commitment mismatch", operation="reveal", game_id=game_id)

        stake = contract.stake
        if parity_beats(move_encoding, contract.opponent_move):
            self._credit(contract.creator, 2 * stake)
        elif parity_beats(contract.opponent_move, move_encoding):
            self._credit(contract.opponent, 2 * stake)
        else:
            self._credit(contract.creator, stake)
            self._credit(contract.opponent, stake)
        contract.stake = 0
        return TxReceipt(tx_ref=self._tx_ref())

    def claim_creator_timeout(self, sender: str, game_id: str) -> TxReceipt:
        self.calls.append((sender, "claim_creator_timeout", game_id))
        contract = self._contract(game_id, "claim_creator_timeout")
        if contract.opponent_move == NO_MOVE:
            raise ExternalRejection("revert: opponent has not played", operation="claim_creator_timeout", game_id=game_id)
        self._require_timeout(contract, "claim_creator_timeout", game_id)
        self._credit(contract.opponent, 2 * contract.stake)
        contract.stake = 0
        return TxReceipt(tx_ref=self._tx_ref())

    def claim_opponent_timeout(self, sender: str, game_id: str) -> TxReceipt:
        self.calls.append((sender, "claim_opponent_timeout", game_id))
        contract = self._contract(game_id, "claim_opponent_timeout")
        if contract.opponent_move != NO_MOVE:
            raise ExternalRejection("revert: opponent already played", operation="claim_opponent_timeout", game_id=game_id)
        self._require_timeout(contract, "claim_opponent_timeout", game_id)
        self._credit(contract.creator, contract.stake)
        contract.stake = 0
        return TxReceipt(tx_ref=self._tx_ref())

    def read_state(self, sender: str, game_id: str) -> LedgerSnapshot:
        self.calls.append((sender, "read_state", game_id))
        failure = self.read_failures.get(game_id)
        if failure is not None:
            raise failure
        contract = self._contract(game_id, "read_state")
        return LedgerSnapshot(
            game_id=game_id,
            creator=contract.creator,
            opponent=contract.opponent,
            stake_remaining=contract.stake,
            opponent_move=contract.opponent_move,
            commitment=contract.commitment,
            last_action=contract.last_action,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _now(self) -> int:
        return int(self.clock())

    def _tx_ref(self) -> str:
        return "0x" + keccak256(b"tx" + next(self._nonce).to_bytes(32, "big")).hex()

    def _contract(self, game_id: str, operation: str) -> _Contract:
        contract = self.contracts.get(game_id.lower()) or self.contracts.get(game_id)
        if contract is None:
            raise ExternalRejection(f"No game contract at {game_id}", operation=operation, game_id=game_id)
        return contract

    def _require_timeout(self, contract: _Contract, operation: str, game_id: str):
        if contract.stake == 0:
            raise ExternalRejection("revert: game is over", operation=operation, game_id=game_id)
        if not self._now() > contract.last_action + self.timeout_seconds:
            raise ExternalRejection("revert: Timeout time has not passed", operation=operation, game_id=game_id)

    def _debit(self, account: str, amount: int, operation: str):
        key = account.lower()
        if self.auto_fund and self.balances.get(key, 0) < amount:
            self.balances[key] = amount
        if self.balances.get(key, 0) < amount:
            raise ExternalRejection("insufficient funds for stake", operation=operation)
        self.balances[key] -= amount

    def _credit(self, account: str, amount: int):
        key = account.lower()
        self.balances[key] = self.balances.get(key, 0) + amount


class InMemoryLedgerClient(LedgerClient):
    """One account's view of an InMemoryLedger."""

    def __init__(self, ledger: InMemoryLedger, account: str):
        self._ledger = ledger
        self._account = account

    @property
    def account(self) -> str:
        return self._account

    async def _settle(self):
        # Yield to the loop the way a real network call would
        await asyncio.sleep(self._ledger.latency)

    async def deploy(self, commitment: str, opponent: str, stake: int) -> DeployReceipt:
        await self._settle()
        return self._ledger.deploy(self._account, commitment, opponent, stake)

    async def join(self, game_id: str, move_encoding: int, stake: int) -> TxReceipt:
        await self._settle()
        return self._ledger.join(self._account, game_id, move_encoding, stake)

    async def reveal(self, game_id: str, move_encoding: int, salt: int) -> TxReceipt:
        await self._settle()
        return self._ledger.reveal(self._account, game_id, move_encoding, salt)

    async def claim_creator_timeout(self, game_id: str) -> TxReceipt:
        await self._settle()
        return self._ledger.claim_creator_timeout(self._account, game_id)

    async def claim_opponent_timeout(self, game_id: str) -> TxReceipt:
        await self._settle()
        return self._ledger.claim_opponent_timeout(self._account, game_id)

    async def read_state(self, game_id: str) -> LedgerSnapshot:
        await self._settle()
        return self._ledger.read_state(self._account, game_id)
