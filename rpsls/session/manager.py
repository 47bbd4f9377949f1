"""
Game Manager - The command, query, and notification surface.

COMMAND FLOW (every command):
1. Take the game's lock
2. Validate with the GameStateMachine (dry run) - ProtocolViolation
   or CommitmentMismatch here means nothing was sent
3. Mark the record with the submission in flight, then submit to the
   ledger. ExternalRejection propagates unchanged and restores the
   record as it was; any other failure leaves the marker in place
4. Apply the confirmed event (clearing the marker), commit to the
   store, notify

UNCONFIRMED SUBMISSIONS (`Game.pending_tx`):
- "deploy": the record stays under its provisional id with its salt
  until confirm_deploy() attaches the ledger id
- "join": the record is tracked, so the poller picks up the join if
  the ledger took it
- "reveal": a payout observed later is read as our reveal settling,
  not as the opponent claiming our timeout

SECRETS:
- The creator's salt is generated and stored BEFORE the deploy is
  sent, under a provisional "local:" id. Losing it would make the
  stake unrecoverable once the opponent joins.
- A freshly generated salt already used by a stored game is discarded
- Reveal always takes an explicit game id

BACKGROUND:
- The ReconciliationEngine shares this manager's store and locks, so
  a poll never interleaves with a command on the same game
- Locks of games that are gone or finished are dropped on release
"""

from __future__ import annotations
import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from ..config import Settings
from ..engine_core.action import Action
from ..engine_core.commitment import generate_salt, make_commitment, verify_reveal
from ..engine_core.errors import CommitmentMismatch, ExternalRejection, ProtocolViolation
from ..engine_core.moves import Move, is_valid_ui_index
from ..engine_core.reducer import GameStateMachine
from ..engine_core.state import Game, GamePhase, Role, TimeoutSide
from ..engine_core.validation import is_valid_address, same_address, validate_stake
from ..ledger.base import LedgerClient
from ..store.game_store import GameStore
from ..sync.locks import GameLocks
from ..sync.poller import GamesChanged, PollReport, ReconciliationEngine
from . import presentation

logger = logging.getLogger(__name__)

PROVISIONAL_PREFIX = "local:"

Subscriber = Callable[[GamesChanged], None]


class GameManager:
    """
    One local account's view of all its games.

    Usage:
        manager = GameManager(ledger.client(alice), GameStore(backend))
        game = await manager.create_game(bob, stake=10**17, move_index=0)
        ...
        game = await manager.reveal_move(game.game_id)
    """

    def __init__(
        self,
        ledger: LedgerClient,
        store: GameStore | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.store = store if store is not None else GameStore()
        self.settings = settings or Settings()
        self.clock = clock

        self.machine = GameStateMachine(timeout_seconds=self.settings.timeout_seconds)
        self.locks = GameLocks()
        self.engine = ReconciliationEngine(
            ledger,
            self.store,
            machine=self.machine,
            locks=self.locks,
            poll_interval=self.settings.poll_interval,
            ledger_timeout=self.settings.ledger_timeout,
            clock=clock,
            on_change=self._publish,
        )

        self._subscribers: list[Subscriber] = []

    @property
    def account(self) -> str:
        return self.ledger.account

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def create_game(self, opponent: str, stake: int, move_index: int) -> Game:
        """
        Commit to a move and open a game against `opponent`.

        Args:
            opponent: Address allowed to join
            stake: Per-player stake in wei
            move_index: UI move index (0=Rock .. 4=Spock)
        """
        if not is_valid_address(opponent):
            raise ProtocolViolation("INVALID_OPPONENT", f"Invalid opponent address: {opponent!r}")
        if same_address(opponent, self.account):
            raise ProtocolViolation("INVALID_OPPONENT", "You cannot play against yourself")
        check = validate_stake(stake)
        if not check.valid:
            raise ProtocolViolation("INVALID_STAKE", check.message)
        if check.warning:
            logger.warning("%s (stake=%s wei)", check.warning, stake)
        move = self._parse_move(move_index)

        now = self.clock()
        salt = self._fresh_salt()
        game = Game(
            game_id=f"{PROVISIONAL_PREFIX}{uuid.uuid4().hex}",
            role=Role.CREATOR,
            account=self.account,
            creator=self.account,
            opponent=opponent,
            stake=stake,
            phase=GamePhase.CREATED,
            commitment=make_commitment(move, salt),
            move=move,
            salt=salt,
            created_at=now,
        )
        self._validate(game, Action.submit(game.game_id, timestamp=now))

        provisional_id = game.game_id
        self.store.insert(game._copy_with(pending_tx="deploy"))
        try:
            receipt = await self.ledger.deploy(game.commitment, opponent, stake)
        except ExternalRejection:
            self.store.remove(provisional_id)
            raise
        except BaseException as exc:
            logger.warning("Deploy of %s unconfirmed, keeping its salt: %r", provisional_id, exc)
            raise

        game = self._validate(game, Action.submit(receipt.game_id, tx_ref=receipt.tx_ref, timestamp=now))
        self.store.rekey(provisional_id, game)

        logger.info("Created game %s against %s", game.game_id, opponent)
        self._publish(GamesChanged((game.game_id,), "create", self.clock()))
        return game

    async def confirm_deploy(self, provisional_id: str, game_id: str) -> Game:
        """
        Attach the ledger's id to a game whose deploy went unconfirmed.

        The contract at `game_id` must name this account as creator and
        carry the stored commitment, stake and opponent.
        """
        async with self._locked(provisional_id):
            game = self.store.require(provisional_id)
            if game.pending_tx != "deploy":
                raise ProtocolViolation(
                    "WRONG_PHASE", "Game has no unconfirmed deploy", game_id=provisional_id
                )

            snapshot = await asyncio.wait_for(
                self.ledger.read_state(game_id), timeout=self.settings.ledger_timeout
            )
            if not (
                same_address(snapshot.creator, self.account)
                and same_address(snapshot.opponent, game.opponent)
                and verify_reveal(snapshot.commitment, game.move.value, game.salt)
                and (snapshot.completed or snapshot.stake_remaining == game.stake)
            ):
                raise ProtocolViolation(
                    "DEPLOY_MISMATCH",
                    f"Game {game_id} on the ledger is not this commitment",
                    game_id=provisional_id,
                )

            confirmed = self._validate(game, Action.submit(snapshot.game_id, timestamp=self.clock()))
            self.store.rekey(provisional_id, confirmed)

        logger.info("Confirmed deploy of %s as %s", provisional_id, confirmed.game_id)
        self._publish(GamesChanged((confirmed.game_id,), "create", self.clock()))
        return confirmed

    async def join_game(self, game_id: str, move_index: int) -> Game:
        """Play a plaintext move in a game this account was invited to."""
        move = self._parse_move(move_index)

        async with self._locked(game_id):
            existing = self.store.get(game_id)
            if existing is not None and existing.role == Role.CREATOR:
                raise ProtocolViolation("NOT_OPPONENT", "You created this game", game_id=game_id)
            if existing is not None and existing.phase != GamePhase.WAITING_FOR_OPPONENT:
                raise ProtocolViolation(
                    "WRONG_PHASE", f"Game is already {existing.phase.value}", game_id=game_id
                )

            snapshot = await asyncio.wait_for(
                self.ledger.read_state(game_id), timeout=self.settings.ledger_timeout
            )
            if not same_address(snapshot.opponent, self.account):
                raise ProtocolViolation("NOT_OPPONENT", "You are not the invited opponent", game_id=game_id)
            if snapshot.completed:
                raise ProtocolViolation("GAME_TERMINAL", "Game is already over", game_id=game_id)
            if snapshot.opponent_joined:
                raise ProtocolViolation("WRONG_PHASE", "Opponent has already played", game_id=game_id)

            now = self.clock()
            game = existing or Game(
                game_id=snapshot.game_id,
                role=Role.OPPONENT,
                account=self.account,
                creator=snapshot.creator,
                opponent=snapshot.opponent,
                stake=snapshot.stake_remaining,
                phase=GamePhase.WAITING_FOR_OPPONENT,
                commitment=snapshot.commitment,
                created_at=now,
                stake_remaining=snapshot.stake_remaining,
            )
            self._validate(game, Action.opponent_joined(move, game.stake, timestamp=now))

            # Tracked before sending, so a join the ledger took is polled even if we never hear back
            pending = game._copy_with(pending_tx="join")
            if existing is None:
                self.store.insert(pending)
            else:
                self.store.update(game_id, lambda _: pending)
            try:
                receipt = await self.ledger.join(game.game_id, move.encoding, game.stake)
            except ExternalRejection:
                if existing is None:
                    self.store.remove(game.game_id)
                else:
                    self.store.update(game_id, lambda _: existing)
                raise
            except BaseException as exc:
                logger.warning("Join of %s unconfirmed: %r", game.game_id, exc)
                raise

            joined = self._validate(
                game, Action.opponent_joined(move, game.stake, tx_ref=receipt.tx_ref, timestamp=now)
            )
            self.store.update(game_id, lambda _: joined)

        logger.info("Joined game %s with %s", joined.game_id, move.label)
        self._publish(GamesChanged((joined.game_id,), "join", self.clock()))
        return joined

    async def reveal_move(self, game_id: str) -> Game:
        """Reveal the stored move and salt for one game."""
        async with self._locked(game_id):
            game = self.store.require(game_id)
            now = self.clock()
            self._validate(game, Action.reveal(game.move, game.salt, timestamp=now))

            self.store.update(game_id, lambda g: g._copy_with(pending_tx="reveal"))
            try:
                receipt = await self.ledger.reveal(game.game_id, game.move.encoding, game.salt)
            except ExternalRejection:
                self.store.update(game_id, lambda g: g._copy_with(pending_tx=game.pending_tx))
                raise
            except BaseException as exc:
                logger.warning("Reveal of %s unconfirmed: %r", game.game_id, exc)
                raise

            revealed = self._validate(
                game, Action.reveal(game.move, game.salt, tx_ref=receipt.tx_ref, timestamp=now)
            )
            self.store.update(game_id, lambda _: revealed)

        logger.info("Revealed %s in game %s", revealed.move.label, revealed.game_id)
        self._publish(GamesChanged((revealed.game_id,), "reveal", self.clock()))
        return revealed

    async def claim_timeout(self, game_id: str, side: TimeoutSide | None = None) -> Game:
        """
        Claim forfeiture against the side that failed to act.

        `side` defaults to the counterparty: a creator claims the
        opponent's timeout, an opponent claims the creator's.
        """
        async with self._locked(game_id):
            game = self.store.require(game_id)
            if side is None:
                side = TimeoutSide.OPPONENT if game.is_creator else TimeoutSide.CREATOR
            now = self.clock()
            self._validate(game, Action.claim_timeout(side, timestamp=now))

            if side == TimeoutSide.OPPONENT:
                receipt = await self.ledger.claim_opponent_timeout(game.game_id)
            else:
                receipt = await self.ledger.claim_creator_timeout(game.game_id)

            claimed = self._validate(game, Action.claim_timeout(side, tx_ref=receipt.tx_ref, timestamp=now))
            self.store.update(game_id, lambda _: claimed)

        logger.info("Claimed %s timeout on game %s", side.value, claimed.game_id)
        self._publish(GamesChanged((claimed.game_id,), "timeout", self.clock()))
        return claimed

    async def refresh(self) -> PollReport:
        """Run one reconciliation cycle now."""
        return await self.engine.poll_once()

    def clear(self):
        """Forget every locally tracked game."""
        removed = tuple(g.game_id for g in self.store.all())
        self.store.clear()
        self.locks.clear()
        logger.info("Cleared %d games", len(removed))
        if removed:
            self._publish(GamesChanged(removed, "clear", self.clock()))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_games(self, role: Role | None = None, status: str | None = None) -> list[Game]:
        """
        Games filtered by role and by status.

        `status` is "active", "completed", or a GamePhase value.
        """
        return self.store.select(role=role, status=status)

    def get_game(self, game_id: str) -> Game:
        return self.store.require(game_id)

    def result_label(self, game_id: str) -> str | None:
        return presentation.result_label(self.get_game(game_id))

    def can_claim_timeout(self, game_id: str) -> bool:
        game = self.get_game(game_id)
        side = TimeoutSide.OPPONENT if game.is_creator else TimeoutSide.CREATOR
        return self.machine.apply(game, Action.claim_timeout(side, timestamp=self.clock())).success

    # -------------------------------------------------------------------------
    # Notification
    # -------------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Subscriber:
        self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback: Subscriber):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _publish(self, event: GamesChanged):
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber %r failed on %s", callback, event.reason)

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    def start_polling(self) -> asyncio.Task:
        return self.engine.start()

    def stop_polling(self):
        self.engine.stop()

    async def aclose(self):
        await self.engine.aclose()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _locked(self, game_id: str) -> AsyncIterator[None]:
        """Hold the game's lock, dropping it once the game is gone or finished."""
        async with self.locks.hold(game_id):
            try:
                yield
            finally:
                game = self.store.get(game_id)
                if game is None or game.is_terminal:
                    self.locks.forget(game_id)

    def _validate(self, game: Game, action: Action) -> Game:
        """Dry-run an action; raise the guard that fails."""
        result = self.machine.apply(game, action)
        if result.success:
            return result.new_state
        if result.error_code == "COMMITMENT_MISMATCH":
            raise CommitmentMismatch(result.error, game_id=game.game_id)
        raise ProtocolViolation(result.error_code or "WRONG_PHASE", result.error, game_id=game.game_id)

    def _parse_move(self, move_index: int) -> Move:
        if not is_valid_ui_index(move_index):
            raise ProtocolViolation("INVALID_MOVE", f"Move index must be 0-4, got {move_index!r}")
        return Move.from_ui_index(move_index)

    def _fresh_salt(self) -> int:
        used = self.store.used_salts()
        salt = generate_salt()
        while salt in used:
            logger.warning("Discarding a reused salt")
            salt = generate_salt()
        return salt
