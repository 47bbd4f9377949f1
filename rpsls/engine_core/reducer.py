"""
Reducer - The game state machine.

The reducer is the single point of game mutation.
All phase changes go through GameStateMachine.apply().

Design principles:
- Pure function: (game, action) -> new game
- Validates every guard before applying
- Returns ActionResult; on failure `error_code` names the guard
- Never talks to the ledger; callers validate here first, submit,
  then commit the new state once the ledger accepts

Transition table:

    CREATED              SUBMIT                      -> WAITING_FOR_OPPONENT
    WAITING_FOR_OPPONENT OPPONENT_JOINED             -> WAITING_FOR_REVEAL
    WAITING_FOR_OPPONENT CLAIM_TIMEOUT(opponent)     -> TIMED_OUT
    WAITING_FOR_REVEAL   REVEAL                      -> REVEALED
    WAITING_FOR_REVEAL   CLAIM_TIMEOUT(creator)      -> TIMED_OUT
    submitted phases     PAYOUT_OBSERVED             -> COMPLETED / TIMED_OUT
"""

from __future__ import annotations
from dataclasses import dataclass
import time

from .action import Action, ActionType, ActionResult
from .commitment import verify_reveal
from .moves import Move, Outcome, determine_winner
from .state import (
    Game,
    GamePhase,
    GameResult,
    Role,
    TimeoutSide,
    SUBMITTED_PHASES,
)

DEFAULT_TIMEOUT_SECONDS = 300


def resolve_result(creator_move: Move | None, opponent_move: Move | None) -> GameResult:
    """Winner from both moves, PENDING if either is unknown."""
    if creator_move is None or opponent_move is None:
        return GameResult.PENDING
    outcome = determine_winner(creator_move, opponent_move)
    if outcome == Outcome.TIE:
        return GameResult.TIE
    if outcome == Outcome.FIRST_WINS:
        return GameResult.CREATOR_WINS
    return GameResult.OPPONENT_WINS


def payouts(game: Game) -> dict[str, int]:
    """
    Advisory distribution of the pot, in wei.

    Display only. The ledger performs the real transfer.
    """
    if game.result == GameResult.TIE:
        return {game.creator: game.stake, game.opponent: game.stake}
    if game.result == GameResult.CREATOR_WINS:
        if game.timeout_side == TimeoutSide.OPPONENT:
            return {game.creator: game.stake}
        return {game.creator: 2 * game.stake}
    if game.result == GameResult.OPPONENT_WINS:
        return {game.opponent: 2 * game.stake}
    return {}


@dataclass
class GameStateMachine:
    """
    Applies actions to games.

    Stateless apart from configuration - all state is in the Game.
    """
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS

    def apply(self, game: Game, action: Action) -> ActionResult:
        """
        Apply an action to a game.

        Returns ActionResult with the new game or the violated guard.
        """
        validation_error = self._validate_action(game, action)
        if validation_error:
            code, message = validation_error
            return ActionResult.failure(message, error_code=code)

        handler = self._get_handler(action.action_type)
        if not handler:
            return ActionResult.failure(
                f"No handler for action type: {action.action_type}",
                error_code="NO_HANDLER",
            )

        now = action.timestamp if action.timestamp is not None else time.time()
        return handler(game, action, now)

    def time_remaining(self, game: Game, now: float | None = None) -> float | None:
        """Seconds until the current deadline, 0 once it has passed."""
        reference = game.deadline_reference()
        if reference is None:
            return None
        now = time.time() if now is None else now
        return max(0.0, reference + self.timeout_seconds - now)

    def deadline_passed(self, game: Game, now: float | None = None) -> bool:
        remaining = self.time_remaining(game, now)
        return remaining is not None and remaining <= 0

    def _validate_action(self, game: Game, action: Action) -> tuple[str, str] | None:
        """
        Phase-level checks shared by every action.

        Returns (guard, message) if invalid, None if valid.
        """
        if game.is_terminal:
            return "GAME_TERMINAL", f"Game is {game.phase.value} - no further actions allowed"

        allowed = {
            ActionType.SUBMIT: {GamePhase.CREATED},
            ActionType.OPPONENT_JOINED: {GamePhase.WAITING_FOR_OPPONENT},
            ActionType.REVEAL: {GamePhase.WAITING_FOR_REVEAL},
            ActionType.PAYOUT_OBSERVED: set(SUBMITTED_PHASES),
        }
        if action.action_type == ActionType.CLAIM_TIMEOUT:
            side = action.payload.timeout_side
            if side == TimeoutSide.OPPONENT:
                allowed_phases = {GamePhase.WAITING_FOR_OPPONENT}
            elif side == TimeoutSide.CREATOR:
                allowed_phases = {GamePhase.WAITING_FOR_REVEAL}
            else:
                return "WRONG_PHASE", "Timeout claim must name the side that failed to act"
        else:
            allowed_phases = allowed.get(action.action_type, set())

        if game.phase not in allowed_phases:
            if (
                game.phase == GamePhase.WAITING_FOR_OPPONENT
                and action.action_type in {ActionType.REVEAL, ActionType.CLAIM_TIMEOUT}
            ):
                return "OPPONENT_NOT_JOINED", "Opponent has not joined yet"
            return (
                "WRONG_PHASE",
                f"Cannot apply {action.action_type.value} while {game.phase.value}",
            )
        return None

    def _get_handler(self, action_type: ActionType):
        handlers = {
            ActionType.SUBMIT: self._handle_submit,
            ActionType.OPPONENT_JOINED: self._handle_opponent_joined,
            ActionType.REVEAL: self._handle_reveal,
            ActionType.CLAIM_TIMEOUT: self._handle_claim_timeout,
            ActionType.PAYOUT_OBSERVED: self._handle_payout_observed,
        }
        return handlers.get(action_type)

    def _handle_submit(self, game: Game, action: Action, now: float) -> ActionResult:
        payload = action.payload
        if not payload.game_id:
            return ActionResult.failure("Ledger did not assign a game id", error_code="MISSING_GAME_ID")
        if not game.commitment:
            return ActionResult.failure("Game has no commitment to submit", error_code="MISSING_MOVE")
        if game.stake <= 0:
            return ActionResult.failure("Stake must be greater than 0", error_code="INVALID_STAKE")

        new_game = game._copy_with(
            game_id=payload.game_id,
            phase=GamePhase.WAITING_FOR_OPPONENT,
            stake_remaining=game.stake,
            created_at=game.created_at if game.created_at is not None else now,
            last_action=payload.last_action if payload.last_action is not None else game.last_action,
            pending_tx=None,
        ).with_tx("deploy", payload.tx_ref)
        return ActionResult.success_with_state(new_game, [f"Game {payload.game_id} submitted"])

    def _handle_opponent_joined(self, game: Game, action: Action, now: float) -> ActionResult:
        payload = action.payload
        if not isinstance(payload.move, Move):
            return ActionResult.failure("Opponent move not received", error_code="MISSING_MOVE")
        if payload.stake != game.stake:
            return ActionResult.failure(
                f"Opponent stake {payload.stake} does not match {game.stake}",
                error_code="STAKE_MISMATCH",
            )

        new_game = game._copy_with(
            phase=GamePhase.WAITING_FOR_REVEAL,
            opponent_move=payload.move,
            joined_at=now,
            last_action=payload.last_action if payload.last_action is not None else game.last_action,
            pending_tx=None,
        ).with_tx("join", payload.tx_ref)
        return ActionResult.success_with_state(new_game, [f"Opponent joined with {payload.move.label}"])

    def _handle_reveal(self, game: Game, action: Action, now: float) -> ActionResult:
        payload = action.payload
        if game.role != Role.CREATOR:
            return ActionResult.failure("Only the creator can reveal", error_code="NOT_CREATOR")
        if payload.move is None or payload.salt is None:
            return ActionResult.failure("Move and salt are required to reveal", error_code="SALT_MISSING")
        if not game.commitment or not verify_reveal(game.commitment, payload.move.value, payload.salt):
            return ActionResult.failure(
                "Move and salt do not reproduce the stored commitment",
                error_code="COMMITMENT_MISMATCH",
            )

        new_game = game._copy_with(
            phase=GamePhase.REVEALED,
            move=payload.move,
            revealed_at=now,
            result=resolve_result(payload.move, game.opponent_move),
            pending_tx=None,
        ).with_tx("reveal", payload.tx_ref)
        return ActionResult.success_with_state(new_game, [f"Revealed {payload.move.label}"])

    def _handle_claim_timeout(self, game: Game, action: Action, now: float) -> ActionResult:
        side = action.payload.timeout_side
        claimant = Role.CREATOR if side == TimeoutSide.OPPONENT else Role.OPPONENT
        if game.role != claimant:
            return ActionResult.failure(
                f"Only the {claimant.value} can claim a {side.value} timeout",
                error_code="NOT_CLAIMANT",
            )
        reference = game.deadline_reference()
        if reference is None or now - reference < self.timeout_seconds:
            return ActionResult.failure(
                "Timeout period has not passed yet",
                error_code="DEADLINE_NOT_REACHED",
            )

        result = GameResult.CREATOR_WINS if side == TimeoutSide.OPPONENT else GameResult.OPPONENT_WINS
        new_game = game._copy_with(
            phase=GamePhase.TIMED_OUT,
            timeout_side=side,
            result=result,
            stake_remaining=0,
            completed_at=now,
            pending_tx=None,
        ).with_tx("timeout", action.payload.tx_ref)
        return ActionResult.success_with_state(new_game, [f"Claimed {side.value} timeout"])

    def _handle_payout_observed(self, game: Game, action: Action, now: float) -> ActionResult:
        payload = action.payload
        if payload.stake != 0:
            return ActionResult.failure("Stake has not been paid out", error_code="STAKE_NOT_ZERO")

        opponent_move = game.opponent_move or payload.move

        if opponent_move is None:
            # Nobody joined, so only the creator's timeout claim can empty the pot
            new_game = game._copy_with(
                phase=GamePhase.TIMED_OUT,
                timeout_side=TimeoutSide.OPPONENT,
                result=GameResult.CREATOR_WINS,
                stake_remaining=0,
                completed_at=now,
                pending_tx=None,
            )
            return ActionResult.success_with_state(new_game, ["Stake returned after opponent timeout"])

        if game.role == Role.CREATOR and game.phase != GamePhase.REVEALED and self._creator_forfeited(game, now):
            new_game = game._copy_with(
                phase=GamePhase.TIMED_OUT,
                opponent_move=opponent_move,
                timeout_side=TimeoutSide.CREATOR,
                result=GameResult.OPPONENT_WINS,
                stake_remaining=0,
                completed_at=now,
                pending_tx=None,
            )
            return ActionResult.success_with_state(new_game, ["Pot claimed after creator timeout"])

        if game.role == Role.CREATOR:
            result = resolve_result(game.move, opponent_move)
        else:
            # The creator's move never reaches the opponent's client
            result = GameResult.UNKNOWN

        new_game = game._copy_with(
            phase=GamePhase.COMPLETED,
            opponent_move=opponent_move,
            result=result,
            stake_remaining=0,
            completed_at=now,
            pending_tx=None,
        )
        return ActionResult.success_with_state(new_game, ["Payout observed"])

    def _creator_forfeited(self, game: Game, now: float) -> bool:
        """
        Whether an unrevealed creator's pot went to the opponent.

        The ledger only accepts the opponent's claim strictly after the
        deadline. A payout seen earlier than that, or while a reveal we
        sent is still unconfirmed, is our own reveal settling the game.
        """
        if game.pending_tx == "reveal":
            return False
        reference = game.deadline_reference()
        return reference is None or now - reference > self.timeout_seconds


def apply_action(game: Game, action: Action, timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS) -> ActionResult:
    """Convenience function to apply an action."""
    return GameStateMachine(timeout_seconds=timeout_seconds).apply(game, action)
