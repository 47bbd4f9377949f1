"""
Presentation - How a game reads from the local player's seat.

Labels are always in the local perspective ("You won!"), never in
terms of creator/opponent. An opponent never learns the creator's
move, so a completed game it cannot judge is simply "Game completed".
"""

from __future__ import annotations
from typing import Any

from ..engine_core.reducer import GameStateMachine, payouts
from ..engine_core.state import Game, GamePhase, GameResult, Role
from ..engine_core.validation import format_time_remaining, shorten_address, wei_to_ether

WON = "You won!"
LOST = "You lost"
TIE = "Tie! Funds split equally"
TIMEOUT_WON = "Timeout - You won!"
TIMEOUT_LOST = "Timeout - You lost"
COMPLETED = "Game completed"

PENDING_LABELS = {
    "deploy": "Deploy sent, not confirmed",
    "join": "Join sent, not confirmed",
    "reveal": "Reveal sent, not confirmed",
}


def local_player_won(game: Game) -> bool | None:
    """True/False once decided, None while pending, tied, or hidden."""
    if game.result == GameResult.CREATOR_WINS:
        return game.role == Role.CREATOR
    if game.result == GameResult.OPPONENT_WINS:
        return game.role == Role.OPPONENT
    return None


def result_label(game: Game) -> str | None:
    """Winner/loser label, or None while the game is still open."""
    if not game.is_terminal:
        return None

    won = local_player_won(game)
    if game.phase == GamePhase.TIMED_OUT:
        return TIMEOUT_WON if won else TIMEOUT_LOST
    if game.result == GameResult.TIE:
        return TIE
    if won is None:
        return COMPLETED
    return WON if won else LOST


def role_label(game: Game) -> str:
    return "Creator" if game.role == Role.CREATOR else "Joiner"


def status_label(game: Game) -> str:
    phase = game.phase
    if game.is_active and game.pending_tx in PENDING_LABELS:
        return PENDING_LABELS[game.pending_tx]
    if phase == GamePhase.WAITING_FOR_OPPONENT:
        return "Waiting for opponent" if game.is_creator else "Opponent has not joined"
    if phase == GamePhase.WAITING_FOR_REVEAL:
        return "Ready to reveal" if game.is_creator else "Waiting for reveal"
    if phase == GamePhase.REVEALED:
        return "Revealed, awaiting payout"
    if phase.is_terminal:
        return result_label(game)
    return phase.value.replace("_", " ").capitalize()


def countdown(game: Game, machine: GameStateMachine, now: float | None = None) -> str | None:
    """Time left on the open deadline, for the phases that have one."""
    if game.phase not in (GamePhase.WAITING_FOR_OPPONENT, GamePhase.WAITING_FOR_REVEAL):
        return None
    remaining = machine.time_remaining(game, now)
    if remaining is None:
        return None
    return format_time_remaining(remaining)


def summarize(game: Game, machine: GameStateMachine, now: float | None = None) -> dict[str, Any]:
    """Flat, display-ready view of a game."""
    move = game.local_move
    return {
        "id": game.game_id,
        "role": role_label(game),
        "opponent": shorten_address(game.counterparty),
        "stake": f"{wei_to_ether(game.stake)} ETH",
        "status": status_label(game),
        "your_move": move.label if move else "Hidden",
        "countdown": countdown(game, machine, now),
        "result": result_label(game),
        "payouts": {shorten_address(k): wei_to_ether(v) for k, v in payouts(game).items()},
    }
