"""
Engine Core - Moves, commitments, and the per-game state machine.

The engine is pure:
1. MoveAlgebra decides who beats whom
2. CommitmentScheme binds the creator to a hidden move
3. GameStateMachine validates and applies every phase change

Nothing in here talks to the ledger or touches storage.
"""

from .moves import Move, Outcome, beats, parity_beats, determine_winner, UI_TO_LEDGER, LEDGER_TO_UI
from .commitment import generate_salt, make_commitment, verify_reveal
from .state import Game, GamePhase, GameResult, Role, TimeoutSide
from .action import Action, ActionType, ActionPayload, ActionResult
from .reducer import GameStateMachine, apply_action, payouts, resolve_result
from .errors import (
    RPSLSError,
    ProtocolViolation,
    CommitmentMismatch,
    ExternalRejection,
    GameNotFound,
    ReconciliationSkip,
    PersistenceFailure,
)

__all__ = [
    "Move",
    "Outcome",
    "beats",
    "parity_beats",
    "determine_winner",
    "UI_TO_LEDGER",
    "LEDGER_TO_UI",
    "generate_salt",
    "make_commitment",
    "verify_reveal",
    "Game",
    "GamePhase",
    "GameResult",
    "Role",
    "TimeoutSide",
    "Action",
    "ActionType",
    "ActionPayload",
    "ActionResult",
    "GameStateMachine",
    "apply_action",
    "payouts",
    "resolve_result",
    "RPSLSError",
    "ProtocolViolation",
    "CommitmentMismatch",
    "ExternalRejection",
    "GameNotFound",
    "ReconciliationSkip",
    "PersistenceFailure",
]
