"""
Errors - What can go wrong, and who hears about it.

Raised to callers:
- ProtocolViolation: an illegal local transition, rejected before any
  ledger call. Carries the guard that failed.
- CommitmentMismatch: the stored (move, salt) no longer reproduces the
  published commitment. Retrying cannot help.
- ExternalRejection: the ledger refused a submission. Wraps its cause.
- GameNotFound: no tracked game with that id.

Recorded and logged, never raised past the engine:
- ReconciliationSkip: one game's poll failed this cycle.
- PersistenceFailure: the local store could not be read or written.
"""

from __future__ import annotations


class RPSLSError(Exception):
    """Base class for all client errors."""


class ProtocolViolation(RPSLSError):
    """An action whose guard is false in the game's current state."""

    retryable = True

    def __init__(self, guard: str, message: str, game_id: str | None = None):
        super().__init__(message)
        self.guard = guard
        self.message = message
        self.game_id = game_id

    def __str__(self) -> str:
        return f"[{self.guard}] {self.message}"


class CommitmentMismatch(ProtocolViolation):
    """Local move/salt do not match the stored commitment."""

    retryable = False

    def __init__(self, message: str, game_id: str | None = None):
        super().__init__("COMMITMENT_MISMATCH", message, game_id=game_id)


class GameNotFound(RPSLSError):
    def __init__(self, game_id: str):
        super().__init__(f"Game {game_id} not found")
        self.game_id = game_id


class ExternalRejection(RPSLSError):
    """The ledger collaborator rejected a submission or read."""

    def __init__(self, message: str, operation: str | None = None, game_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.game_id = game_id

    @property
    def guidance(self) -> str:
        """Hint shown next to the ledger's own message."""
        text = self.message.lower()
        if "timeout" in text or "time has not passed" in text:
            return "The timeout period has not passed on the ledger yet. Please wait."
        if "insufficient" in text or "funds" in text or "balance" in text:
            return "The account cannot cover the stake. Top up and try again."
        if "stale" in text or "nonce" in text:
            return "Ledger state moved on. Refresh and retry."
        return "The ledger refused the transaction. Nothing was changed locally."


class ReconciliationSkip(RPSLSError):
    """A game could not be polled this cycle; retried on the next one."""

    def __init__(self, game_id: str, cause: BaseException):
        super().__init__(f"Skipped {game_id}: {type(cause).__name__}: {cause}")
        self.game_id = game_id
        self.cause = cause


class PersistenceFailure(RPSLSError):
    """Local storage failed; in-memory state stays authoritative."""

    def __init__(self, message: str, storage_key: str | None = None):
        super().__init__(message)
        self.storage_key = storage_key
