"""
Pydantic Schemas for API - Request/response models for OpenAPI.

These models define the exact contract between a UI client and the
game manager. Secrets (the creator's salt) never appear in a response.

Error Codes:
- GAME_NOT_FOUND: No tracked game with that id
- PROTOCOL_VIOLATION: The action is illegal in the game's current state
- COMMITMENT_MISMATCH: Stored move/salt no longer match the commitment
- VALIDATION_ERROR: Malformed request (address, stake, move index)
- LEDGER_REJECTED: The ledger refused the transaction
- LEDGER_TIMEOUT: The ledger did not answer in time
"""

from decimal import Decimal
from enum import Enum
from typing import Optional, Any

from pydantic import BaseModel, Field, model_validator


# =============================================================================
# Enums
# =============================================================================

class ErrorCode(str, Enum):
    """Structured error codes."""
    GAME_NOT_FOUND = "GAME_NOT_FOUND"
    PROTOCOL_VIOLATION = "PROTOCOL_VIOLATION"
    COMMITMENT_MISMATCH = "COMMITMENT_MISMATCH"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    LEDGER_REJECTED = "LEDGER_REJECTED"
    LEDGER_TIMEOUT = "LEDGER_TIMEOUT"


class RoleName(str, Enum):
    CREATOR = "creator"
    OPPONENT = "opponent"


class TimeoutSideName(str, Enum):
    """The side that failed to act."""
    CREATOR = "creator"
    OPPONENT = "opponent"


# =============================================================================
# Request Models
# =============================================================================

class CreateGameRequest(BaseModel):
    """
    Open a game.

    Give the stake either in wei or as a decimal ether string.
    """
    opponent: str = Field(..., description="Address allowed to join (0x + 40 hex)")
    move_index: int = Field(..., description="0=Rock, 1=Paper, 2=Scissors, 3=Lizard, 4=Spock")
    stake_wei: Optional[int] = Field(None, description="Per-player stake in wei")
    stake_eth: Optional[Decimal] = Field(None, description="Per-player stake in ether")

    @model_validator(mode="after")
    def _one_stake(self):
        if (self.stake_wei is None) == (self.stake_eth is None):
            raise ValueError("Provide exactly one of stake_wei or stake_eth")
        return self


class JoinGameRequest(BaseModel):
    move_index: int = Field(..., description="0=Rock, 1=Paper, 2=Scissors, 3=Lizard, 4=Spock")


class ConfirmDeployRequest(BaseModel):
    game_id: str = Field(..., description="Ledger id of the contract the unconfirmed deploy created")


class ClaimTimeoutRequest(BaseModel):
    side: Optional[TimeoutSideName] = Field(
        None, description="Side that failed to act; defaults to the counterparty"
    )


# =============================================================================
# Response Models
# =============================================================================

class GameResponse(BaseModel):
    """One game from the local player's seat."""
    id: str
    role: RoleName
    account: str
    creator: str
    opponent: str

    stake_wei: str
    stake_eth: str
    stake_remaining_wei: Optional[str] = None

    phase: str
    status: str = Field(description="Display status in the local perspective")
    commitment: Optional[str] = None

    your_move: Optional[str] = None
    opponent_move: Optional[str] = None

    result: str
    result_label: Optional[str] = None
    timeout_side: Optional[TimeoutSideName] = None

    last_action: Optional[int] = None
    seconds_remaining: Optional[float] = None
    countdown: Optional[str] = None
    can_claim_timeout: bool = False

    created_at: Optional[float] = None
    joined_at: Optional[float] = None
    revealed_at: Optional[float] = None
    completed_at: Optional[float] = None

    tx_refs: dict[str, str] = Field(default_factory=dict)
    pending_tx: Optional[str] = Field(None, description="Submission sent but not yet confirmed")


class GameListResponse(BaseModel):
    games: list[GameResponse]
    count: int


class SkipInfo(BaseModel):
    game_id: str
    error: str


class ConflictInfo(BaseModel):
    game_id: str
    conflict_type: str
    description: str
    guard: Optional[str] = None


class PollReportResponse(BaseModel):
    """What a manual refresh did."""
    polled: list[str]
    transitioned: list[str]
    refreshed: list[str]
    skipped: list[SkipInfo] = Field(default_factory=list)
    conflicts: list[ConflictInfo] = Field(default_factory=list)


class ClearResponse(BaseModel):
    success: bool
    cleared: int


class GamesChangedMessage(BaseModel):
    """WebSocket push after committed changes."""
    type: str = "games_changed"
    game_ids: list[str]
    reason: str
    timestamp: float


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")
    api_version: str = Field("v1", description="API version")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
    account: str
    polling: bool
    tracked_games: int
