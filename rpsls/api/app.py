"""
FastAPI Application - REST API over one account's games.

Endpoints:
    GET    /api/v1/health                 Service status
    GET    /api/v1/games                  List games (?role=&status=)
    POST   /api/v1/games                  Create a game (commit a move)
    DELETE /api/v1/games                  Forget all local games
    POST   /api/v1/games/refresh          Run one reconciliation cycle now
    GET    /api/v1/games/{id}             Get one game
    POST   /api/v1/games/{id}/confirm     Attach the ledger id to an unconfirmed deploy
    POST   /api/v1/games/{id}/join        Join as the invited opponent
    POST   /api/v1/games/{id}/reveal      Reveal the committed move
    POST   /api/v1/games/{id}/timeout     Claim forfeiture
    WS     /api/v1/ws                     games_changed push events

Command flow:
    1. The manager validates locally - illegal actions fail with 409
       (or 422) before anything reaches the ledger
    2. The ledger call is made - a refusal is a 502 with its message
    3. The confirmed state is returned

The background poller starts with the application and stops with it.
All responses are JSON with explicit Pydantic schemas.
"""

from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import json
import logging

from .. import __version__
from ..config import Settings
from ..engine_core.errors import CommitmentMismatch, ExternalRejection, GameNotFound, ProtocolViolation
from ..engine_core.state import Game, Role, TimeoutSide
from ..engine_core.validation import ether_to_wei, wei_to_ether
from ..session import presentation

logger = logging.getLogger(__name__)

# Guards that mean "bad input" rather than "wrong moment"
VALIDATION_GUARDS = frozenset({"INVALID_MOVE", "INVALID_STAKE", "INVALID_OPPONENT"})


def create_app(manager=None, settings: Optional[Settings] = None):
    """
    Create the FastAPI application.

    Args:
        manager: Optional GameManager (a sandbox manager over the
            simulated ledger is created if not provided)
        settings: Optional Settings (read from the environment if not provided)

    Returns:
        FastAPI application instance
    """
    try:
        from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
        from fastapi.exceptions import RequestValidationError
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse
    except ImportError:
        raise ImportError(
            "FastAPI not installed. Install with: pip install fastapi uvicorn"
        )

    from .schemas import (
        # Request models
        CreateGameRequest,
        JoinGameRequest,
        ClaimTimeoutRequest,
        ConfirmDeployRequest,
        # Response models
        GameResponse,
        GameListResponse,
        PollReportResponse,
        SkipInfo,
        ConflictInfo,
        ClearResponse,
        GamesChangedMessage,
        ErrorResponse,
        HealthResponse,
        # Enums
        ErrorCode,
        RoleName,
    )

    settings = settings or (manager.settings if manager is not None else Settings.from_env())
    if manager is None:
        from ..session.sandbox import sandbox_manager
        manager = sandbox_manager(settings)

    @asynccontextmanager
    async def lifespan(app):
        manager.start_polling()
        try:
            yield
        finally:
            await manager.aclose()

    app = FastAPI(
        title="RPSLS Commit-Reveal API",
        description="""
Rock-Paper-Scissors-Lizard-Spock wagers settled on a ledger.

## Flow

1. `POST /games` commits a hidden move and escrows the stake
2. The invited opponent calls `POST /games/{id}/join` with a plaintext move
3. The creator calls `POST /games/{id}/reveal`; the ledger pays out
4. If either side stalls past the timeout, the other calls `POST /games/{id}/timeout`

## Error Codes

| Code | Description |
|------|-------------|
| `GAME_NOT_FOUND` | No tracked game with that id |
| `PROTOCOL_VIOLATION` | Action not allowed in the current phase |
| `COMMITMENT_MISMATCH` | Stored move/salt no longer match the commitment |
| `VALIDATION_ERROR` | Malformed request |
| `LEDGER_REJECTED` | The ledger refused the transaction |
| `LEDGER_TIMEOUT` | The ledger did not answer in time |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(
        error_code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ) -> JSONResponse:
        """Create a standardized error response."""
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=message,
                error_code=error_code,
                details=details,
            ).model_dump(mode="json"),
        )

    @app.exception_handler(GameNotFound)
    async def game_not_found(request, exc: GameNotFound):
        return make_error_response(ErrorCode.GAME_NOT_FOUND, str(exc), 404, {"game_id": exc.game_id})

    @app.exception_handler(ProtocolViolation)
    async def protocol_violation(request, exc: ProtocolViolation):
        details = {"guard": exc.guard, "retryable": exc.retryable, "game_id": exc.game_id}
        if isinstance(exc, CommitmentMismatch):
            return make_error_response(ErrorCode.COMMITMENT_MISMATCH, exc.message, 422, details)
        if exc.guard in VALIDATION_GUARDS:
            return make_error_response(ErrorCode.VALIDATION_ERROR, exc.message, 422, details)
        return make_error_response(ErrorCode.PROTOCOL_VIOLATION, exc.message, 409, details)

    @app.exception_handler(ExternalRejection)
    async def external_rejection(request, exc: ExternalRejection):
        return make_error_response(
            ErrorCode.LEDGER_REJECTED,
            exc.message,
            502,
            {"operation": exc.operation, "game_id": exc.game_id, "guidance": exc.guidance},
        )

    @app.exception_handler(asyncio.TimeoutError)
    async def ledger_timeout(request, exc):
        return make_error_response(ErrorCode.LEDGER_TIMEOUT, "The ledger did not respond in time", 504)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request, exc: RequestValidationError):
        return make_error_response(
            ErrorCode.VALIDATION_ERROR,
            "Invalid request",
            422,
            {"errors": json.loads(json.dumps(exc.errors(), default=str))},
        )

    def to_response(game: Game) -> GameResponse:
        now = manager.clock()
        opponent_move = game.opponent_move
        if game.is_creator:
            your_move = game.move.label if game.move else None
        else:
            your_move = opponent_move.label if opponent_move else None
        return GameResponse(
            id=game.game_id,
            role=RoleName(game.role.value),
            account=game.account,
            creator=game.creator,
            opponent=game.opponent,
            stake_wei=str(game.stake),
            stake_eth=wei_to_ether(game.stake),
            stake_remaining_wei=str(game.stake_remaining) if game.stake_remaining is not None else None,
            phase=game.phase.value,
            status=presentation.status_label(game),
            commitment=game.commitment,
            your_move=your_move,
            opponent_move=opponent_move.label if opponent_move else None,
            result=game.result.value,
            result_label=presentation.result_label(game),
            timeout_side=game.timeout_side.value if game.timeout_side else None,
            last_action=game.last_action,
            seconds_remaining=manager.machine.time_remaining(game, now) if game.is_active else None,
            countdown=presentation.countdown(game, manager.machine, now),
            can_claim_timeout=game.is_active and manager.can_claim_timeout(game.game_id),
            created_at=game.created_at,
            joined_at=game.joined_at,
            revealed_at=game.revealed_at,
            completed_at=game.completed_at,
            tx_refs=dict(game.tx_refs),
            pending_tx=game.pending_tx,
        )

    # =========================================================================
    # Game Endpoints
    # =========================================================================

    @app.get(
        "/api/v1/games",
        response_model=GameListResponse,
        tags=["Games"],
        summary="List tracked games",
    )
    async def list_games(
        role: Optional[RoleName] = Query(None, description="creator or opponent"),
        status: Optional[str] = Query(None, description="active, completed, or a phase name"),
    ) -> GameListResponse:
        try:
            games = manager.list_games(role=Role(role.value) if role else None, status=status)
        except ValueError:
            return make_error_response(ErrorCode.VALIDATION_ERROR, f"Unknown status: {status}", 422)
        return GameListResponse(games=[to_response(g) for g in games], count=len(games))

    @app.post(
        "/api/v1/games",
        response_model=GameResponse,
        status_code=201,
        responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
        tags=["Games"],
        summary="Commit a move and open a game",
    )
    async def create_game(request: CreateGameRequest) -> GameResponse:
        """
        The move is hashed with a fresh 256-bit salt; only the
        commitment and the stake are sent to the ledger.
        """
        if request.stake_wei is not None:
            stake = request.stake_wei
        else:
            try:
                stake = ether_to_wei(request.stake_eth)
            except ValueError as e:
                return make_error_response(ErrorCode.VALIDATION_ERROR, str(e), 422)
        game = await manager.create_game(request.opponent, stake, request.move_index)
        return to_response(game)

    @app.delete(
        "/api/v1/games",
        response_model=ClearResponse,
        tags=["Games"],
        summary="Forget all local game data",
    )
    async def clear_games() -> ClearResponse:
        count = len(manager.store)
        manager.clear()
        return ClearResponse(success=True, cleared=count)

    @app.post(
        "/api/v1/games/refresh",
        response_model=PollReportResponse,
        tags=["Games"],
        summary="Reconcile every tracked game with the ledger now",
    )
    async def refresh_games() -> PollReportResponse:
        report = await manager.refresh()
        return PollReportResponse(
            polled=report.polled,
            transitioned=report.transitioned,
            refreshed=report.refreshed,
            skipped=[SkipInfo(game_id=s.game_id, error=str(s.cause)) for s in report.skipped],
            conflicts=[
                ConflictInfo(
                    game_id=c.game_id,
                    conflict_type=c.conflict_type.value,
                    description=c.description,
                    guard=c.guard,
                )
                for c in report.conflicts
            ],
        )

    @app.get(
        "/api/v1/games/{game_id}",
        response_model=GameResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Games"],
        summary="Get one game",
    )
    async def get_game(game_id: str) -> GameResponse:
        return to_response(manager.get_game(game_id))

    @app.post(
        "/api/v1/games/{game_id}/confirm",
        response_model=GameResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
        tags=["Games"],
        summary="Attach the ledger id to a game whose deploy went unconfirmed",
    )
    async def confirm_deploy(game_id: str, request: ConfirmDeployRequest) -> GameResponse:
        game = await manager.confirm_deploy(game_id, request.game_id)
        return to_response(game)

    @app.post(
        "/api/v1/games/{game_id}/join",
        response_model=GameResponse,
        responses={409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
        tags=["Games"],
        summary="Join a game as the invited opponent",
    )
    async def join_game(game_id: str, request: JoinGameRequest) -> GameResponse:
        game = await manager.join_game(game_id, request.move_index)
        return to_response(game)

    @app.post(
        "/api/v1/games/{game_id}/reveal",
        response_model=GameResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
        tags=["Games"],
        summary="Reveal the committed move",
    )
    async def reveal_move(game_id: str) -> GameResponse:
        game = await manager.reveal_move(game_id)
        return to_response(game)

    @app.post(
        "/api/v1/games/{game_id}/timeout",
        response_model=GameResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
        tags=["Games"],
        summary="Claim forfeiture against a stalled counterparty",
    )
    async def claim_timeout(game_id: str, request: Optional[ClaimTimeoutRequest] = None) -> GameResponse:
        side = TimeoutSide(request.side.value) if request and request.side else None
        game = await manager.claim_timeout(game_id, side)
        return to_response(game)

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket("/api/v1/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        WebSocket for change notifications.

        Messages from server:
        - games_changed: ids of games whose committed state changed
        - pong: reply to ping

        Messages from client:
        - ping: Keep-alive
        """
        await websocket.accept()
        queue: asyncio.Queue = asyncio.Queue()
        subscription = manager.subscribe(queue.put_nowait)

        async def pump():
            while True:
                event = await queue.get()
                await websocket.send_json(GamesChangedMessage(
                    game_ids=list(event.game_ids),
                    reason=event.reason,
                    timestamp=event.timestamp,
                ).model_dump())

        sender = asyncio.create_task(pump())
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    await websocket.send_json({"type": "error", "payload": {"message": "Invalid JSON"}})
                    continue
                if isinstance(message, dict) and message.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})
        except WebSocketDisconnect:
            logger.debug("WebSocket client disconnected")
        finally:
            manager.unsubscribe(subscription)
            sender.cancel()

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/api/v1/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            service="rpsls",
            version=__version__,
            account=manager.account,
            polling=manager.engine.running,
            tracked_games=len(manager.store),
        )

    return app
