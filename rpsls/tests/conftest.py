"""
Pytest fixtures for RPSLS tests.

Time is always injected: the ledger, the state machine, and the
managers share one FakeClock so timeout scenarios are deterministic.
"""

import pytest

from ..config import Settings
from ..engine_core.commitment import make_commitment
from ..engine_core.moves import Move
from ..engine_core.state import Game, GamePhase, Role
from ..ledger.memory import InMemoryLedger
from ..session.manager import GameManager
from ..store.backends import MemoryBackend
from ..store.game_store import GameStore

ALICE = "0x" + "11" * 20
BOB = "0x" + "22" * 20
CAROL = "0x" + "33" * 20

START = 1_700_000_000.0
TIMEOUT = 300
ONE_ETH = 10**18


class FakeClock:
    """Callable wall clock that only moves when told to."""

    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings with polling effectively manual."""
    return Settings(timeout_seconds=TIMEOUT, poll_interval=3600.0, ledger_timeout=1.0)


@pytest.fixture
def ledger(clock) -> InMemoryLedger:
    ledger = InMemoryLedger(timeout_seconds=TIMEOUT, clock=clock)
    ledger.fund(ALICE, 10 * ONE_ETH)
    ledger.fund(BOB, 10 * ONE_ETH)
    return ledger


@pytest.fixture
def alice_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def alice(ledger, alice_backend, settings, clock) -> GameManager:
    """Alice's client: she creates games."""
    return GameManager(ledger.client(ALICE), GameStore(alice_backend), settings=settings, clock=clock)


@pytest.fixture
def bob(ledger, settings, clock) -> GameManager:
    """Bob's client: he is invited to Alice's games."""
    return GameManager(ledger.client(BOB), GameStore(MemoryBackend()), settings=settings, clock=clock)


@pytest.fixture
def events(alice):
    """Every GamesChanged Alice's manager publishes."""
    received = []
    alice.subscribe(received.append)
    return received


def make_game(
    phase: GamePhase = GamePhase.CREATED,
    role: Role = Role.CREATOR,
    move: Move = Move.ROCK,
    salt: int = 12345,
    opponent_move: Move | None = None,
    game_id: str = "0x" + "ab" * 20,
    **kwargs,
) -> Game:
    """A creator-side game in any phase, with a valid commitment."""
    fields = dict(
        game_id=game_id,
        role=role,
        account=ALICE if role == Role.CREATOR else BOB,
        creator=ALICE,
        opponent=BOB,
        stake=ONE_ETH,
        phase=phase,
        commitment=make_commitment(move, salt),
        move=move if role == Role.CREATOR else None,
        salt=salt if role == Role.CREATOR else None,
        opponent_move=opponent_move,
        created_at=START,
    )
    fields.update(kwargs)
    return Game(**fields)


@pytest.fixture
def created_game() -> Game:
    return make_game()


@pytest.fixture
def waiting_game() -> Game:
    """Submitted, opponent not yet joined."""
    return make_game(GamePhase.WAITING_FOR_OPPONENT, stake_remaining=ONE_ETH, last_action=int(START))


@pytest.fixture
def joined_game() -> Game:
    """Opponent joined with Scissors; creator holds Rock."""
    return make_game(
        GamePhase.WAITING_FOR_REVEAL,
        opponent_move=Move.SCISSORS,
        stake_remaining=ONE_ETH,
        last_action=int(START) + 10,
        joined_at=START + 10,
    )
