"""
Move Algebra - The five moves and who beats whom.

Two numbering schemes exist for the same five moves:
- UI index (0..4): Rock, Paper, Scissors, Lizard, Spock
- Ledger encoding (1..5): Rock, Paper, Scissors, Spock, Lizard

`Move` values ARE ledger encodings. Every conversion from a UI index
goes through UI_TO_LEDGER, the one table relating the two spaces.

The beats graph and the ledger's parity rule must agree on all 25
ordered pairs; the test suite checks this exhaustively.
"""

from __future__ import annotations
from enum import Enum


class Move(Enum):
    """A move, valued by its ledger encoding."""
    ROCK = 1
    PAPER = 2
    SCISSORS = 3
    SPOCK = 4
    LIZARD = 5

    @property
    def encoding(self) -> int:
        return self.value

    @property
    def ui_index(self) -> int:
        return LEDGER_TO_UI[self.value]

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_ui_index(cls, index: int) -> Move:
        """Map a UI index (0..4) to a move."""
        if index not in UI_TO_LEDGER:
            raise ValueError(f"UI move index out of range: {index!r}")
        return cls(UI_TO_LEDGER[index])

    @classmethod
    def from_encoding(cls, encoding: int) -> Move:
        """Map a ledger encoding (1..5) to a move."""
        try:
            return cls(encoding)
        except ValueError:
            raise ValueError(f"Ledger move encoding out of range: {encoding!r}") from None


class Outcome(Enum):
    """Result of comparing a first move against a second."""
    TIE = "tie"
    FIRST_WINS = "first_wins"
    SECOND_WINS = "second_wins"


# The ledger uses 0 for "no move played yet"
NO_MOVE = 0

UI_TO_LEDGER: dict[int, int] = {
    0: Move.ROCK.value,
    1: Move.PAPER.value,
    2: Move.SCISSORS.value,
    3: Move.LIZARD.value,
    4: Move.SPOCK.value,
}
LEDGER_TO_UI: dict[int, int] = {enc: idx for idx, enc in UI_TO_LEDGER.items()}

BEATS: dict[Move, frozenset[Move]] = {
    Move.ROCK: frozenset({Move.SCISSORS, Move.LIZARD}),
    Move.PAPER: frozenset({Move.ROCK, Move.SPOCK}),
    Move.SCISSORS: frozenset({Move.PAPER, Move.LIZARD}),
    Move.LIZARD: frozenset({Move.PAPER, Move.SPOCK}),
    Move.SPOCK: frozenset({Move.ROCK, Move.SCISSORS}),
}


def beats(a: Move, b: Move) -> bool:
    """True iff `a` defeats `b` under the beats graph."""
    return b in BEATS[a]


def parity_beats(a: int, b: int) -> bool:
    """
    The ledger's arithmetic rule over encodings 1..5.

    Equal encodings tie. Same parity: the lower encoding wins.
    Different parity: the higher encoding wins.
    """
    if a == b:
        return False
    if a % 2 == b % 2:
        return a < b
    return a > b


def determine_winner(first: Move, second: Move) -> Outcome:
    """Compare two moves."""
    if first == second:
        return Outcome.TIE
    if beats(first, second):
        return Outcome.FIRST_WINS
    return Outcome.SECOND_WINS


def is_valid_encoding(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value in LEDGER_TO_UI


def is_valid_ui_index(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value in UI_TO_LEDGER
