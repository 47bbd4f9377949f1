"""
Tests for the game state machine.

Tests:
- Every transition in the table
- Every guard, with its violation code
- Winner computation and advisory payouts
- Property: random event sequences only ever follow the table
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ..engine_core.action import Action, ActionType
from ..engine_core.moves import Move
from ..engine_core.reducer import GameStateMachine, apply_action, payouts, resolve_result
from ..engine_core.state import GamePhase, GameResult, Role, TimeoutSide, SUBMITTED_PHASES
from .conftest import BOB, ALICE, ONE_ETH, START, TIMEOUT, make_game

GAME_ID = "0x" + "cd" * 20
SALT = 12345


@pytest.fixture
def machine():
    return GameStateMachine(timeout_seconds=TIMEOUT)


class TestSubmit:
    """Created -> WaitingForOpponent."""

    def test_submit_assigns_ledger_id(self, machine, created_game):
        result = machine.apply(created_game, Action.submit(GAME_ID, tx_ref="0xtx", timestamp=START))

        assert result.success
        game = result.new_state
        assert game.game_id == GAME_ID
        assert game.phase == GamePhase.WAITING_FOR_OPPONENT
        assert game.stake_remaining == ONE_ETH
        assert game.tx_refs["deploy"] == "0xtx"

    def test_submit_without_id_fails(self, machine, created_game):
        result = machine.apply(created_game, Action.submit("", timestamp=START))
        assert not result.success
        assert result.error_code == "MISSING_GAME_ID"

    def test_submit_without_commitment_fails(self, machine):
        game = make_game(commitment=None)
        result = machine.apply(game, Action.submit(GAME_ID, timestamp=START))
        assert result.error_code == "MISSING_MOVE"

    def test_submit_zero_stake_fails(self, machine):
        game = make_game(stake=0)
        result = machine.apply(game, Action.submit(GAME_ID, timestamp=START))
        assert result.error_code == "INVALID_STAKE"

    def test_submit_twice_fails(self, machine, waiting_game):
        result = machine.apply(waiting_game, Action.submit(GAME_ID, timestamp=START))
        assert result.error_code == "WRONG_PHASE"


class TestOpponentJoined:
    """WaitingForOpponent -> WaitingForReveal."""

    def test_join_records_move(self, machine, waiting_game):
        action = Action.opponent_joined(Move.PAPER, ONE_ETH, last_action=int(START) + 5, timestamp=START + 5)
        result = machine.apply(waiting_game, action)

        assert result.success
        game = result.new_state
        assert game.phase == GamePhase.WAITING_FOR_REVEAL
        assert game.opponent_move == Move.PAPER
        assert game.joined_at == START + 5
        assert game.last_action == int(START) + 5

    def test_stake_mismatch(self, machine, waiting_game):
        result = machine.apply(waiting_game, Action.opponent_joined(Move.PAPER, ONE_ETH - 1, timestamp=START))
        assert result.error_code == "STAKE_MISMATCH"

    def test_missing_move(self, machine, waiting_game):
        result = machine.apply(waiting_game, Action.opponent_joined(None, ONE_ETH, timestamp=START))
        assert result.error_code == "MISSING_MOVE"

    def test_join_from_created_fails(self, machine, created_game):
        result = machine.apply(created_game, Action.opponent_joined(Move.PAPER, ONE_ETH, timestamp=START))
        assert result.error_code == "WRONG_PHASE"


class TestReveal:
    """WaitingForReveal -> Revealed."""

    def test_reveal_computes_winner(self, machine, joined_game):
        result = machine.apply(joined_game, Action.reveal(Move.ROCK, SALT, timestamp=START + 20))

        assert result.success
        game = result.new_state
        assert game.phase == GamePhase.REVEALED
        assert game.result == GameResult.CREATOR_WINS
        assert game.winner == ALICE
        assert game.revealed_at == START + 20

    def test_confirmed_reveal_clears_pending_marker(self, machine, joined_game):
        pending = joined_game._copy_with(pending_tx="reveal")
        result = machine.apply(pending, Action.reveal(Move.ROCK, SALT, timestamp=START + 20))
        assert result.new_state.pending_tx is None

    def test_wrong_salt_is_commitment_mismatch(self, machine, joined_game):
        result = machine.apply(joined_game, Action.reveal(Move.ROCK, SALT + 1, timestamp=START))
        assert result.error_code == "COMMITMENT_MISMATCH"

    def test_wrong_move_is_commitment_mismatch(self, machine, joined_game):
        result = machine.apply(joined_game, Action.reveal(Move.PAPER, SALT, timestamp=START))
        assert result.error_code == "COMMITMENT_MISMATCH"

    def test_missing_salt(self, machine, joined_game):
        result = machine.apply(joined_game, Action.reveal(Move.ROCK, None, timestamp=START))
        assert result.error_code == "SALT_MISSING"

    def test_reveal_before_join(self, machine, waiting_game):
        result = machine.apply(waiting_game, Action.reveal(Move.ROCK, SALT, timestamp=START))
        assert result.error_code == "OPPONENT_NOT_JOINED"

    def test_opponent_cannot_reveal(self, machine):
        game = make_game(GamePhase.WAITING_FOR_REVEAL, role=Role.OPPONENT, opponent_move=Move.SPOCK)
        result = machine.apply(game, Action.reveal(Move.ROCK, SALT, timestamp=START))
        assert result.error_code == "NOT_CREATOR"


class TestClaimTimeout:
    """Timeout claims against a stalled side."""

    def test_opponent_timeout_after_deadline(self, machine, waiting_game):
        action = Action.claim_timeout(TimeoutSide.OPPONENT, timestamp=START + TIMEOUT)
        result = machine.apply(waiting_game, action)

        assert result.success
        game = result.new_state
        assert game.phase == GamePhase.TIMED_OUT
        assert game.timeout_side == TimeoutSide.OPPONENT
        assert game.result == GameResult.CREATOR_WINS
        assert payouts(game) == {ALICE: ONE_ETH}

    def test_opponent_timeout_before_deadline(self, machine, waiting_game):
        action = Action.claim_timeout(TimeoutSide.OPPONENT, timestamp=START + TIMEOUT - 1)
        result = machine.apply(waiting_game, action)
        assert result.error_code == "DEADLINE_NOT_REACHED"

    def test_creator_timeout_after_deadline(self, machine):
        game = make_game(
            GamePhase.WAITING_FOR_REVEAL, role=Role.OPPONENT,
            opponent_move=Move.SPOCK, last_action=int(START) + 10,
        )
        action = Action.claim_timeout(TimeoutSide.CREATOR, timestamp=START + 10 + TIMEOUT)
        result = machine.apply(game, action)

        assert result.success
        assert result.new_state.phase == GamePhase.TIMED_OUT
        assert result.new_state.result == GameResult.OPPONENT_WINS
        assert result.new_state.winner == BOB
        assert payouts(result.new_state) == {BOB: 2 * ONE_ETH}

    def test_deadline_measured_from_last_action(self, machine, joined_game):
        """The join resets the clock; creation time no longer counts."""
        game = joined_game._copy_with(role=Role.OPPONENT, move=None, salt=None)
        action = Action.claim_timeout(TimeoutSide.CREATOR, timestamp=START + TIMEOUT + 5)
        result = machine.apply(game, action)
        assert result.error_code == "DEADLINE_NOT_REACHED"

    def test_creator_cannot_claim_own_timeout(self, machine, joined_game):
        action = Action.claim_timeout(TimeoutSide.CREATOR, timestamp=START + 10 * TIMEOUT)
        result = machine.apply(joined_game, action)
        assert result.error_code == "NOT_CLAIMANT"

    def test_opponent_timeout_after_join_is_wrong_phase(self, machine, joined_game):
        action = Action.claim_timeout(TimeoutSide.OPPONENT, timestamp=START + 10 * TIMEOUT)
        result = machine.apply(joined_game, action)
        assert result.error_code == "WRONG_PHASE"

    def test_creator_timeout_before_join(self, machine, waiting_game):
        action = Action.claim_timeout(TimeoutSide.CREATOR, timestamp=START + 10 * TIMEOUT)
        result = machine.apply(waiting_game, action)
        assert result.error_code == "OPPONENT_NOT_JOINED"

    def test_time_remaining(self, machine, waiting_game):
        assert machine.time_remaining(waiting_game, START + 100) == TIMEOUT - 100
        assert machine.time_remaining(waiting_game, START + 10 * TIMEOUT) == 0
        assert machine.deadline_passed(waiting_game, START + TIMEOUT)


class TestPayoutObserved:
    """Stake observed at zero."""

    def test_revealed_game_completes(self, machine, joined_game):
        revealed = machine.apply(joined_game, Action.reveal(Move.ROCK, SALT, timestamp=START)).new_state
        result = machine.apply(revealed, Action.payout_observed(0, Move.SCISSORS, timestamp=START + 30))

        assert result.success
        assert result.new_state.phase == GamePhase.COMPLETED
        assert result.new_state.result == GameResult.CREATOR_WINS
        assert result.new_state.stake_remaining == 0

    def test_unjoined_game_is_opponent_timeout(self, machine, waiting_game):
        result = machine.apply(waiting_game, Action.payout_observed(0, None, timestamp=START))

        assert result.new_state.phase == GamePhase.TIMED_OUT
        assert result.new_state.timeout_side == TimeoutSide.OPPONENT

    def test_unrevealed_creator_is_creator_timeout(self, machine, joined_game):
        """Past the deadline the opponent could have claimed the pot."""
        late = joined_game.last_action + TIMEOUT + 1
        result = machine.apply(joined_game, Action.payout_observed(0, Move.SCISSORS, timestamp=late))

        assert result.new_state.phase == GamePhase.TIMED_OUT
        assert result.new_state.timeout_side == TimeoutSide.CREATOR
        assert result.new_state.result == GameResult.OPPONENT_WINS

    def test_payout_at_deadline_is_not_a_claim(self, machine, joined_game):
        """The ledger accepts the creator-timeout claim only strictly after the deadline."""
        at_deadline = joined_game.last_action + TIMEOUT
        result = machine.apply(joined_game, Action.payout_observed(0, Move.SCISSORS, timestamp=at_deadline))

        assert result.new_state.phase == GamePhase.COMPLETED

    def test_unconfirmed_reveal_before_deadline_completes(self, machine, joined_game):
        """A payout the opponent could not have claimed yet is our own reveal landing."""
        result = machine.apply(joined_game, Action.payout_observed(0, Move.SCISSORS, timestamp=START + 60))

        assert result.new_state.phase == GamePhase.COMPLETED
        assert result.new_state.result == GameResult.CREATOR_WINS
        assert result.new_state.timeout_side is None
        assert payouts(result.new_state) == {ALICE: 2 * ONE_ETH}

    def test_pending_reveal_after_deadline_completes(self, machine, joined_game):
        pending = joined_game._copy_with(pending_tx="reveal")
        late = joined_game.last_action + 10 * TIMEOUT
        result = machine.apply(pending, Action.payout_observed(0, Move.SCISSORS, timestamp=late))

        assert result.new_state.phase == GamePhase.COMPLETED
        assert result.new_state.result == GameResult.CREATOR_WINS
        assert result.new_state.pending_tx is None

    def test_opponent_sees_unknown_result(self, machine):
        """The creator's move never reaches the opponent."""
        game = make_game(GamePhase.WAITING_FOR_REVEAL, role=Role.OPPONENT, opponent_move=Move.SPOCK)
        result = machine.apply(game, Action.payout_observed(0, Move.SPOCK, timestamp=START))

        assert result.new_state.phase == GamePhase.COMPLETED
        assert result.new_state.result == GameResult.UNKNOWN
        assert result.new_state.winner is None

    def test_nonzero_stake_rejected(self, machine, joined_game):
        result = machine.apply(joined_game, Action.payout_observed(ONE_ETH, None, timestamp=START))
        assert result.error_code == "STAKE_NOT_ZERO"

    def test_not_accepted_before_submit(self, machine, created_game):
        result = machine.apply(created_game, Action.payout_observed(0, None, timestamp=START))
        assert result.error_code == "WRONG_PHASE"


class TestTerminal:
    """Terminal games accept nothing."""

    @pytest.mark.parametrize(
        "action",
        [
            Action.submit(GAME_ID),
            Action.opponent_joined(Move.ROCK, ONE_ETH),
            Action.reveal(Move.ROCK, SALT),
            Action.claim_timeout(TimeoutSide.OPPONENT),
            Action.payout_observed(0, None),
        ],
        ids=lambda a: a.action_type.value,
    )
    @pytest.mark.parametrize("phase", [GamePhase.COMPLETED, GamePhase.TIMED_OUT])
    def test_rejects_everything(self, machine, phase, action):
        result = machine.apply(make_game(phase), action)
        assert not result.success
        assert result.error_code == "GAME_TERMINAL"


class TestResults:
    """Winner computation and payouts."""

    def test_resolve_result(self):
        assert resolve_result(Move.ROCK, Move.SCISSORS) == GameResult.CREATOR_WINS
        assert resolve_result(Move.ROCK, Move.PAPER) == GameResult.OPPONENT_WINS
        assert resolve_result(Move.LIZARD, Move.LIZARD) == GameResult.TIE
        assert resolve_result(Move.ROCK, None) == GameResult.PENDING

    def test_tie_splits_stake(self):
        game = make_game(GamePhase.COMPLETED, result=GameResult.TIE)
        assert payouts(game) == {ALICE: ONE_ETH, BOB: ONE_ETH}

    def test_winner_takes_pot(self):
        game = make_game(GamePhase.COMPLETED, result=GameResult.CREATOR_WINS)
        assert payouts(game) == {ALICE: 2 * ONE_ETH}

    def test_unknown_result_has_no_advice(self):
        game = make_game(GamePhase.COMPLETED, result=GameResult.UNKNOWN)
        assert payouts(game) == {}

    def test_apply_action_helper(self, created_game):
        result = apply_action(created_game, Action.submit(GAME_ID, timestamp=START), timeout_seconds=TIMEOUT)
        assert result.new_state.phase == GamePhase.WAITING_FOR_OPPONENT


# =============================================================================
# Property: random event sequences follow the transition table
# =============================================================================

events = st.one_of(
    st.tuples(st.just("submit"), st.booleans()),
    st.tuples(st.just("join"), st.one_of(st.none(), st.sampled_from(list(Move))), st.booleans()),
    st.tuples(st.just("reveal"), st.booleans()),
    st.tuples(st.just("claim"), st.sampled_from(list(TimeoutSide)), st.integers(0, 2 * TIMEOUT)),
    st.tuples(
        st.just("payout"), st.booleans(), st.one_of(st.none(), st.sampled_from(list(Move))), st.integers(0, 2 * TIMEOUT)
    ),
)


def build_action(game, event):
    kind = event[0]
    reference = game.deadline_reference() or START
    if kind == "submit":
        return Action.submit(GAME_ID if event[1] else "", timestamp=reference)
    if kind == "join":
        _, move, matches = event
        stake = game.stake if matches else game.stake + 1
        return Action.opponent_joined(move, stake, timestamp=reference)
    if kind == "reveal":
        return Action.reveal(Move.ROCK, SALT if event[1] else SALT + 1, timestamp=reference)
    if kind == "claim":
        _, side, elapsed = event
        return Action.claim_timeout(side, timestamp=reference + elapsed)
    _, zero, move, elapsed = event
    return Action.payout_observed(0 if zero else ONE_ETH, move, timestamp=reference + elapsed)


def expected_phase(game, event):
    """Independent reading of the transition table. None means rejected."""
    phase = game.phase
    if phase.is_terminal:
        return None
    kind = event[0]

    if kind == "submit":
        return GamePhase.WAITING_FOR_OPPONENT if phase == GamePhase.CREATED and event[1] else None

    if kind == "join":
        _, move, matches = event
        ok = phase == GamePhase.WAITING_FOR_OPPONENT and move is not None and matches
        return GamePhase.WAITING_FOR_REVEAL if ok else None

    if kind == "reveal":
        ok = phase == GamePhase.WAITING_FOR_REVEAL and game.role == Role.CREATOR and event[1]
        return GamePhase.REVEALED if ok else None

    if kind == "claim":
        _, side, elapsed = event
        if side == TimeoutSide.OPPONENT:
            ok = phase == GamePhase.WAITING_FOR_OPPONENT and game.role == Role.CREATOR
        else:
            ok = phase == GamePhase.WAITING_FOR_REVEAL and game.role == Role.OPPONENT
        return GamePhase.TIMED_OUT if ok and elapsed >= TIMEOUT else None

    _, zero, move, elapsed = event
    if phase not in SUBMITTED_PHASES or not zero:
        return None
    if (game.opponent_move or move) is None:
        return GamePhase.TIMED_OUT
    if game.role == Role.CREATOR and phase != GamePhase.REVEALED and elapsed > TIMEOUT:
        return GamePhase.TIMED_OUT
    return GamePhase.COMPLETED


class TestTransitionProperty:
    """The machine never takes a transition whose guard is false."""

    @settings(max_examples=300, deadline=None)
    @given(role=st.sampled_from(list(Role)), sequence=st.lists(events, max_size=10))
    def test_sequences_follow_table(self, role, sequence):
        machine = GameStateMachine(timeout_seconds=TIMEOUT)
        game = make_game(role=role)

        for event in sequence:
            action = build_action(game, event)
            result = machine.apply(game, action)
            expected = expected_phase(game, event)

            if expected is None:
                assert not result.success, (game.phase, event)
                assert result.error_code
                continue

            assert result.success, (game.phase, event, result.error_code)
            assert result.new_state.phase == expected
            assert result.new_state.phase.rank >= game.phase.rank
            game = result.new_state

    @settings(max_examples=100, deadline=None)
    @given(sequence=st.lists(events, max_size=10))
    def test_terminal_is_absorbing(self, sequence):
        machine = GameStateMachine(timeout_seconds=TIMEOUT)
        game = make_game()
        terminal = None
        for event in sequence:
            result = machine.apply(game, build_action(game, event))
            if terminal is not None:
                assert not result.success
            if result.success:
                game = result.new_state
                if game.is_terminal:
                    terminal = game
        if terminal is not None:
            assert game == terminal
