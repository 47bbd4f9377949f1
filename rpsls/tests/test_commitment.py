"""
Tests for the commitment scheme.

Tests:
- Known Keccak-256 vectors (not NIST SHA3)
- Fixed (move, salt) commitments matching the packed Solidity encoding
- Byte layout of the preimage
- Round trip over many random (move, salt) pairs
- No acceptance under single-bit mutation
- Salt generation
"""

import random

import pytest

from ..engine_core.commitment import (
    SALT_BITS,
    commitment_preimage,
    generate_salt,
    keccak256,
    make_commitment,
    normalize_commitment,
    salt_from_hex,
    salt_to_hex,
    verify_reveal,
)
from ..engine_core.moves import Move

ENCODINGS = [m.encoding for m in Move]


class TestKeccak:
    """Tests for the hash primitive."""

    def test_empty_input(self):
        assert keccak256(b"").hex() == (
            "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
        )

    def test_abc(self):
        assert keccak256(b"abc").hex() == (
            "4e03657aea45a94fc7d47ba826c8d667c0d1e6e33a64a036ec44f58fa12d6c45"
        )

    def test_not_sha3(self):
        """NIST SHA3-256 of the empty string differs."""
        assert keccak256(b"").hex() != (
            "a7ffc6f8bf1ed76651c14756a061d662f580ff4de43b49fa82d80a4b80f8434a"
        )


class TestPreimage:
    """Tests for the packed byte layout."""

    def test_layout(self):
        """1 byte of move, then 32 bytes of salt, most significant first."""
        preimage = commitment_preimage(3, 1)
        assert len(preimage) == 33
        assert preimage[0] == 3
        assert preimage[1:] == b"\x00" * 31 + b"\x01"

    def test_accepts_move(self):
        assert commitment_preimage(Move.SPOCK, 7) == commitment_preimage(4, 7)

    @pytest.mark.parametrize("move", [0, 6, -1, 256])
    def test_rejects_bad_move(self, move):
        with pytest.raises(ValueError):
            commitment_preimage(move, 1)

    @pytest.mark.parametrize("salt", [-1, 2**256])
    def test_rejects_bad_salt(self, salt):
        with pytest.raises(ValueError):
            commitment_preimage(1, salt)

    def test_commitment_format(self):
        commitment = make_commitment(1, 42)
        assert commitment.startswith("0x")
        assert len(commitment) == 66
        assert commitment == commitment.lower()


class TestKnownCommitments:
    """keccak256(abi.encodePacked(uint8 move, uint256 salt)), as the ledger recomputes it."""

    @pytest.mark.parametrize(
        "move,salt,commitment",
        [
            (Move.ROCK, 1, "0x9b68e489a07c86105b2c34adda59d3851d6f33abd41be6e9559cf783147db5dd"),
            (Move.LIZARD, 0xDEADBEEF, "0x08ef34457b380b252d0ccbcf8ec6b695d80304cbc7a28a7292baa3670555ae31"),
            (Move.SPOCK, 2**256 - 1, "0xcf7838f11a0376b3cd640753599e1dfeed4e647700c0842922d67b7653c465e1"),
        ],
    )
    def test_fixed_vectors(self, move, salt, commitment):
        assert make_commitment(move, salt) == commitment
        assert verify_reveal(commitment, move.encoding, salt)


class TestRoundTrip:
    """verify_reveal against make_commitment."""

    def test_random_pairs_verify(self):
        """1000 random (move, salt) pairs reproduce their commitment."""
        rng = random.Random(0)
        for _ in range(1000):
            move = rng.choice(ENCODINGS)
            salt = rng.getrandbits(SALT_BITS)
            assert verify_reveal(make_commitment(move, salt), move, salt)

    def test_single_bit_salt_mutation_rejected(self):
        """Flipping any one salt bit breaks verification."""
        rng = random.Random(1)
        for _ in range(20):
            move = rng.choice(ENCODINGS)
            salt = rng.getrandbits(SALT_BITS)
            commitment = make_commitment(move, salt)
            for bit in range(SALT_BITS):
                assert not verify_reveal(commitment, move, salt ^ (1 << bit))

    def test_single_bit_move_mutation_rejected(self):
        """Flipping any one bit of the move byte breaks verification."""
        rng = random.Random(2)
        for _ in range(200):
            move = rng.choice(ENCODINGS)
            salt = rng.getrandbits(SALT_BITS)
            commitment = make_commitment(move, salt)
            for bit in range(8):
                assert not verify_reveal(commitment, move ^ (1 << bit), salt)

    def test_random_mutations_rejected(self):
        """One random single-bit mutation per pair, across 1000 pairs."""
        rng = random.Random(3)
        for _ in range(1000):
            move = rng.choice(ENCODINGS)
            salt = rng.getrandbits(SALT_BITS)
            commitment = make_commitment(move, salt)
            bit = rng.randrange(SALT_BITS + 8)
            if bit < SALT_BITS:
                assert not verify_reveal(commitment, move, salt ^ (1 << bit))
            else:
                assert not verify_reveal(commitment, move ^ (1 << (bit - SALT_BITS)), salt)

    def test_other_move_rejected(self):
        commitment = make_commitment(Move.ROCK, 99)
        for move in Move:
            assert verify_reveal(commitment, move.encoding, 99) == (move == Move.ROCK)

    def test_uppercase_commitment_accepted(self):
        commitment = make_commitment(2, 5)
        assert verify_reveal("0x" + commitment[2:].upper(), 2, 5)

    @pytest.mark.parametrize("commitment", ["", "0x1234", "not hex" * 10, None])
    def test_malformed_commitment_is_false(self, commitment):
        assert verify_reveal(commitment, 1, 1) is False

    def test_out_of_range_inputs_are_false(self):
        commitment = make_commitment(1, 1)
        assert verify_reveal(commitment, 0, 1) is False
        assert verify_reveal(commitment, 1, -1) is False


class TestSalt:
    """Tests for salt generation and encoding."""

    def test_generated_salts_are_256_bit(self):
        salts = {generate_salt() for _ in range(64)}
        assert len(salts) == 64
        assert all(0 <= s < 2**256 for s in salts)

    def test_hex_round_trip(self):
        salt = 2**255 + 17
        text = salt_to_hex(salt)
        assert len(text) == 66
        assert salt_from_hex(text) == salt

    def test_small_salt_is_zero_padded(self):
        assert salt_to_hex(1) == "0x" + "0" * 63 + "1"

    def test_oversized_hex_rejected(self):
        with pytest.raises(ValueError):
            salt_from_hex("0x" + "f" * 65)

    def test_normalize_commitment(self):
        commitment = make_commitment(1, 1)
        assert normalize_commitment(commitment[2:].upper()) == commitment
        with pytest.raises(ValueError):
            normalize_commitment("0x12")
