"""
Commitment Scheme - Binds the creator to a move without revealing it.

    commitment = keccak256(uint8(move) || uint256_be(salt))

The 33-byte preimage layout must match the ledger's own recomputation
byte for byte, otherwise legitimate reveals are rejected on chain.
Keccak-256 here is the Ethereum variant, not NIST SHA3-256.

Salts are 256-bit integers from the OS CSPRNG, one per game. They are
rendered as 0x-prefixed, 64-digit hex when persisted or displayed.
"""

from __future__ import annotations
import hmac
import secrets
from typing import Final

from Crypto.Hash import keccak

from .moves import Move, is_valid_encoding

SALT_BITS: Final[int] = 256
SALT_BYTES: Final[int] = SALT_BITS // 8
COMMITMENT_BYTES: Final[int] = 32


def keccak256(data: bytes) -> bytes:
    """Ethereum Keccak-256 digest."""
    return keccak.new(digest_bits=256, data=data).digest()


def generate_salt() -> int:
    """Fresh 256-bit salt from a cryptographically secure source."""
    return secrets.randbits(SALT_BITS)


def commitment_preimage(move_encoding: int, salt: int) -> bytes:
    """Tight packing of (uint8 move, uint256 salt), salt big-endian."""
    if isinstance(move_encoding, Move):
        move_encoding = move_encoding.value
    if not is_valid_encoding(move_encoding):
        raise ValueError(f"Move encoding must be 1..5, got {move_encoding!r}")
    if not isinstance(salt, int) or isinstance(salt, bool) or not 0 <= salt < 2**SALT_BITS:
        raise ValueError("Salt must be an unsigned 256-bit integer")
    return bytes([move_encoding]) + salt.to_bytes(SALT_BYTES, "big")


def make_commitment(move_encoding: int, salt: int) -> str:
    """Commitment for (move, salt) as a 0x-prefixed hex string."""
    return "0x" + keccak256(commitment_preimage(move_encoding, salt)).hex()


def verify_reveal(commitment: str, move_encoding: int, salt: int) -> bool:
    """
    Recompute and compare against a published commitment.

    Local sanity check only; the ledger performs the authoritative check.
    Malformed inputs verify as False.
    """
    try:
        expected = normalize_commitment(commitment)
        computed = make_commitment(move_encoding, salt)
    except ValueError:
        return False
    return hmac.compare_digest(expected, computed)


def normalize_commitment(commitment: str) -> str:
    """Lowercase 0x-prefixed form; raises ValueError if not 32 bytes of hex."""
    if not isinstance(commitment, str):
        raise ValueError("Commitment must be a hex string")
    raw = commitment[2:] if commitment[:2].lower() == "0x" else commitment
    if len(raw) != COMMITMENT_BYTES * 2:
        raise ValueError(f"Commitment must be {COMMITMENT_BYTES} bytes")
    bytes.fromhex(raw)
    return "0x" + raw.lower()


def salt_to_hex(salt: int) -> str:
    return "0x" + salt.to_bytes(SALT_BYTES, "big").hex()


def salt_from_hex(value: str) -> int:
    raw = value[2:] if value[:2].lower() == "0x" else value
    if not raw or len(raw) > SALT_BYTES * 2:
        raise ValueError("Salt must be at most 32 bytes of hex")
    return int(raw, 16)
