"""
Validation helpers - addresses, stakes, and countdowns.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
import re

WEI_PER_ETHER = 10**18
HIGH_STAKE_WEI = 10 * WEI_PER_ETHER

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class StakeCheck:
    valid: bool
    message: str | None = None
    warning: str | None = None


def is_valid_address(address: object) -> bool:
    """0x followed by 40 hex digits."""
    return isinstance(address, str) and bool(_ADDRESS_RE.match(address))


def same_address(a: str | None, b: str | None) -> bool:
    return a is not None and b is not None and a.lower() == b.lower()


def validate_stake(stake_wei: object) -> StakeCheck:
    if not isinstance(stake_wei, int) or isinstance(stake_wei, bool):
        return StakeCheck(False, "Please enter a valid stake amount")
    if stake_wei <= 0:
        return StakeCheck(False, "Stake amount must be greater than 0")
    if stake_wei > HIGH_STAKE_WEI:
        return StakeCheck(
            True,
            warning=(
                "High stake amount detected. Please ensure you have sufficient "
                "funds for both stake and gas fees."
            ),
        )
    return StakeCheck(True)


def ether_to_wei(amount: str | int | float | Decimal) -> int:
    """Parse an ether amount ("0.25") into wei."""
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid ether amount: {amount!r}") from None
    wei = value * WEI_PER_ETHER
    if wei != wei.to_integral_value():
        raise ValueError(f"Ether amount has more than 18 decimals: {amount!r}")
    return int(wei)


def wei_to_ether(wei: int) -> str:
    text = format(Decimal(wei) / WEI_PER_ETHER, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def shorten_address(address: str | None) -> str:
    """0x1234...5678"""
    if not address:
        return ""
    return f"{address[:6]}...{address[-4:]}"


def format_time_remaining(seconds: float) -> str:
    """M:SS countdown, or a ready message once elapsed."""
    if seconds <= 0:
        return "Timeout available"
    total = int(-(-seconds // 1))  # ceil
    minutes, secs = divmod(total, 60)
    return f"{minutes}:{secs:02d}"
