"""Formatting helpers for wei amounts, timestamps and addresses."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

WEI_DECIMALS = 18
WEI_PER_ETHER = 10 ** WEI_DECIMALS


def format_ether(amount_wei: int) -> str:
    """Render a wei amount as an exact ether decimal string.

    The integer is split at 10**18 with no float involved, trailing zeros of
    the fraction are dropped but at least one fractional digit is kept:
    ``1500000000000000000 -> "1.5"`` and ``0 -> "0.0"``.
    """
    amount = int(amount_wei)
    if amount < 0:
        raise ValueError(f"wei amount must be unsigned, got {amount}")
    whole, fraction = divmod(amount, WEI_PER_ETHER)
    fraction_digits = f"{fraction:0{WEI_DECIMALS}d}".rstrip("0") or "0"
    return f"{whole}.{fraction_digits}"


def format_timestamp(timestamp: int) -> str:
    """Unix seconds to an ISO-8601 UTC string with millisecond precision."""
    moment = datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def format_balance(balance_wei: int) -> str:
    """Short balance label in the style wallet extensions use.

    ``0.0000`` for empty wallets, scientific notation below 0.0001,
    four decimals below 1, two below 1000 and whole units above.
    """
    if not balance_wei:
        return "0.0000"
    value = Decimal(int(balance_wei)).scaleb(-WEI_DECIMALS)
    if value < Decimal("0.0001"):
        mantissa, _, exponent = f"{value:.4e}".partition("e")
        return f"{mantissa}e{int(exponent)}"
    if value < 1:
        places = Decimal("0.0001")
    elif value < 1000:
        places = Decimal("0.01")
    else:
        places = Decimal("1")
    return str(value.quantize(places, rounding=ROUND_HALF_UP))


def shorten_eth_address(address: str) -> str:
    """Shorten an Ethereum address for display: '0x1234...abcd'."""
    if not address:
        return ""
    if len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"
