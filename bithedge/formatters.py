"""Display formatting for money, BTC amounts, percentages and durations."""

from __future__ import annotations

import math
from datetime import UTC, datetime

SATS_PER_BTC = 100_000_000
MICRO_STX_PER_STX = 1_000_000
CENTS_PER_USD = 100

_COMPACT_SUFFIXES = ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "K"))


def _group(value: float, min_digits: int, max_digits: int) -> str:
    """Format with thousands separators and between min/max fraction digits."""
    text = f"{value:,.{max_digits}f}"
    if max_digits > min_digits and "." in text:
        whole, frac = text.split(".")
        frac = frac.rstrip("0")
        if len(frac) < min_digits:
            frac = frac.ljust(min_digits, "0")
        text = f"{whole}.{frac}" if frac else whole
    return text


def _signed(value: float, body: str, prefix: str = "") -> str:
    if value < 0:
        return f"-{prefix}{body}"
    return f"{prefix}{body}"


def format_btc(value: float, decimals: int = 8) -> str:
    return f"{_group(value, decimals, decimals)} BTC"


def format_usd(value: float, decimals: int = 2) -> str:
    return _signed(value, _group(abs(value), decimals, decimals), "$")


def format_percentage(value: float, decimals: int = 2) -> str:
    """Format a ratio (0.05 is 5%) as a percentage string."""
    return f"{_group(value * 100, decimals, decimals)}%"


def format_duration(days: int) -> str:
    if days % 365 == 0 and days >= 365:
        years = days // 365
        return f"{years} {'year' if years == 1 else 'years'}"
    if days % 30 == 0 and days >= 30:
        months = days // 30
        return f"{months} {'month' if months == 1 else 'months'}"
    return f"{days} {'day' if days == 1 else 'days'}"


def btc_to_usd(btc_value: float, btc_price: float) -> float:
    return btc_value * btc_price


def usd_to_btc(usd_value: float, btc_price: float) -> float:
    """Convert USD to BTC at ``btc_price``.

    A zero price yields signed infinity, or NaN when the USD value is zero too.
    """
    if btc_price == 0:
        if usd_value == 0 or math.isnan(usd_value):
            return math.nan
        return math.copysign(math.inf, usd_value) * math.copysign(1.0, btc_price)
    return usd_value / btc_price


def format_usd_amount(
    value: float,
    *,
    minimum_fraction_digits: int = 2,
    maximum_fraction_digits: int = 2,
    compact: bool = False,
) -> str:
    magnitude = abs(value)
    suffix = ""
    if compact:
        for threshold, label in _COMPACT_SUFFIXES:
            if magnitude >= threshold:
                magnitude /= threshold
                suffix = label
                break
    body = _group(magnitude, minimum_fraction_digits, maximum_fraction_digits)
    return _signed(value, body + suffix, "$")


def format_btc_amount(
    value: float,
    *,
    minimum_fraction_digits: int = 2,
    maximum_fraction_digits: int = 8,
    include_suffix: bool = True,
) -> str:
    formatted = _group(value, minimum_fraction_digits, maximum_fraction_digits)
    return f"{formatted} BTC" if include_suffix else formatted


def format_percent(
    value: float,
    *,
    minimum_fraction_digits: int = 2,
    maximum_fraction_digits: int = 2,
) -> str:
    """Format a value that is already in percent (5 is 5%)."""
    return f"{_group(value, minimum_fraction_digits, maximum_fraction_digits)}%"


def format_timestamp(timestamp_ms: int, *, include_time: bool = True) -> str:
    """Render a millisecond timestamp as ``Jan 5, 2025, 02:30 PM`` (UTC)."""
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)
    date_part = f"{moment:%b} {moment.day}, {moment.year}"
    if not include_time:
        return date_part
    return f"{date_part}, {moment:%I:%M %p}"


def btc_to_sats(btc: float) -> int:
    return int(round(btc * SATS_PER_BTC))


def sats_to_btc(sats: int) -> float:
    return sats / SATS_PER_BTC


def stx_to_micro_stx(stx: float) -> int:
    return int(round(stx * MICRO_STX_PER_STX))


def micro_stx_to_stx(micro_stx: int) -> float:
    return micro_stx / MICRO_STX_PER_STX


def usd_to_cents(usd: float) -> int:
    return int(round(usd * CENTS_PER_USD))


def cents_to_usd(cents: int) -> float:
    return cents / CENTS_PER_USD
