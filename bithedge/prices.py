"""Spot BTC price lookup for quotes and settlement checks."""

from __future__ import annotations

from . import config as cfg
from .http_utils import RequestOptions, build_session, cached_json_request

COINGECKO_IDS = {
    "BTC-USD": ("bitcoin", "usd"),
    "STX-USD": ("stacks", "usd"),
}

_COINGECKO_SESSION = build_session({"Accept": "application/json", "User-Agent": "bithedge/1.0"})


def fetch_spot_price(
    symbol: str = "BTC-USD", *, force_refresh: bool = False, ttl_seconds: int = 60
) -> float:
    if symbol not in COINGECKO_IDS:
        raise ValueError(f"CoinGecko mapping not defined for {symbol}")
    coin_id, vs_currency = COINGECKO_IDS[symbol]
    headers = {"x-cg-demo-api-key": cfg.COINGECKO_API_KEY} if cfg.COINGECKO_API_KEY else None
    payload = cached_json_request(
        RequestOptions(
            prefix=f"coingecko_spot_{coin_id}_{vs_currency}",
            session=_COINGECKO_SESSION,
            method="GET",
            url=f"{cfg.COINGECKO_BASE}/simple/price",
            params={"ids": coin_id, "vs_currencies": vs_currency},
            headers=headers,
            ttl_seconds=ttl_seconds,
            force_refresh=force_refresh,
        )
    )
    try:
        return float(payload[coin_id][vs_currency])
    except (KeyError, TypeError) as exc:
        raise RuntimeError(f"Unexpected CoinGecko payload for {symbol}: {payload}") from exc


def fetch_btc_price(*, force_refresh: bool = False) -> float:
    return fetch_spot_price("BTC-USD", force_refresh=force_refresh)
