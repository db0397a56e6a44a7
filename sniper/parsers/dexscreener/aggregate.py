"""Collapse a token's DexScreener pairs into one liquidity/volume snapshot.

Aggregation rule:
- drop pairs with < $100 liquidity, pairs younger than 5 minutes, and pairs
  with neither 24h transactions nor 24h volume; if that drops everything,
  aggregate over all pairs instead
- liquidity, volume and txn counts are summed
- price is the liquidity-weighted mean, or the best pair's price when no
  pair carries both a price and liquidity
- best pair is the one with the highest liquidity; the first seen wins ties
"""

import math
import time
from dataclasses import dataclass, field
from decimal import Decimal

from sniper.parsers.dexscreener.models import DexScreenerPair, DexScreenerTxnsByPeriod

MIN_PAIR_LIQUIDITY_USD = 100.0
MIN_PAIR_AGE_SEC = 5 * 60


@dataclass
class BestPair:
    pair_address: str
    dex_id: str
    url: str | None
    liquidity_usd: float
    market_cap: float | None = None
    fdv: float | None = None
    labels: list[str] = field(default_factory=list)


@dataclass
class TokenMetrics:
    token: str
    total_liquidity_usd: float = 0.0
    total_volume_h1: float = 0.0
    total_volume_h24: float = 0.0
    total_buys_h1: int = 0
    total_sells_h1: int = 0
    total_buys_h24: int = 0
    total_sells_h24: int = 0
    price_usd: float | None = None
    price_change_h1: float | None = None
    price_change_h24: float | None = None
    best_pair: BestPair | None = None
    pair_count: int = 0

    @property
    def buy_sell_ratio_h1(self) -> float:
        if self.total_sells_h1 == 0:
            return float(self.total_buys_h1)
        return round(self.total_buys_h1 / self.total_sells_h1, 3)


def _num(value: Decimal | str | int | float | None) -> float | None:
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def _txn_count(txns: DexScreenerTxnsByPeriod | None, window: str, side: str) -> int:
    if txns is None:
        return 0
    stats = getattr(txns, window, None)
    if stats is None:
        return 0
    return getattr(stats, side) or 0


def _liquidity(pair: DexScreenerPair) -> float:
    if pair.liquidity is None:
        return 0.0
    return _num(pair.liquidity.usd) or 0.0


def _volume(pair: DexScreenerPair, window: str) -> float:
    if pair.volume is None:
        return 0.0
    return _num(getattr(pair.volume, window)) or 0.0


def filter_valid_pairs(pairs: list[DexScreenerPair], now: float | None = None) -> list[DexScreenerPair]:
    now_ms = (time.time() if now is None else now) * 1000
    valid = []
    for pair in pairs:
        if _liquidity(pair) < MIN_PAIR_LIQUIDITY_USD:
            continue
        if pair.pairCreatedAt and now_ms - pair.pairCreatedAt < MIN_PAIR_AGE_SEC * 1000:
            continue
        txns_h24 = _txn_count(pair.txns, "h24", "buys") + _txn_count(pair.txns, "h24", "sells")
        if txns_h24 == 0 and _volume(pair, "h24") == 0:
            continue
        valid.append(pair)
    return valid


def aggregate_token_metrics(
    token: str,
    pairs: list[DexScreenerPair],
    now: float | None = None,
) -> TokenMetrics:
    """Aggregate pairs into TokenMetrics. `now` is unix seconds (defaults to time.time())."""
    pairs_to_use = filter_valid_pairs(pairs, now) or pairs
    metrics = TokenMetrics(token=token, pair_count=len(pairs_to_use))

    weighted_num = 0.0
    weighted_den = 0.0
    best: DexScreenerPair | None = None
    best_liquidity = 0.0

    for pair in pairs_to_use:
        liquidity = _liquidity(pair)
        metrics.total_liquidity_usd += liquidity
        metrics.total_volume_h1 += _volume(pair, "h1")
        metrics.total_volume_h24 += _volume(pair, "h24")
        metrics.total_buys_h1 += _txn_count(pair.txns, "h1", "buys")
        metrics.total_sells_h1 += _txn_count(pair.txns, "h1", "sells")
        metrics.total_buys_h24 += _txn_count(pair.txns, "h24", "buys")
        metrics.total_sells_h24 += _txn_count(pair.txns, "h24", "sells")

        price = _num(pair.priceUsd)
        if price and liquidity > 0:
            weighted_num += price * liquidity
            weighted_den += liquidity

        # strict > keeps the first pair on ties
        if liquidity > best_liquidity:
            best_liquidity = liquidity
            best = pair

    if weighted_den > 0:
        metrics.price_usd = weighted_num / weighted_den
    elif best is not None:
        metrics.price_usd = _num(best.priceUsd)

    if best is not None:
        if best.priceChange is not None:
            metrics.price_change_h1 = _num(best.priceChange.h1)
            metrics.price_change_h24 = _num(best.priceChange.h24)
        metrics.best_pair = BestPair(
            pair_address=best.pairAddress,
            dex_id=best.dexId,
            url=best.url,
            liquidity_usd=best_liquidity,
            market_cap=_num(best.marketCap),
            fdv=_num(best.fdv),
            labels=list(best.labels),
        )
    return metrics
