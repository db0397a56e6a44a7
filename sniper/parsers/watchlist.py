"""Liquidity watchlist: validated tokens waiting for enough DEX liquidity.

Pending -> LiquidityMet (dispatch, removed)
Pending -> Expired (older than max age, removed silently)
Pending -> Pending (no data yet / below threshold)

Finished tokens (dispatched or expired) are remembered for the max age so
a late duplicate detection cannot re-add them.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from sniper.parsers.cache import TTLCache
from sniper.parsers.dexscreener.aggregate import aggregate_token_metrics
from sniper.parsers.dexscreener.client import DexScreenerApiError, DexScreenerClient
from sniper.parsers.dispatcher import AlertDispatcher
from sniper.parsers.metrics import PipelineMetrics
from sniper.parsers.models import AlertTrigger, CreatorInfo, TokenAlert, TokenEvent
from sniper.parsers.validation import calculate_creator_score

PROGRESS_LOG_EVERY = 6


@dataclass
class WatchlistConfig:
    min_liquidity_usd: float = 5_000.0
    check_interval_sec: float = 10.0
    max_age_sec: float = 60 * 60
    concurrency: int = 4
    alert_on_liquidity: bool = True
    liquidity_alert_after_create: bool = False


@dataclass
class WatchlistEntry:
    event: TokenEvent
    creator_info: CreatorInfo
    added_at: float
    last_checked: float | None = None
    check_count: int = 0


class LiquidityWatchlist:
    def __init__(
        self,
        dexscreener: DexScreenerClient,
        dispatcher: AlertDispatcher,
        config: WatchlistConfig | None = None,
        *,
        metrics: PipelineMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._dexscreener = dexscreener
        self._dispatcher = dispatcher
        self.config = config or WatchlistConfig()
        self._metrics = metrics
        self._clock = clock
        self._entries: dict[str, WatchlistEntry] = {}
        self._finished: TTLCache[str, str] = TTLCache(
            50_000, max(self.config.max_age_sec, 60.0), clock=clock
        )
        self._checking = False

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, token_address: object) -> bool:
        return isinstance(token_address, str) and token_address.lower() in self._entries

    def get(self, token_address: str) -> WatchlistEntry | None:
        return self._entries.get(token_address.lower())

    def add(self, event: TokenEvent, creator_info: CreatorInfo) -> bool:
        """Start watching a token. False if already watched or already finished."""
        # check + insert with no await in between
        key = event.address.lower()
        if key in self._entries:
            return False
        if self._finished.has(key):
            logger.debug(f"[WATCHLIST] {event.label} already {self._finished.get(key)}, not re-adding")
            return False
        self._entries[key] = WatchlistEntry(event=event, creator_info=creator_info, added_at=self._clock())
        logger.info(
            f"[WATCHLIST] Added {event.label} ({event.platform}) - waiting for "
            f"${self.config.min_liquidity_usd:,.0f} liquidity ({len(self._entries)} watched)"
        )
        return True

    def _finish(self, key: str, outcome: str) -> WatchlistEntry | None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._finished.set(key, outcome)
        return entry

    async def check_once(self) -> int:
        """One poll over all entries. Returns how many alerts were dispatched."""
        if self._checking:
            return 0
        self._checking = True
        try:
            return await self._check_all()
        finally:
            self._checking = False

    async def _check_all(self) -> int:
        now = self._clock()
        due: list[tuple[str, WatchlistEntry]] = []
        for key, entry in list(self._entries.items()):
            age = now - entry.added_at
            if age >= self.config.max_age_sec:
                self._finish(key, "expired")
                if self._metrics:
                    self._metrics.incr("watchlist_expired")
                logger.info(
                    f"[WATCHLIST] {entry.event.label} expired after {age / 60:.0f}min "
                    f"({entry.check_count} checks)"
                )
                continue
            if entry.last_checked is not None and now - entry.last_checked < self.config.check_interval_sec:
                continue
            entry.last_checked = now
            entry.check_count += 1
            due.append((key, entry))

        if not due:
            return 0

        semaphore = asyncio.Semaphore(max(1, self.config.concurrency))

        async def _guarded(key: str, entry: WatchlistEntry) -> bool:
            async with semaphore:
                try:
                    return await self._check_entry(key, entry)
                except Exception as e:
                    logger.opt(exception=True).error(
                        f"[WATCHLIST] Check failed for {entry.event.label}: {e}"
                    )
                    return False

        results = await asyncio.gather(*(_guarded(k, e) for k, e in due))
        return sum(1 for dispatched in results if dispatched)

    async def _check_entry(self, key: str, entry: WatchlistEntry) -> bool:
        event = entry.event
        try:
            pairs = await self._dexscreener.get_token_pairs(event.address)
        except DexScreenerApiError as e:
            logger.warning(f"[WATCHLIST] DexScreener lookup failed for {event.label}: {e}")
            return False

        if not pairs:
            if entry.check_count % PROGRESS_LOG_EVERY == 0:
                logger.info(
                    f"[WATCHLIST] {event.label} no pairs yet "
                    f"(check #{entry.check_count}, age {(self._clock() - entry.added_at) / 60:.1f}min)"
                )
            return False

        metrics = aggregate_token_metrics(event.address, pairs)
        liquidity = metrics.total_liquidity_usd
        if liquidity < self.config.min_liquidity_usd:
            logger.debug(
                f"[WATCHLIST] {event.label} liquidity ${liquidity:,.0f} "
                f"< ${self.config.min_liquidity_usd:,.0f}"
            )
            return False

        # removed before any await so a concurrent tick cannot dispatch twice
        if self._finish(key, "dispatched") is None:
            return False
        logger.info(f"[WATCHLIST] {event.label} reached ${liquidity:,.0f} liquidity")

        if not self.config.alert_on_liquidity:
            logger.info(f"[WATCHLIST] Liquidity alerts disabled, dropping {event.label}")
            return False
        if (
            not self.config.liquidity_alert_after_create
            and self._dispatcher.was_create_alerted(event.address)
        ):
            logger.info(f"[WATCHLIST] {event.label} already create-alerted, skipping liquidity alert")
            return False

        best = metrics.best_pair
        alert = TokenAlert(
            token_address=event.address,
            platform=event.platform,
            creator_info=entry.creator_info,
            trigger=AlertTrigger.LIQUIDITY,
            liquidity_usd=liquidity,
            symbol=event.symbol,
            name=event.name,
            pool_address=event.pool_address or (best.pair_address if best else None),
            tx_hash=event.tx_hash,
            block_number=event.block_number,
            volume_h24=metrics.total_volume_h24,
            buys_h1=metrics.total_buys_h1,
            sells_h1=metrics.total_sells_h1,
            price_change_h1=metrics.price_change_h1,
            score=calculate_creator_score(entry.creator_info),
        )
        sent = await self._dispatcher.dispatch(alert)
        if sent and self._metrics:
            self._metrics.record_alert(AlertTrigger.LIQUIDITY.value)
        return sent

    async def run(self) -> None:
        logger.info(
            f"[WATCHLIST] Poller started (every {self.config.check_interval_sec:.0f}s, "
            f"max age {self.config.max_age_sec / 60:.0f}min)"
        )
        while True:
            await asyncio.sleep(self.config.check_interval_sec)
            if self._entries:
                await self.check_once()
