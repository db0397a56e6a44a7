"""Factory log ingestion: dedup, cursor tracking, backfill and stream health.

Dedup marking happens synchronously inside accept_logs(), in delivery
order, before any handler task is scheduled. At-least-once delivery from
backfill, resubscribes and the stale probe is absorbed here, not by the
cursor.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from sniper.parsers.cache import TTLCache
from sniper.parsers.chain.client import ChainRpcClient, ChainRpcError
from sniper.parsers.chain.models import RawLog
from sniper.parsers.chain.subscription import LogSubscription, WatchSpec
from sniper.parsers.cursor import CursorStore
from sniper.parsers.metrics import PipelineMetrics
from sniper.parsers.task_pool import TaskPool
from sniper.parsers.zora.client import ZoraClient

LogHandler = Callable[[RawLog], Awaitable[None]]


@dataclass
class IngestionConfig:
    dedup_ttl_sec: float = 30 * 60
    dedup_cache_size: int = 50_000
    concurrency: int = 4
    enable_backfill: bool = True
    backfill_blocks: int = 50
    backfill_max_logs: int = 200
    heartbeat_interval_sec: float = 60.0
    event_stale_threshold_sec: float = 10 * 60
    stale_warning_interval_sec: float = 5 * 60
    stale_probe_interval_sec: float = 5 * 60
    stale_probe_blocks: int = 500


class EventIngestor:
    def __init__(
        self,
        rpc: ChainRpcClient,
        cursor: CursorStore,
        handler: LogHandler,
        specs: list[WatchSpec],
        config: IngestionConfig | None = None,
        *,
        pool: TaskPool | None = None,
        metrics: PipelineMetrics | None = None,
        zora: ZoraClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rpc = rpc
        self.cursor = cursor
        self._handler = handler
        self.specs = specs
        self.config = config or IngestionConfig()
        self.pool = pool or TaskPool(self.config.concurrency, "ingest")
        self.metrics = metrics or PipelineMetrics()
        self._zora = zora
        self._clock = clock
        self.subscription: LogSubscription | None = None
        self._dedup: TTLCache[str, bool] = TTLCache(
            self.config.dedup_cache_size, self.config.dedup_ttl_sec, clock=clock
        )

        self._started_at = clock()
        self.last_event_at: float | None = None
        self._last_head: int | None = None
        self._last_head_change_at: float | None = None
        self._last_heartbeat_head: int | None = None
        self._last_stall_warning_at: float | None = None
        self._last_stale_warning_at: float | None = None
        self._last_probe_at: float | None = None

    @property
    def dedup(self) -> TTLCache[str, bool]:
        return self._dedup

    def attach(self, subscription: LogSubscription) -> None:
        self.subscription = subscription

    def accept_logs(self, logs: list[RawLog]) -> int:
        """Dedup, advance cursor, submit handlers. Returns the number of new logs."""
        accepted = 0
        for log in logs:
            self.metrics.incr("logs_received")
            key = log.dedup_key
            if self._dedup.has(key):
                self.metrics.incr("logs_duplicate")
                continue
            self._dedup.set(key, True)
            self.cursor.mark(log.blockNumber)
            self.last_event_at = self._clock()
            if self.subscription is not None:
                self.subscription.record_activity()
            self.pool.submit(lambda log=log, key=key: self._handle(log, key))
            accepted += 1
        return accepted

    async def _handle(self, log: RawLog, key: str) -> None:
        try:
            await self._handler(log)
        except Exception as e:
            # un-mark so a later backfill / resubscribe can retry this log
            self._dedup.delete(key)
            self.metrics.incr("handler_errors")
            logger.opt(exception=True).error(f"[INGEST] Handler failed for {key}: {e}")

    async def initialize_cursor(self) -> int:
        """Load the cursor, seeding it to chain head on first run. Returns head.

        Raises ChainRpcError when the head cannot be read.
        """
        head = await self._rpc.get_block_number()
        self._last_head = head
        self._last_head_change_at = self._clock()
        if self.cursor.load() is None:
            self.cursor.mark(head)
            logger.info(f"[CURSOR] No cursor found, starting from head {head}")
        return head

    async def _query_logs(self, from_block: int, to_block: int) -> list[RawLog]:
        logs: list[RawLog] = []
        for spec in self.specs:
            for topic in spec.topics:
                try:
                    logs.extend(await self._rpc.get_logs(spec.address, [topic], from_block, to_block))
                except ChainRpcError as e:
                    logger.warning(f"[INGEST] getLogs {spec.label} {from_block}-{to_block} failed: {e}")
        return logs

    async def backfill(self, head: int | None = None) -> int:
        """Replay a bounded window behind the cursor through accept_logs()."""
        if not self.config.enable_backfill or self.cursor.block is None:
            return 0
        to_block = head if head is not None else await self._rpc.get_block_number()
        from_block = max(0, self.cursor.block - self.config.backfill_blocks)
        if from_block >= to_block:
            return 0

        logs = await self._query_logs(from_block, to_block)
        logs.sort(key=lambda log: log.order_key)
        if len(logs) > self.config.backfill_max_logs:
            logger.warning(
                f"[INGEST] Backfill found {len(logs)} logs, keeping newest {self.config.backfill_max_logs}"
            )
            logs = logs[-self.config.backfill_max_logs:]
        accepted = self.accept_logs(logs)
        logger.info(
            f"[INGEST] Backfill {from_block}-{to_block}: {len(logs)} logs, {accepted} new"
        )
        return accepted

    async def probe_recent(self, head: int) -> int:
        """Look for logs the live stream missed. Returns how many were new."""
        from_block = max(0, head - self.config.stale_probe_blocks)
        logs = await self._query_logs(from_block, head)
        logs.sort(key=lambda log: log.order_key)
        new = self.accept_logs(logs)
        logger.info(
            f"[INGEST] Stale probe {from_block}-{head}: {len(logs)} logs, {new} missed by subscription"
        )
        return new

    async def health_check_once(self) -> None:
        now = self._clock()
        try:
            head = await self._rpc.get_block_number()
        except ChainRpcError as e:
            logger.warning(f"[INGEST] Heartbeat could not read head: {e}")
            return

        progress = head - self._last_heartbeat_head if self._last_heartbeat_head is not None else 0
        self._last_heartbeat_head = head
        if self._last_head is None or head > self._last_head:
            self._last_head = head
            self._last_head_change_at = now

        since_event = now - (self.last_event_at if self.last_event_at is not None else self._started_at)
        logger.info(
            f"[INGEST] Heartbeat head={head} (+{progress} blocks) "
            f"last_event={since_event:.0f}s ago cursor={self.cursor.block}"
        )

        if self._zora is not None:
            await self._zora.check_health()

        last_change = self._last_head_change_at if self._last_head_change_at is not None else now
        head_stalled_for = now - last_change
        if head_stalled_for >= self.config.heartbeat_interval_sec:
            # node problem, resubscribing would not help
            if self._rate_limited("_last_stall_warning_at", now):
                logger.warning(f"[INGEST] Chain head stuck at {head} for {head_stalled_for:.0f}s")
            return

        if since_event < self.config.event_stale_threshold_sec:
            return
        if self._rate_limited("_last_stale_warning_at", now):
            logger.warning(f"[INGEST] No events for {since_event / 60:.0f}min while blocks advance")

        if self._last_probe_at is not None and now - self._last_probe_at < self.config.stale_probe_interval_sec:
            return
        self._last_probe_at = now
        found = await self.probe_recent(head)
        if found > 0 and self.subscription is not None:
            await self.subscription.reconnect(f"stale probe found {found} missed logs")

    def _rate_limited(self, attr: str, now: float) -> bool:
        last = getattr(self, attr)
        if last is not None and now - last < self.config.stale_warning_interval_sec:
            return False
        setattr(self, attr, now)
        return True

    async def run_heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.config.heartbeat_interval_sec)
            try:
                await self.health_check_once()
            except Exception as e:
                logger.opt(exception=True).error(f"[INGEST] Heartbeat failed: {e}")

    def prune(self) -> int:
        return self._dedup.prune()
