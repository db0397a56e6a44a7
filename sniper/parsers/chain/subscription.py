"""Managed set of factory log watches with explicit resubscribe.

States: SUBSCRIBED -> RESUBSCRIBING -> SUBSCRIBED, and STOPPED (terminal).
A resubscribe unwatches everything, pauses briefly and watches again; it is
guarded by a cooldown so repeated staleness cannot cause resubscribe storms.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from sniper.parsers.chain.client import ChainRpcClient, LogsCallback, LogWatch
from sniper.parsers.metrics import PipelineMetrics


class SubscriptionState(Enum):
    IDLE = "idle"
    SUBSCRIBED = "subscribed"
    RESUBSCRIBING = "resubscribing"
    STOPPED = "stopped"


@dataclass(frozen=True)
class WatchSpec:
    label: str
    address: str
    topics: tuple[str, ...]
    # errors on critical watches count toward the resubscribe threshold
    critical: bool = True


class LogSubscription:
    def __init__(
        self,
        rpc: ChainRpcClient,
        specs: list[WatchSpec],
        on_logs: LogsCallback,
        *,
        max_consecutive_errors: int = 5,
        cooldown_sec: float = 600.0,
        pause_sec: float = 2.0,
        metrics: PipelineMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._rpc = rpc
        self.specs = specs
        self._on_logs = on_logs
        self.max_consecutive_errors = max_consecutive_errors
        self.cooldown_sec = cooldown_sec
        self.pause_sec = pause_sec
        self._metrics = metrics
        self._clock = clock
        self._sleep = sleep

        self.state = SubscriptionState.IDLE
        self.consecutive_errors = 0
        self.resubscribe_count = 0
        self._watches: dict[str, LogWatch] = {}
        self._last_resubscribe_at: float | None = None
        self._reconnect_task: asyncio.Task | None = None

    @property
    def watch_count(self) -> int:
        return len(self._watches)

    def subscribe(self) -> None:
        """Start one watch per WatchSpec. No-op once stopped."""
        if self.state == SubscriptionState.STOPPED:
            return
        for spec in self.specs:
            if spec.label in self._watches:
                continue
            self._watches[spec.label] = self._rpc.watch_logs(
                spec.label,
                spec.address,
                list(spec.topics),
                self._on_logs,
                on_error=lambda e, s=spec: self.record_error(s, e),
            )
        self.state = SubscriptionState.SUBSCRIBED
        logger.info(f"[SUBSCRIPTION] Watching {len(self._watches)} log streams")

    async def unwatch_all(self) -> None:
        watches = list(self._watches.values())
        self._watches.clear()
        for watch in watches:
            await watch.unwatch()

    def record_activity(self) -> None:
        self.consecutive_errors = 0

    def record_error(self, spec: WatchSpec, error: BaseException) -> None:
        if not spec.critical:
            logger.warning(f"[SUBSCRIPTION] {spec.label} watch error (non-critical): {error}")
            return
        self.consecutive_errors += 1
        logger.error(
            f"[SUBSCRIPTION] {spec.label} watch error "
            f"({self.consecutive_errors}/{self.max_consecutive_errors}): {error}"
        )
        if self.consecutive_errors >= self.max_consecutive_errors:
            self.schedule_reconnect("consecutive watch errors")

    def schedule_reconnect(self, reason: str) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self.reconnect(reason))

    async def reconnect(self, reason: str) -> bool:
        """Unwatch all, pause, watch again. Returns False when skipped."""
        if self.state in (SubscriptionState.RESUBSCRIBING, SubscriptionState.STOPPED):
            return False
        now = self._clock()
        if (
            self._last_resubscribe_at is not None
            and now - self._last_resubscribe_at < self.cooldown_sec
        ):
            remaining = self.cooldown_sec - (now - self._last_resubscribe_at)
            logger.warning(
                f"[SUBSCRIPTION] Resubscribe suppressed ({reason}), cooldown {remaining:.0f}s left"
            )
            return False

        self.state = SubscriptionState.RESUBSCRIBING
        self._last_resubscribe_at = now
        logger.warning(f"[SUBSCRIPTION] Resubscribing: {reason}")
        try:
            await self.unwatch_all()
            await self._sleep(self.pause_sec)
        finally:
            if self.state == SubscriptionState.RESUBSCRIBING:
                self.state = SubscriptionState.SUBSCRIBED
        if self.state == SubscriptionState.STOPPED:
            return False
        self.subscribe()
        self.consecutive_errors = 0
        self.resubscribe_count += 1
        if self._metrics:
            self._metrics.incr("resubscribes")
        logger.info(f"[SUBSCRIPTION] Resubscribed ({self.resubscribe_count} total)")
        return True

    async def stop(self) -> None:
        self.state = SubscriptionState.STOPPED
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
        await self.unwatch_all()
