"""Per-log token pipeline: decode -> fast validation -> dispatch / watchlist.

Fast-path misses ("creator not indexed yet") hand the token to the slow
path, which runs in its own bounded pool with at most one validation per
token address in flight.
"""

import time
from dataclasses import dataclass, field

from loguru import logger

from sniper.parsers.chain.events import (
    EventDecodeError,
    ZoraCoinCreatedV4,
    decode_log,
    to_token_event,
)
from sniper.parsers.chain.models import RawLog
from sniper.parsers.dispatcher import AlertDispatcher
from sniper.parsers.metrics import PipelineMetrics
from sniper.parsers.models import AlertTrigger, CreatorInfo, TokenAlert, TokenEvent
from sniper.parsers.task_pool import TaskPool
from sniper.parsers.validation import ValidationEngine, calculate_creator_score
from sniper.parsers.watchlist import LiquidityWatchlist

# fast-path reasons that mean "no creator yet", not "creator rejected"
SLOW_PATH_REASONS = ("creator_missing", "creator_not_found_fast")


def parse_vip_accounts(value: str) -> dict[str, str]:
    """"0xabc=@label,0xdef=@other" -> {address: label}. Bad pairs are skipped."""
    accounts: dict[str, str] = {}
    for pair in value.split(","):
        address, sep, label = pair.strip().partition("=")
        address = address.strip().lower()
        if not sep or not address.startswith("0x") or len(address) != 42:
            continue
        accounts[address] = label.strip() or address
    return accounts


@dataclass
class PipelineConfig:
    alert_on_create: bool = False
    alert_on_liquidity: bool = True
    enable_slow_fallback: bool = True
    vip_accounts: dict[str, str] = field(default_factory=dict)


class TokenPipeline:
    def __init__(
        self,
        validator: ValidationEngine,
        watchlist: LiquidityWatchlist,
        dispatcher: AlertDispatcher,
        slow_pool: TaskPool,
        config: PipelineConfig | None = None,
        *,
        metrics: PipelineMetrics | None = None,
    ) -> None:
        self.validator = validator
        self.watchlist = watchlist
        self.dispatcher = dispatcher
        self.slow_pool = slow_pool
        self.config = config or PipelineConfig()
        self.metrics = metrics or PipelineMetrics()
        self._slow_in_flight: set[str] = set()

    @property
    def slow_in_flight(self) -> int:
        return len(self._slow_in_flight)

    async def handle(self, raw: RawLog) -> None:
        try:
            decoded = decode_log(raw)
        except EventDecodeError as e:
            self.metrics.incr("decode_errors")
            logger.warning(f"[INGEST] Cannot decode log {raw.dedup_key}: {e}")
            return
        if decoded is None:
            return

        if isinstance(decoded, ZoraCoinCreatedV4):
            vip_label = self._vip_label(decoded)
            if vip_label is None:
                return
            await self._handle_vip(to_token_event(decoded), vip_label)
            return

        event = to_token_event(decoded)
        self.metrics.incr("tokens_detected")
        logger.info(
            f"[INGEST] New {event.platform} token {event.symbol or '?'} ({event.address}) "
            f"creator={event.creator or '?'} block={event.block_number}"
        )

        started = time.monotonic()
        result = await self.validator.validate_fast(event)
        self.metrics.record_latency("fast_validation", (time.monotonic() - started) * 1000)

        if result.passes and result.creator_info is not None:
            self.metrics.incr("fast_passed")
            await self.on_passed(event, result.creator_info)
            return

        self.metrics.incr("fast_failed")
        if any(reason in SLOW_PATH_REASONS for reason in result.reasons):
            self.schedule_slow_validation(event)
        else:
            logger.info(f"[VALIDATION] {event.label} rejected: {', '.join(result.reasons)}")

    def _vip_label(self, event: ZoraCoinCreatedV4) -> str | None:
        for address in (event.payout_recipient, event.caller):
            if address and address in self.config.vip_accounts:
                return self.config.vip_accounts[address]
        return None

    async def _handle_vip(self, event: TokenEvent, label: str) -> None:
        self.metrics.incr("vip_posts")
        logger.info(f"[INGEST] VIP post {event.symbol or '?'} by {label} ({event.address})")
        info = CreatorInfo(platform="zora", username=label.lstrip("@"), neynar_score=1.0)
        if self.config.alert_on_create:
            await self._dispatch(event, info, AlertTrigger.CREATE)
        if self.config.alert_on_liquidity:
            self.watchlist.add(event, info)

    def schedule_slow_validation(self, event: TokenEvent) -> bool:
        if not self.config.enable_slow_fallback:
            logger.info(f"[VALIDATION] {event.label} not found on fast path, slow fallback disabled")
            return False
        key = event.address.lower()
        if key in self._slow_in_flight:
            logger.debug(f"[VALIDATION] Slow validation already running for {event.label}")
            return False
        self._slow_in_flight.add(key)
        logger.info(f"[VALIDATION] {event.label} not found on fast path, scheduling slow validation")
        self.slow_pool.submit(lambda: self._run_slow(event, key))
        return True

    async def _run_slow(self, event: TokenEvent, key: str) -> None:
        try:
            started = time.monotonic()
            result = await self.validator.validate_with_retry(event)
            self.metrics.record_latency("slow_validation", (time.monotonic() - started) * 1000)
            if result.passes and result.creator_info is not None:
                self.metrics.incr("slow_passed")
                await self.on_passed(event, result.creator_info)
            else:
                self.metrics.incr("slow_failed")
                logger.info(f"[VALIDATION] {event.label} rejected (slow): {', '.join(result.reasons)}")
        finally:
            self._slow_in_flight.discard(key)

    async def on_passed(self, event: TokenEvent, info: CreatorInfo) -> None:
        """Big accounts alert immediately; everyone else waits for liquidity."""
        if self.validator.policy.is_big_account(info):
            logger.info(
                f"[VALIDATION] {event.label} big account @{info.twitter_handle} "
                f"({info.twitter_followers:,} followers), alerting now"
            )
            await self._dispatch(event, info, AlertTrigger.BIG_ACCOUNT)
            return

        if self.config.alert_on_create:
            await self._dispatch(event, info, AlertTrigger.CREATE)
        if self.config.alert_on_liquidity:
            self.watchlist.add(event, info)
        elif not self.config.alert_on_create:
            logger.info(f"[VALIDATION] {event.label} passed but all alerts are disabled")

    async def _dispatch(self, event: TokenEvent, info: CreatorInfo, trigger: AlertTrigger) -> bool:
        alert = TokenAlert(
            token_address=event.address,
            platform=event.platform,
            creator_info=info,
            trigger=trigger,
            symbol=event.symbol,
            name=event.name,
            pool_address=event.pool_address,
            tx_hash=event.tx_hash,
            block_number=event.block_number,
            score=calculate_creator_score(info),
        )
        sent = await self.dispatcher.dispatch(alert)
        if sent:
            self.metrics.record_alert(trigger.value)
        return sent

    async def drain(self) -> None:
        await self.slow_pool.drain()
