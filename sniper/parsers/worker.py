"""Sniper worker: builds every component from settings and runs the loops."""

import asyncio
from pathlib import Path

from loguru import logger

from config.settings import Settings, settings
from sniper.parsers.chain.client import ChainRpcClient
from sniper.parsers.chain.events import (
    CLANKER_TOKEN_CREATED_TOPIC,
    ZORA_COIN_CREATED_V4_TOPIC,
    ZORA_CREATOR_TOPICS,
)
from sniper.parsers.chain.subscription import LogSubscription, WatchSpec
from sniper.parsers.clanker.client import ClankerClient
from sniper.parsers.creator_resolver import CreatorResolver
from sniper.parsers.cursor import CursorStore
from sniper.parsers.dexscreener.client import DexScreenerClient
from sniper.parsers.dispatcher import LogAlertDispatcher
from sniper.parsers.http_guard import GuardedHttpClient, RequestPolicy
from sniper.parsers.ingestion import EventIngestor, IngestionConfig
from sniper.parsers.metrics import PipelineMetrics
from sniper.parsers.neynar.client import NeynarClient
from sniper.parsers.pipeline import PipelineConfig, TokenPipeline, parse_vip_accounts
from sniper.parsers.task_pool import TaskPool
from sniper.parsers.twitter.client import TwitterClient
from sniper.parsers.validation import SpamGuard, ValidationEngine, ValidationPolicy
from sniper.parsers.watchlist import LiquidityWatchlist, WatchlistConfig
from sniper.parsers.zora.client import ZoraClient

SHUTDOWN_DRAIN_TIMEOUT_SEC = 10.0


def parse_fids(value: str) -> frozenset[int]:
    return frozenset(int(part) for part in value.split(",") if part.strip().isdigit())


def build_watch_specs(cfg: Settings) -> list[WatchSpec]:
    """One live watch per factory stream. VIP content coins are best-effort."""
    return [
        WatchSpec("clanker", cfg.clanker_factory.lower(), (CLANKER_TOKEN_CREATED_TOPIC,)),
        WatchSpec("zora", cfg.zora_factory.lower(), ZORA_CREATOR_TOPICS),
        WatchSpec("zora-vip", cfg.zora_factory.lower(), (ZORA_COIN_CREATED_V4_TOPIC,), critical=False),
    ]


def build_validation_policy(cfg: Settings) -> ValidationPolicy:
    return ValidationPolicy(
        min_twitter_followers=cfg.min_twitter_followers,
        min_twitter_floor=cfg.min_twitter_floor,
        min_farcaster_followers=cfg.min_farcaster_followers,
        neynar_gate_enabled=cfg.neynar_gate_enabled,
        min_neynar_score=cfg.min_neynar_score,
        platform_fids=parse_fids(cfg.platform_fids),
        fast_timeout_sec=cfg.fast_timeout_sec,
        slow_retries=cfg.slow_validation_retries,
    )


def build_ingestion_config(cfg: Settings) -> IngestionConfig:
    return IngestionConfig(
        dedup_ttl_sec=cfg.dedup_ttl_sec,
        dedup_cache_size=cfg.dedup_cache_size,
        concurrency=cfg.event_concurrency,
        enable_backfill=cfg.enable_backfill,
        backfill_blocks=cfg.backfill_blocks,
        backfill_max_logs=cfg.backfill_max_logs,
        heartbeat_interval_sec=cfg.heartbeat_interval_sec,
        event_stale_threshold_sec=cfg.event_stale_threshold_sec,
        stale_warning_interval_sec=cfg.stale_warning_interval_sec,
        stale_probe_interval_sec=cfg.stale_probe_interval_sec,
        stale_probe_blocks=cfg.stale_probe_blocks,
    )


def build_watchlist_config(cfg: Settings) -> WatchlistConfig:
    return WatchlistConfig(
        min_liquidity_usd=cfg.min_liquidity_usd,
        check_interval_sec=cfg.watchlist_check_interval_sec,
        max_age_sec=cfg.watchlist_max_age_sec,
        concurrency=cfg.watchlist_concurrency,
        alert_on_liquidity=cfg.alert_on_liquidity,
        liquidity_alert_after_create=cfg.liquidity_alert_after_create,
    )


def _policy(host_key: str, concurrency: int, timeout_sec: float, **kwargs) -> RequestPolicy:
    return RequestPolicy(host_key=host_key, concurrency=concurrency, timeout_sec=timeout_sec, **kwargs)


async def _prune_loop(
    interval_sec: float,
    ingestor: EventIngestor,
    resolver: CreatorResolver,
    spam_guard: SpamGuard,
) -> None:
    while True:
        await asyncio.sleep(interval_sec)
        dedup = ingestor.prune()
        lookups = resolver.prune()
        spam = spam_guard.prune()
        logger.info(f"[SNIPER] Pruned dedup={dedup} lookups={lookups} creators={spam}")


async def _stats_reporter(
    interval_sec: float,
    metrics: PipelineMetrics,
    subscription: LogSubscription,
    watchlist: LiquidityWatchlist,
    pipeline: TokenPipeline,
    ingest_pool: TaskPool,
) -> None:
    """Log sniper stats every interval."""
    while True:
        await asyncio.sleep(interval_sec)
        parts = [
            f"sub: {subscription.state.value} ({subscription.watch_count} watches)",
            f"watchlist: {len(watchlist)}",
            f"ingest queue: {ingest_pool.pending}",
            f"slow in-flight: {pipeline.slow_in_flight}",
            metrics.format_stats_line(),
        ]
        logger.info(f"[STATS] {' | '.join(parts)}")


async def run_sniper(cfg: Settings = settings) -> None:
    """Entry point: resume from cursor, backfill, subscribe, run loops until cancelled."""
    metrics = PipelineMetrics()
    http = GuardedHttpClient(
        default_policy=RequestPolicy(
            concurrency=cfg.http_host_concurrency, timeout_sec=cfg.http_timeout_sec
        )
    )
    rpc = ChainRpcClient(cfg.http_rpc_url, cfg.ws_rpc_url, timeout=cfg.rpc_timeout_sec)

    neynar = NeynarClient(
        http,
        cfg.neynar_api_key,
        api_base=cfg.neynar_api_base,
        hub_base=cfg.neynar_hub_base,
        policy=_policy("neynar", cfg.neynar_concurrency, cfg.neynar_timeout_sec),
    )
    twitter = TwitterClient(
        http,
        cfg.twitter_api_key,
        base_url=cfg.twitter_api_base,
        policy=_policy(
            "twitter", cfg.twitter_concurrency, cfg.twitter_timeout_sec,
            max_retries=2, initial_delay_sec=0.25,
        ),
    )
    zora = ZoraClient(
        http,
        cfg.zora_api_key,
        api_base=cfg.zora_api_base,
        api_base_fallback=cfg.zora_api_base_fallback,
        policy=_policy("zora", cfg.zora_concurrency, cfg.zora_timeout_sec, max_retries=1),
    )
    clanker = ClankerClient(
        http,
        api_url=cfg.clanker_api_url,
        policy=_policy("clanker", cfg.clanker_concurrency, cfg.clanker_timeout_sec, max_retries=1),
    )
    dexscreener = DexScreenerClient(
        http,
        base_url=cfg.dexscreener_api_base,
        policy=_policy(
            "dexscreener", cfg.dexscreener_concurrency, cfg.dexscreener_timeout_sec,
            max_retries=2, initial_delay_sec=1.0,
        ),
    )
    if not neynar.enabled:
        logger.warning("[SNIPER] NEYNAR_API_KEY not set - fast path will find no creators")
    if not twitter.enabled:
        logger.warning("[SNIPER] TWITTER_API_KEY not set - Twitter followers unavailable")

    policy = build_validation_policy(cfg)
    resolver = CreatorResolver(
        neynar,
        twitter,
        clanker,
        zora,
        platform_fids=policy.platform_fids,
        cache_size=cfg.lookup_cache_size,
        found_ttl_sec=cfg.lookup_cache_ttl_sec,
        not_found_ttl_sec=cfg.lookup_not_found_ttl_sec,
    )
    spam_guard = SpamGuard(cfg.max_tokens_per_creator, cfg.creator_window_sec)
    validator = ValidationEngine(resolver, policy, spam_guard)

    dispatcher = LogAlertDispatcher(
        Path(cfg.data_dir) / cfg.passed_tokens_log,
        policy,
        create_dedup_ttl=cfg.create_alert_dedup_sec,
    )
    watchlist = LiquidityWatchlist(
        dexscreener, dispatcher, build_watchlist_config(cfg), metrics=metrics
    )
    slow_pool = TaskPool(cfg.slow_validation_concurrency, "slow")
    vip_accounts = parse_vip_accounts(cfg.zora_vip_accounts)
    pipeline = TokenPipeline(
        validator,
        watchlist,
        dispatcher,
        slow_pool,
        PipelineConfig(
            alert_on_create=cfg.alert_on_create,
            alert_on_liquidity=cfg.alert_on_liquidity,
            enable_slow_fallback=cfg.enable_slow_fallback,
            vip_accounts=vip_accounts,
        ),
        metrics=metrics,
    )

    specs = build_watch_specs(cfg)
    cursor = CursorStore(Path(cfg.data_dir) / cfg.cursor_file)
    ingest_config = build_ingestion_config(cfg)
    ingest_pool = TaskPool(ingest_config.concurrency, "ingest")
    ingestor = EventIngestor(
        rpc, cursor, pipeline.handle, specs, ingest_config,
        pool=ingest_pool, metrics=metrics, zora=zora,
    )
    subscription = LogSubscription(
        rpc,
        specs,
        ingestor.accept_logs,
        max_consecutive_errors=cfg.max_consecutive_errors,
        cooldown_sec=cfg.resubscribe_cooldown_sec,
        pause_sec=cfg.resubscribe_pause_sec,
        metrics=metrics,
    )
    ingestor.attach(subscription)

    logger.info(
        f"[SNIPER] Starting: clanker={cfg.clanker_factory} zora={cfg.zora_factory} "
        f"vip={len(vip_accounts)} min_liq=${cfg.min_liquidity_usd:,.0f} "
        f"big_account={cfg.min_twitter_followers:,}"
    )

    tasks: list[asyncio.Task] = []
    try:
        # fatal: without a head there is nothing to resume from
        head = await ingestor.initialize_cursor()
        logger.info(f"[SNIPER] Chain head {head}, cursor {cursor.block}")
        await ingestor.backfill(head)
        subscription.subscribe()

        tasks = [
            asyncio.create_task(cursor.run_flush_loop(cfg.cursor_flush_sec), name="cursor_flush"),
            asyncio.create_task(ingestor.run_heartbeat(), name="heartbeat"),
            asyncio.create_task(watchlist.run(), name="watchlist"),
            asyncio.create_task(
                _prune_loop(cfg.prune_interval_sec, ingestor, resolver, spam_guard), name="prune"
            ),
            asyncio.create_task(
                _stats_reporter(
                    cfg.stats_interval_sec, metrics, subscription, watchlist, pipeline, ingest_pool
                ),
                name="stats",
            ),
        ]
        await asyncio.gather(*tasks)
    except asyncio.CancelledError:
        logger.info("[SNIPER] Tasks cancelled")
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await subscription.stop()
        if not await ingest_pool.drain(SHUTDOWN_DRAIN_TIMEOUT_SEC):
            await ingest_pool.cancel_all()
        if not await slow_pool.drain(SHUTDOWN_DRAIN_TIMEOUT_SEC):
            await slow_pool.cancel_all()
        await cursor.flush()
        await dispatcher.flush()
        await http.close()
        await rpc.close()
        logger.info(f"[SNIPER] Stopped. {metrics.format_stats_line()}")
