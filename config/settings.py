from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Base chain RPC (local node by default)
    ws_rpc_url: str = "ws://127.0.0.1:28546"
    http_rpc_url: str = "http://127.0.0.1:28545"
    rpc_timeout_sec: float = 15.0

    # Factory contracts
    clanker_factory: str = "0xE85A59c628F7d27878ACeB4bf3b35733630083a9"
    zora_factory: str = "0x777777751622c0d3258f214F9DF38E35BF45baF3"
    # Comma-separated address=label pairs whose CoinCreatedV4 posts skip validation
    zora_vip_accounts: str = (
        "0x9652721d02b9db43f4311102820158abb4ecc95b=@base,"
        "0x3092dd07eb967c8f155c958a12dd5c75de650921=@base,"
        "0x19ff7ea0badffa183f03533c3884f9ca03145aad=@base,"
        "0x17cd072cbd45031efc21da538c783e0ed3b25dcc=@jacob,"
        "0x4e1749017f9d36c2c8b96a5d662118c42dbdc1a5=@jacob,"
        "0x3a5df03dd1a001d7055284c2c2c147cbbc78d142=@jacob,"
        "0xf9fcd1fa7a5a3f2cf6fe3a33e1262b74c04feeda=@zora,"
        "0x7305de32957602344486a1016ecc4314da23d46b=@zora,"
        "0x70211a4c59fb9340bdb646a567f78d425f62da3c=@zora"
    )

    # Shared HTTP guard defaults
    http_timeout_sec: float = 10.0
    http_host_concurrency: int = 8

    # Neynar (Farcaster)
    neynar_api_key: str = ""
    neynar_api_base: str = "https://api.neynar.com"
    neynar_hub_base: str = "https://hub-api.neynar.com"
    neynar_concurrency: int = 4
    neynar_timeout_sec: float = 10.0

    # TwitterAPI.io
    twitter_api_key: str = ""
    twitter_api_base: str = "https://api.twitterapi.io"
    twitter_concurrency: int = 4
    twitter_timeout_sec: float = 10.0

    # Zora SDK API (primary + fallback base)
    zora_api_key: str = ""
    zora_api_base: str = "https://api-sdk.zora.engineering"
    zora_api_base_fallback: str = "https://api-sdk.zora.co"
    zora_concurrency: int = 4
    zora_timeout_sec: float = 10.0

    # Clanker
    clanker_api_url: str = "https://www.clanker.world/api/tokens"
    clanker_concurrency: int = 4
    clanker_timeout_sec: float = 10.0

    # DexScreener
    dexscreener_api_base: str = "https://api.dexscreener.com"
    dexscreener_concurrency: int = 4
    dexscreener_timeout_sec: float = 10.0

    # Lookup caches
    lookup_cache_size: int = 20_000
    lookup_cache_ttl_sec: float = 600.0
    lookup_not_found_ttl_sec: float = 60.0

    # Validation policy
    fast_timeout_sec: float = 2.5
    enable_slow_fallback: bool = True
    slow_validation_concurrency: int = 2
    slow_validation_retries: int = 3
    min_twitter_followers: int = 70_000  # "big account" bar
    min_twitter_floor: int = 5_000
    min_farcaster_followers: int = 10_000
    neynar_gate_enabled: bool = False
    min_neynar_score: float = 0.90
    max_tokens_per_creator: int = 2
    creator_window_sec: float = 24 * 60 * 60
    platform_fids: str = "886870"  # Bankr

    # Alerts
    alert_on_create: bool = False
    alert_on_liquidity: bool = True
    liquidity_alert_after_create: bool = False
    create_alert_dedup_sec: float = 6 * 60 * 60
    passed_tokens_log: str = "passed_tokens.jsonl"

    # Ingestion guardrails
    data_dir: str = "data"
    cursor_file: str = "sniper_cursor.json"
    cursor_flush_sec: float = 5.0
    enable_backfill: bool = True
    backfill_blocks: int = 50
    backfill_max_logs: int = 200
    dedup_ttl_sec: float = 30 * 60
    dedup_cache_size: int = 50_000
    event_concurrency: int = 4

    # Subscription health
    heartbeat_interval_sec: float = 60.0
    event_stale_threshold_sec: float = 10 * 60
    stale_warning_interval_sec: float = 5 * 60
    stale_probe_interval_sec: float = 5 * 60
    stale_probe_blocks: int = 500
    resubscribe_cooldown_sec: float = 10 * 60
    resubscribe_pause_sec: float = 2.0
    max_consecutive_errors: int = 5

    # Liquidity watchlist
    min_liquidity_usd: float = 5_000.0
    watchlist_check_interval_sec: float = 10.0
    watchlist_max_age_sec: float = 60 * 60
    watchlist_concurrency: int = 4

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    json_logs: bool = False

    # Maintenance
    prune_interval_sec: float = 60 * 60
    stats_interval_sec: float = 60.0


settings = Settings()
