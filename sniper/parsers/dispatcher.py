"""Alert/buy dispatcher boundary.

The core's only output is a TokenAlert handed to an AlertDispatcher. The
bundled LogAlertDispatcher logs each alert and appends it as one JSON line
to the passed-token log; Telegram or on-chain buying plug in behind the
same protocol.
"""

import asyncio
import json
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from loguru import logger

from sniper.parsers.cache import TTLCache
from sniper.parsers.models import AlertTrigger, TokenAlert
from sniper.parsers.validation import ValidationPolicy, follower_type


class AlertDispatcher(Protocol):
    async def dispatch(self, alert: TokenAlert) -> bool: ...

    def was_create_alerted(self, token_address: str) -> bool: ...


def _fmt_count(value: int | None) -> str:
    if value is None:
        return "N/A"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    return str(value)


def passed_token_record(alert: TokenAlert, policy: ValidationPolicy) -> dict:
    """One passed-token log line."""
    info = alert.creator_info
    score = info.neynar_score
    return {
        "timestamp": datetime.now(UTC).isoformat(),
        "token": alert.token_address,
        "name": alert.name,
        "symbol": alert.symbol,
        "platform": alert.platform,
        "trigger": alert.trigger.value,
        "liquidityUsd": alert.liquidity_usd,
        "txHash": alert.tx_hash,
        "blockNumber": str(alert.block_number) if alert.block_number is not None else None,
        "creator": {
            "fid": info.fid,
            "username": info.username,
            "neynarScore": score,
            "neynarScorePercent": round(score * 100) if score is not None else None,
            "farcasterFollowers": info.farcaster_followers,
            "twitterHandle": info.twitter_handle,
            "twitterFollowers": info.twitter_followers,
        },
        "followerType": follower_type(info, policy),
        "score": alert.score,
        "dexscreenerUrl": alert.dexscreener_url,
    }


class LogAlertDispatcher:
    """Logs alerts and appends them to a JSONL file.

    Create alerts are deduplicated per token for `create_dedup_ttl` seconds.
    """

    def __init__(
        self,
        passed_log_path: str | Path | None,
        policy: ValidationPolicy,
        *,
        create_dedup_ttl: float = 6 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._path = Path(passed_log_path) if passed_log_path else None
        self._policy = policy
        self._create_alerted: TTLCache[str, bool] = TTLCache(10_000, create_dedup_ttl, clock=clock)
        self._writes: set[asyncio.Task] = set()
        self._total_sent = 0

    @property
    def total_sent(self) -> int:
        return self._total_sent

    def was_create_alerted(self, token_address: str) -> bool:
        return self._create_alerted.has(token_address.lower())

    async def dispatch(self, alert: TokenAlert) -> bool:
        key = alert.token_address.lower()
        if alert.trigger == AlertTrigger.CREATE:
            if self._create_alerted.has(key):
                logger.debug(f"[ALERT] Create alert already sent for {alert.token_address}")
                return False
            self._create_alerted.set(key, True)

        self._total_sent += 1
        _log_alert(alert)

        if self._path is not None:
            record = passed_token_record(alert, self._policy)
            task = asyncio.create_task(self._append(record))
            self._writes.add(task)
            task.add_done_callback(self._writes.discard)
        return True

    async def _append(self, record: dict) -> None:
        line = json.dumps(record) + "\n"
        try:
            await asyncio.to_thread(self._write_line, line)
        except OSError as e:
            logger.warning(f"[ALERT] Failed to append passed-token log: {e}")

    def _write_line(self, line: str) -> None:
        assert self._path is not None
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as f:
            f.write(line)

    async def flush(self) -> None:
        """Wait for pending background log writes."""
        if self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)


def _log_alert(alert: TokenAlert) -> None:
    info = alert.creator_info
    liquidity = f"${alert.liquidity_usd:,.0f}" if alert.liquidity_usd else "unknown"
    who = f"@{info.username}" if info.username else (f"@{info.twitter_handle}" if info.twitter_handle else "?")
    logger.info(
        f"[ALERT] {alert.trigger.value.upper()} {alert.platform} "
        f"{alert.symbol or '?'} ({alert.token_address}) by {who} "
        f"tw={_fmt_count(info.twitter_followers)} fc={_fmt_count(info.farcaster_followers)} "
        f"liq={liquidity} score={alert.score}/8"
    )
    logger.info(f"[ALERT] {alert.dexscreener_url}")
