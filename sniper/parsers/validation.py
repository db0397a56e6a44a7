"""Creator validation: reputation policy, spam guard and the fast/slow paths.

Fast path: creator wallet -> Neynar bulk-by-address under a hard timeout,
then Twitter followers, then policy. Built for sub-3s alerts on tokens
whose platform API has not indexed them yet.

Slow path: full platform resolution (Clanker / Zora APIs) retried with
1s, 2s, 4s... delays. Platform 503s double the delay (capped at 30s)
because "not indexed yet" and "API down" look the same from outside.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from sniper.parsers.cache import TTLCache
from sniper.parsers.creator_resolver import CreatorResolver
from sniper.parsers.models import CreatorInfo, LookupStatus, TokenEvent, ValidationResult

CREATOR_NOT_FOUND = "creator_not_found"
API_ERROR_503 = "api_error_503"
RETRYABLE_REASONS = (CREATOR_NOT_FOUND, API_ERROR_503)


@dataclass(frozen=True)
class ValidationPolicy:
    min_twitter_followers: int = 70_000  # big account
    min_twitter_floor: int = 5_000
    min_farcaster_followers: int = 10_000
    neynar_gate_enabled: bool = False
    min_neynar_score: float = 0.90
    platform_fids: frozenset[int] = frozenset({886870})
    fast_timeout_sec: float = 2.5
    slow_retries: int = 3
    slow_retry_delays: tuple[float, ...] = (1.0, 2.0, 4.0, 8.0, 16.0)
    max_503_delay_sec: float = 30.0

    def is_big_account(self, info: CreatorInfo) -> bool:
        return info.twitter_followers is not None and info.twitter_followers >= self.min_twitter_followers

    def slow_retry_delay(self, attempt: int, is_503: bool) -> float:
        delays = self.slow_retry_delays or (16.0,)
        delay = delays[min(attempt, len(delays) - 1)]
        if is_503:
            return min(delay * 2, self.max_503_delay_sec)
        return delay


def _k(value: int | None) -> str:
    return f"{value / 1000:.0f}K" if value is not None else "N/A"


def evaluate_creator(info: CreatorInfo, policy: ValidationPolicy) -> ValidationResult:
    """Apply reputation policy. Spam limits are checked separately.

    passes = neynar gate AND twitter floor AND (twitter >= big bar OR farcaster >= bar)
    The neynar gate is off by default; when on, a big Twitter account bypasses it.
    """
    reasons: list[str] = []
    score = info.neynar_score
    twitter = info.twitter_followers
    farcaster = info.farcaster_followers

    big_account = policy.is_big_account(info)
    neynar_passes = (
        not policy.neynar_gate_enabled
        or big_account
        or (score is not None and score >= policy.min_neynar_score)
    )
    twitter_floor_passes = twitter is None or twitter >= policy.min_twitter_floor
    farcaster_passes = farcaster is not None and farcaster >= policy.min_farcaster_followers
    follower_passes = big_account or farcaster_passes

    logger.debug(
        f"[VALIDATION] neynar={f'{score * 100:.0f}%' if score is not None else 'N/A'} "
        f"(gate {'on' if policy.neynar_gate_enabled else 'off'}) "
        f"twitter={twitter if twitter is not None else 'N/A'} "
        f"farcaster={farcaster if farcaster is not None else 'N/A'} "
        f"handle=@{info.twitter_handle or '-'}"
    )

    passes = neynar_passes and twitter_floor_passes and follower_passes
    if not passes:
        if not neynar_passes:
            if score is not None:
                reasons.append(f"neynar_low: {score * 100:.0f}%")
            else:
                reasons.append("neynar_unavailable")
        if not twitter_floor_passes:
            reasons.append(f"twitter_below_min: {twitter:,}")
        if not follower_passes:
            reasons.append(f"followers_low: tw={_k(twitter)}, fc={_k(farcaster)}")

    return ValidationResult(passes=passes, reasons=reasons, creator_info=info)


def calculate_creator_score(info: CreatorInfo) -> int:
    """Creator quality score on a 0-8 scale."""
    score = 0

    if info.twitter_followers:
        if info.twitter_followers >= 500_000:
            score += 3
        elif info.twitter_followers >= 100_000:
            score += 2
        elif info.twitter_followers >= 50_000:
            score += 1

    if info.farcaster_followers:
        if info.farcaster_followers >= 50_000:
            score += 2
        elif info.farcaster_followers >= 10_000:
            score += 1

    if info.neynar_score:
        if info.neynar_score >= 0.95:
            score += 2
        elif info.neynar_score >= 0.85:
            score += 1

    # multi-platform presence
    if info.twitter_followers and info.farcaster_followers:
        score += 1

    return min(score, 8)


def follower_type(info: CreatorInfo, policy: ValidationPolicy) -> str:
    twitter_passes = policy.is_big_account(info)
    farcaster_passes = (
        info.farcaster_followers is not None
        and info.farcaster_followers >= policy.min_farcaster_followers
    )
    if twitter_passes and farcaster_passes:
        return "both"
    return "twitter" if twitter_passes else "farcaster"


@dataclass
class _CreatorWindow:
    count: int
    first_seen: float


class SpamGuard:
    """Per-creator token counter over a rolling window.

    Creator key is the FID, else the Twitter handle, each prefixed so the two never collide. Each token address is
    counted at most once, so re-validating a token never double-counts.
    """

    def __init__(
        self,
        max_tokens_per_creator: int = 2,
        window_sec: float = 24 * 60 * 60,
        *,
        cache_size: int = 50_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_tokens = max_tokens_per_creator
        self.window_sec = window_sec
        self._clock = clock
        self._counted_tokens: TTLCache[str, bool] = TTLCache(cache_size, window_sec, clock=clock)
        self._creators: TTLCache[str, _CreatorWindow] = TTLCache(cache_size, window_sec, clock=clock)

    @staticmethod
    def creator_key(info: CreatorInfo) -> str | None:
        if info.fid is not None:
            return f"fid:{info.fid}"
        if info.twitter_handle:
            return f"tw:{info.twitter_handle}"
        return None

    def count(self, key: str) -> int:
        window = self._creators.get(key)
        return window.count if window else 0

    def check_and_record(self, info: CreatorInfo, token_address: str) -> tuple[bool, str | None]:
        token_key = token_address.lower()
        if self._counted_tokens.has(token_key):
            return True, None

        creator_key = self.creator_key(info)
        if creator_key is None:
            return True, None

        window = self._creators.get(creator_key)
        if window is None:
            # entry TTL == window, so expiry resets the count
            self._creators.set(creator_key, _CreatorWindow(count=1, first_seen=self._clock()))
            self._counted_tokens.set(token_key, True)
            return True, None

        if window.count >= self.max_tokens:
            logger.info(f"[SPAM] {creator_key} has {window.count} tokens in window")
            return False, f"spam: {creator_key}"

        window.count += 1
        self._counted_tokens.set(token_key, True)
        return True, None

    def prune(self) -> int:
        return self._counted_tokens.prune() + self._creators.prune()


class ValidationEngine:
    """Runs the fast and slow validation paths. Lookup failures come back as rejected results, never as exceptions."""

    def __init__(
        self,
        resolver: CreatorResolver,
        policy: ValidationPolicy,
        spam_guard: SpamGuard,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.resolver = resolver
        self.policy = policy
        self.spam_guard = spam_guard
        self._sleep = sleep

    def _apply_policy(self, info: CreatorInfo, token_address: str) -> ValidationResult:
        evaluation = evaluate_creator(info, self.policy)
        if not evaluation.passes:
            return evaluation
        ok, reason = self.spam_guard.check_and_record(info, token_address)
        if not ok:
            return ValidationResult(
                passes=False, reasons=[*evaluation.reasons, reason or "spam"], creator_info=info
            )
        return evaluation

    async def validate_fast(self, event: TokenEvent) -> ValidationResult:
        started = time.monotonic()
        if not event.creator:
            return ValidationResult(passes=False, reasons=["creator_missing"])

        try:
            profile = await self.resolver.farcaster_by_address(
                event.creator, timeout=self.policy.fast_timeout_sec
            )
            if profile is None:
                return ValidationResult(passes=False, reasons=["creator_not_found_fast"])

            if profile.fid in self.policy.platform_fids:
                return ValidationResult(passes=False, reasons=[f"platform_fid: {profile.fid}"])

            twitter_followers = None
            if profile.twitter_handle:
                twitter_followers = await self.resolver.twitter_followers(
                    profile.twitter_handle, timeout=self.policy.fast_timeout_sec
                )
        except Exception as e:
            logger.opt(exception=True).error(f"[VALIDATION] Fast lookup for {event.label} failed: {e}")
            return ValidationResult(passes=False, reasons=["creator_not_found_fast"])

        info = CreatorInfo(
            platform=event.platform,
            fid=profile.fid,
            username=profile.username,
            neynar_score=profile.score,
            farcaster_followers=profile.followers,
            twitter_handle=profile.twitter_handle,
            twitter_followers=twitter_followers,
        )
        result = self._apply_policy(info, event.address)
        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"[VALIDATION] Fast {event.label} took {elapsed_ms:.0f}ms - "
            f"{'PASSED' if result.passes else 'REJECTED'}"
        )
        return result

    async def validate_full(self, event: TokenEvent) -> ValidationResult:
        started = time.monotonic()
        try:
            if event.platform == "clanker":
                lookup = await self.resolver.resolve_clanker(event.address, event.creator)
            else:
                lookup = await self.resolver.resolve_zora(event.address, event.creator)
        except Exception as e:
            logger.opt(exception=True).error(f"[VALIDATION] Full lookup for {event.label} failed: {e}")
            return ValidationResult(passes=False, reasons=[CREATOR_NOT_FOUND])

        if lookup.status == LookupStatus.PLATFORM_BOT:
            return ValidationResult(passes=False, reasons=[lookup.reason or "platform_bot"])
        if lookup.status == LookupStatus.API_ERROR_503:
            return ValidationResult(passes=False, reasons=[API_ERROR_503])
        if lookup.status != LookupStatus.SUCCESS or lookup.creator_info is None:
            return ValidationResult(passes=False, reasons=[CREATOR_NOT_FOUND])

        result = self._apply_policy(lookup.creator_info, event.address)
        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"[VALIDATION] Full {event.label} took {elapsed_ms:.0f}ms - "
            f"{'PASSED' if result.passes else 'REJECTED'}"
        )
        return result

    async def validate_with_retry(self, event: TokenEvent) -> ValidationResult:
        retries = self.policy.slow_retries
        for attempt in range(retries + 1):
            result = await self.validate_full(event)
            if not any(r in RETRYABLE_REASONS for r in result.reasons):
                return result
            if attempt >= retries:
                break
            is_503 = API_ERROR_503 in result.reasons
            delay = self.policy.slow_retry_delay(attempt, is_503)
            logger.info(
                f"[VALIDATION] {'API 503 error' if is_503 else 'Creator not indexed yet'} "
                f"for {event.label}, retry {attempt + 1}/{retries} in {delay:.0f}s"
            )
            await self._sleep(delay)

        logger.info(f"[VALIDATION] Creator lookup failed for {event.label} after {retries} retries")
        return ValidationResult(passes=False, reasons=["creator_not_found_after_retries"])
