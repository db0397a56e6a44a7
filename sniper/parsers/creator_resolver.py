"""Creator reputation resolver.

Turns a creator wallet or a platform token record into a CreatorInfo by
combining Neynar (Farcaster), TwitterAPI.io, Clanker and Zora lookups.

Every lookup is memoized by its natural key (address, username, FID, handle)
with a long TTL for hits and a short TTL for misses, and concurrent callers
for the same key share one in-flight request. Lookup failures are never
cached and never raised: they come back as "field absent".
"""

import asyncio
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from loguru import logger

from sniper.parsers.cache import InFlight, TTLCache
from sniper.parsers.clanker.client import ClankerApiError, ClankerClient
from sniper.parsers.models import CreatorInfo, CreatorLookup, LookupStatus
from sniper.parsers.neynar.client import NeynarApiError, NeynarClient
from sniper.parsers.neynar.models import NeynarUser
from sniper.parsers.twitter.client import TwitterApiError, TwitterClient
from sniper.parsers.zora.client import ZoraClient
from sniper.parsers.zora.models import ZoraLookupStatus

LOOKUP_ERRORS = (NeynarApiError, TwitterApiError, ClankerApiError)

_HANDLE_RE = re.compile(r"^[a-z0-9_]+$", re.IGNORECASE)


def parse_twitter_handle(value: str | None) -> str | None:
    """Normalize '@Name', 'name' or a twitter.com / x.com profile URL to a lowercase handle."""
    if not value:
        return None
    value = value.strip()
    if "/" not in value:
        handle = value.lstrip("@").strip().lower()
        return handle if _HANDLE_RE.match(handle) else None

    parsed = urlparse(value if "://" in value else f"https://{value}")
    host = (parsed.hostname or "").lower()
    if "twitter.com" not in host and "x.com" not in host:
        return None
    segments = [s for s in parsed.path.split("/") if s]
    if not segments or segments[0] == "i":
        return None
    handle = segments[0].lower()
    return handle if _HANDLE_RE.match(handle) else None


@dataclass(frozen=True)
class FarcasterProfile:
    fid: int
    username: str | None = None
    score: float | None = None
    followers: int | None = None
    twitter_handle: str | None = None

    @classmethod
    def from_neynar(cls, user: NeynarUser) -> "FarcasterProfile":
        return cls(
            fid=int(user.fid or 0),
            username=user.username,
            score=user.neynar_score,
            followers=user.follower_count,
            twitter_handle=parse_twitter_handle(user.twitter_username),
        )


class CreatorResolver:
    """Resolves creator reputation from social APIs with caching and coalescing."""

    def __init__(
        self,
        neynar: NeynarClient,
        twitter: TwitterClient,
        clanker: ClankerClient,
        zora: ZoraClient,
        *,
        platform_fids: frozenset[int] = frozenset({886870}),
        cache_size: int = 20_000,
        found_ttl_sec: float = 600.0,
        not_found_ttl_sec: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._neynar = neynar
        self._twitter = twitter
        self._clanker = clanker
        self._zora = zora
        self.platform_fids = platform_fids
        self._found_ttl = found_ttl_sec
        self._not_found_ttl = not_found_ttl_sec

        self._by_address: TTLCache[str, FarcasterProfile | None] = TTLCache(cache_size, found_ttl_sec, clock=clock)
        self._by_username: TTLCache[str, FarcasterProfile | None] = TTLCache(cache_size, found_ttl_sec, clock=clock)
        self._by_fid: TTLCache[int, FarcasterProfile | None] = TTLCache(cache_size, found_ttl_sec, clock=clock)
        self._followers: TTLCache[str, int | None] = TTLCache(cache_size, found_ttl_sec, clock=clock)
        self._verified: TTLCache[int, list[str]] = TTLCache(cache_size, found_ttl_sec, clock=clock)
        self._in_flight: InFlight[tuple[str, Any], Any] = InFlight()

    @property
    def caches(self) -> list[TTLCache]:
        return [self._by_address, self._by_username, self._by_fid, self._followers, self._verified]

    def prune(self) -> int:
        return sum(cache.prune() for cache in self.caches)

    async def _memoized(
        self,
        kind: str,
        cache: TTLCache,
        key: Any,
        fetch: Callable[[], Awaitable[Any]],
        timeout: float | None = None,
    ) -> Any:
        # one coalescing namespace per cache
        found, value = cache.lookup(key)
        if found:
            return value

        async def load() -> Any:
            try:
                result = await fetch()
            except LOOKUP_ERRORS as e:
                logger.debug(f"[{kind.upper()}] lookup {key} failed: {e}")
                return None
            ttl = self._found_ttl if result not in (None, []) else self._not_found_ttl
            cache.set(key, result, ttl)
            return result

        return await self._in_flight.run((kind, key), load, timeout=timeout)

    # --- Farcaster -------------------------------------------------------

    async def farcaster_by_address(
        self, address: str, timeout: float | None = None
    ) -> FarcasterProfile | None:
        if not self._neynar.enabled:
            return None
        address = address.lower()

        async def fetch() -> FarcasterProfile | None:
            user = await self._neynar.get_user_by_address(address)
            return FarcasterProfile.from_neynar(user) if user else None

        return await self._memoized("neynar_addr", self._by_address, address, fetch, timeout)

    async def farcaster_by_username(self, username: str) -> FarcasterProfile | None:
        if not self._neynar.enabled:
            return None
        key = username.lstrip("@").strip().lower()
        if not key:
            return None

        async def fetch() -> FarcasterProfile | None:
            user = await self._neynar.get_user_by_username(key)
            return FarcasterProfile.from_neynar(user) if user else None

        return await self._memoized("neynar_user", self._by_username, key, fetch)

    async def farcaster_by_fid(self, fid: int) -> FarcasterProfile | None:
        if not self._neynar.enabled:
            return None

        async def fetch() -> FarcasterProfile | None:
            user = await self._neynar.get_user_by_fid(fid)
            return FarcasterProfile.from_neynar(user) if user else None

        return await self._memoized("neynar_fid", self._by_fid, fid, fetch)

    async def is_address_verified(self, fid: int, address: str) -> bool | None:
        """True/False when the FID's verifications are known, None when unavailable."""
        if not self._neynar.enabled:
            return None

        async def fetch() -> list[str]:
            return await self._neynar.get_verified_addresses(fid)

        addresses = await self._memoized("neynar_verif", self._verified, fid, fetch)
        if addresses is None:
            return None
        return address.lower() in addresses

    # --- Twitter ---------------------------------------------------------

    async def twitter_followers(self, handle: str, timeout: float | None = None) -> int | None:
        if not self._twitter.enabled:
            return None
        key = handle.lstrip("@").strip().lower()
        if not key:
            return None
        return await self._memoized(
            "twitter", self._followers, key, lambda: self._twitter.get_followers(key), timeout
        )

    # --- Platform resolution (slow path) ---------------------------------

    async def resolve_from_wallet(self, address: str, platform: str) -> CreatorInfo | None:
        """Farcaster-by-address plus live Twitter followers, no timeout."""
        profile = await self.farcaster_by_address(address)
        if profile is None:
            return None
        twitter_followers = None
        if profile.twitter_handle:
            twitter_followers = await self.twitter_followers(profile.twitter_handle)
        return CreatorInfo(
            platform=platform,
            fid=profile.fid,
            username=profile.username,
            neynar_score=profile.score,
            farcaster_followers=profile.followers,
            twitter_handle=profile.twitter_handle,
            twitter_followers=twitter_followers,
        )

    async def resolve_clanker(self, token_address: str, creator_address: str | None = None) -> CreatorLookup:
        try:
            token = await self._clanker.get_token(token_address)
        except ClankerApiError as e:
            logger.debug(f"[CLANKER] lookup {token_address} failed: {e}")
            status = LookupStatus.API_ERROR_503 if e.status_code == 503 else LookupStatus.API_ERROR
            return CreatorLookup(status=status, reason=str(e))

        if token is None:
            return CreatorLookup(status=LookupStatus.NOT_FOUND)

        logger.debug(
            f"[CLANKER] interface={token.interface_name or 'N/A'}, fid={token.fid or 'N/A'}, "
            f"description={(token.description or 'N/A')[:50]}"
        )
        if token.is_bankr:
            logger.info(f"[CLANKER] Skipping Bankr deployment {token_address}")
            return CreatorLookup(status=LookupStatus.PLATFORM_BOT, reason="platform_bot: bankr")

        fid = token.fid
        if fid is not None and fid in self.platform_fids:
            logger.info(f"[CLANKER] Skipping platform FID {fid}")
            return CreatorLookup(status=LookupStatus.PLATFORM_BOT, reason=f"platform_fid: {fid}")

        handle = parse_twitter_handle(token.twitter_url)

        async def no_value() -> None:
            return None

        profile, twitter_followers, verified = await asyncio.gather(
            self.farcaster_by_fid(fid) if fid is not None else no_value(),
            self.twitter_followers(handle) if handle else no_value(),
            self.is_address_verified(fid, creator_address) if fid is not None and creator_address else no_value(),
        )

        return CreatorLookup(
            status=LookupStatus.SUCCESS,
            creator_info=CreatorInfo(
                platform="clanker",
                fid=fid,
                username=profile.username if profile else None,
                neynar_score=profile.score if profile else None,
                farcaster_followers=profile.followers if profile else None,
                twitter_handle=handle,
                twitter_followers=twitter_followers,
                creator_address_verified=verified,
            ),
        )

    async def resolve_zora(self, token_address: str, creator_address: str | None = None) -> CreatorLookup:
        result = await self._zora.get_coin(token_address)

        if result.status == ZoraLookupStatus.SUCCESS:
            lookup = await self._resolve_zora_profile(result.token)
        elif result.is_503:
            lookup = CreatorLookup(status=LookupStatus.API_ERROR_503, reason=result.error)
        elif result.status == ZoraLookupStatus.API_ERROR:
            lookup = CreatorLookup(status=LookupStatus.API_ERROR, reason=result.error)
        else:
            lookup = CreatorLookup(status=LookupStatus.NOT_FOUND)

        if lookup.status == LookupStatus.SUCCESS or not creator_address:
            return lookup

        logger.info(
            f"[ZORA] API {lookup.status.value}, trying Neynar wallet fallback for {creator_address[:10]}..."
        )
        info = await self.resolve_from_wallet(creator_address, "zora")
        if info is None:
            return lookup
        logger.info(
            f"[ZORA] Neynar fallback success: @{info.twitter_handle or 'no-twitter'} "
            f"({info.twitter_followers or 0:,} followers)"
        )
        return CreatorLookup(status=LookupStatus.SUCCESS, creator_info=info)

    async def _resolve_zora_profile(self, token: Any) -> CreatorLookup:
        profile = token.creatorProfile if token is not None else None
        if profile is None:
            logger.debug("[ZORA] no creatorProfile found")
            return CreatorLookup(status=LookupStatus.NOT_FOUND)

        farcaster = profile.farcaster
        twitter = profile.twitter
        logger.debug(
            f"[ZORA] profile handle={profile.handle}, "
            f"farcaster={farcaster.username if farcaster else None}, "
            f"twitter={twitter.username if twitter else None}"
        )

        neynar: FarcasterProfile | None = None
        twitter_handle: str | None = None
        twitter_followers: int | None = None

        candidate = farcaster.username if farcaster and farcaster.username else profile.handle
        if candidate:
            neynar = await self.farcaster_by_username(candidate)
            if neynar is not None and neynar.twitter_handle:
                twitter_handle = neynar.twitter_handle
                twitter_followers = await self.twitter_followers(twitter_handle)

        if twitter is not None and twitter.username and twitter_followers is None:
            twitter_handle = parse_twitter_handle(twitter.username) or twitter.username
            live = await self.twitter_followers(twitter.username)
            twitter_followers = live if live is not None else twitter.followerCount

        farcaster_followers = neynar.followers if neynar is not None else None
        if farcaster_followers is None and farcaster is not None:
            farcaster_followers = farcaster.followerCount

        return CreatorLookup(
            status=LookupStatus.SUCCESS,
            creator_info=CreatorInfo(
                platform="zora",
                fid=neynar.fid if neynar else None,
                username=(farcaster.username if farcaster else None) or profile.handle,
                neynar_score=neynar.score if neynar else None,
                farcaster_followers=farcaster_followers,
                twitter_handle=twitter_handle,
                twitter_followers=twitter_followers,
            ),
        )
