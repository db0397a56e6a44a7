"""Domain types shared across the sniper pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

Platform = Literal["clanker", "zora"]


@dataclass(frozen=True)
class TokenEvent:
    """One on-chain token launch, built by the decoder and never mutated."""

    address: str
    platform: Platform
    tx_hash: str
    block_number: int
    detected_at: datetime
    name: str | None = None
    symbol: str | None = None
    creator: str | None = None
    pool_address: str | None = None

    @property
    def label(self) -> str:
        return self.symbol or self.address


@dataclass(frozen=True)
class CreatorInfo:
    platform: Platform
    fid: int | None = None
    username: str | None = None
    neynar_score: float | None = None
    farcaster_followers: int | None = None
    twitter_handle: str | None = None
    twitter_followers: int | None = None
    creator_address_verified: bool | None = None


@dataclass(frozen=True)
class ValidationResult:
    passes: bool
    reasons: list[str] = field(default_factory=list)
    creator_info: CreatorInfo | None = None


class LookupStatus(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    API_ERROR = "api_error"
    API_ERROR_503 = "api_error_503"
    PLATFORM_BOT = "platform_bot"


@dataclass(frozen=True)
class CreatorLookup:
    """Outcome of a platform-API resolution (slow path)."""

    status: LookupStatus
    creator_info: CreatorInfo | None = None
    reason: str | None = None


class AlertTrigger(str, Enum):
    BIG_ACCOUNT = "big_account"
    CREATE = "create"
    LIQUIDITY = "liquidity"


@dataclass(frozen=True)
class TokenAlert:
    """Sole output of the core, handed to the alert/buy dispatcher."""

    token_address: str
    platform: Platform
    creator_info: CreatorInfo
    trigger: AlertTrigger
    liquidity_usd: float | None = None
    symbol: str | None = None
    name: str | None = None
    pool_address: str | None = None
    tx_hash: str | None = None
    block_number: int | None = None
    volume_h24: float | None = None
    buys_h1: int | None = None
    sells_h1: int | None = None
    price_change_h1: float | None = None
    score: int = 0

    @property
    def dexscreener_url(self) -> str:
        return f"https://dexscreener.com/base/{self.token_address}"
