"""Pydantic models for the Zora SDK API (/coin)."""

from enum import Enum

from pydantic import BaseModel


class ZoraFarcasterAccount(BaseModel):
    id: int | str | None = None
    fid: int | str | None = None
    username: str | None = None
    followerCount: int | None = None

    model_config = {"extra": "ignore"}


class ZoraTwitterAccount(BaseModel):
    username: str | None = None
    displayName: str | None = None
    followerCount: int | None = None

    model_config = {"extra": "ignore"}


class ZoraSocialAccounts(BaseModel):
    farcaster: ZoraFarcasterAccount | None = None
    twitter: ZoraTwitterAccount | None = None

    model_config = {"extra": "ignore"}


class ZoraCreatorProfile(BaseModel):
    handle: str | None = None
    socialAccounts: ZoraSocialAccounts | None = None

    model_config = {"extra": "ignore"}

    @property
    def farcaster(self) -> ZoraFarcasterAccount | None:
        return self.socialAccounts.farcaster if self.socialAccounts else None

    @property
    def twitter(self) -> ZoraTwitterAccount | None:
        return self.socialAccounts.twitter if self.socialAccounts else None


class ZoraToken(BaseModel):
    address: str | None = None
    name: str | None = None
    symbol: str | None = None
    creatorAddress: str | None = None
    creatorProfile: ZoraCreatorProfile | None = None

    model_config = {"extra": "ignore"}


class _ZoraData(BaseModel):
    zora20Token: ZoraToken | None = None

    model_config = {"extra": "ignore"}


class ZoraCoinResponse(BaseModel):
    """Accepts both {data: {zora20Token}} and bare {zora20Token}."""

    data: _ZoraData | None = None
    zora20Token: ZoraToken | None = None

    model_config = {"extra": "ignore"}

    @property
    def token(self) -> ZoraToken | None:
        if self.data is not None and self.data.zora20Token is not None:
            return self.data.zora20Token
        return self.zora20Token


class ZoraLookupStatus(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    API_ERROR = "api_error"


class ZoraCoinResult(BaseModel):
    status: ZoraLookupStatus
    token: ZoraToken | None = None
    error: str | None = None
    is_503: bool = False
