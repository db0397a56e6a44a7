"""Pydantic models for Neynar (Farcaster) API responses."""

from pydantic import BaseModel


class NeynarVerifiedAccount(BaseModel):
    platform: str | None = None
    username: str | None = None

    model_config = {"extra": "ignore"}


class NeynarExperimental(BaseModel):
    neynar_user_score: float | None = None

    model_config = {"extra": "ignore"}


class NeynarUser(BaseModel):
    """Farcaster user as returned by the v2 user endpoints."""

    fid: int | None = None
    username: str | None = None
    display_name: str | None = None
    follower_count: int | None = None
    score: float | None = None
    experimental: NeynarExperimental | None = None
    verified_accounts: list[NeynarVerifiedAccount] = []

    model_config = {"extra": "ignore"}

    @property
    def neynar_score(self) -> float | None:
        if self.score is not None:
            return self.score
        if self.experimental is not None:
            return self.experimental.neynar_user_score
        return None

    @property
    def twitter_username(self) -> str | None:
        """Raw username of the first verified X/Twitter account."""
        for account in self.verified_accounts:
            platform = (account.platform or "").lower()
            if platform in ("x", "twitter") and account.username:
                return account.username
        return None


class NeynarUserResponse(BaseModel):
    user: NeynarUser | None = None

    model_config = {"extra": "ignore"}


class NeynarBulkUsersResponse(BaseModel):
    users: list[NeynarUser] = []

    model_config = {"extra": "ignore"}


class VerificationAddEthAddressBody(BaseModel):
    address: str | None = None

    model_config = {"extra": "ignore"}


class VerificationData(BaseModel):
    fid: int | None = None
    verificationAddEthAddressBody: VerificationAddEthAddressBody | None = None

    model_config = {"extra": "ignore"}


class VerificationMessage(BaseModel):
    data: VerificationData | None = None

    model_config = {"extra": "ignore"}


class VerificationsResponse(BaseModel):
    """Hub /v1/verificationsByFid payload."""

    messages: list[VerificationMessage] = []

    model_config = {"extra": "ignore"}

    @property
    def eth_addresses(self) -> list[str]:
        result = []
        for message in self.messages:
            body = message.data.verificationAddEthAddressBody if message.data else None
            if body and body.address:
                result.append(body.address.lower())
        return result
