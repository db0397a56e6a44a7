"""Pydantic models for the Clanker token API."""

from pydantic import BaseModel


class ClankerSocialContext(BaseModel):
    id: str | int | None = None
    interface: str | None = None
    platform: str | None = None

    model_config = {"extra": "ignore"}


class ClankerSocialUrl(BaseModel):
    platform: str | None = None
    url: str | None = None

    model_config = {"extra": "ignore"}


class ClankerMetadata(BaseModel):
    socialMediaUrls: list[ClankerSocialUrl] = []

    model_config = {"extra": "ignore"}


class ClankerToken(BaseModel):
    contract_address: str | None = None
    name: str | None = None
    symbol: str | None = None
    requestor_fid: int | str | None = None
    social_context: ClankerSocialContext | None = None
    metadata: ClankerMetadata | None = None
    description: str | None = None

    model_config = {"extra": "ignore"}

    @property
    def interface_name(self) -> str | None:
        if self.social_context and self.social_context.interface:
            return self.social_context.interface.lower()
        return None

    @property
    def is_bankr(self) -> bool:
        """Deployed by the Bankr bot, so the real creator cannot be verified."""
        if self.interface_name == "bankr":
            return True
        return "bankr" in (self.description or "").lower()

    @property
    def fid(self) -> int | None:
        raw = self.requestor_fid
        if raw in (None, "") and self.social_context is not None:
            raw = self.social_context.id
        if raw in (None, ""):
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    @property
    def twitter_url(self) -> str | None:
        if self.metadata is None:
            return None
        for social in self.metadata.socialMediaUrls:
            if (social.platform or "").lower() in ("twitter", "x") and social.url:
                return social.url
        return None


class ClankerTokensResponse(BaseModel):
    data: list[ClankerToken] = []
    tokens: list[ClankerToken] = []

    model_config = {"extra": "ignore"}

    @property
    def first(self) -> ClankerToken | None:
        if self.data:
            return self.data[0]
        if self.tokens:
            return self.tokens[0]
        return None
