"""Pydantic models for TwitterAPI.io responses."""

from pydantic import BaseModel


class TwitterUser(BaseModel):
    """Profile returned by /twitter/user/info."""

    userName: str = ""
    id: str = ""
    name: str = ""
    followers: int | None = None
    followersCount: int | None = None
    isBlueVerified: bool = False

    model_config = {"extra": "ignore"}

    @property
    def follower_count(self) -> int | None:
        if self.followers is not None:
            return self.followers
        return self.followersCount
