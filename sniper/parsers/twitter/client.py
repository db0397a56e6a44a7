"""TwitterAPI.io client: follower counts for creator handles.

Uses TwitterAPI.io (not official X API).
Docs: https://docs.twitterapi.io/
"""

from loguru import logger
from pydantic import ValidationError

from sniper.parsers.http_guard import GuardedHttpClient, RequestPolicy
from sniper.parsers.retry import RetryError
from sniper.parsers.twitter.models import TwitterUser

BASE_URL = "https://api.twitterapi.io"


class TwitterApiError(Exception):
    """TwitterAPI.io error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TwitterClient:
    """Read-only lookups against TwitterAPI.io through the shared HTTP guard."""

    def __init__(
        self,
        http: GuardedHttpClient,
        api_key: str,
        *,
        base_url: str = BASE_URL,
        policy: RequestPolicy | None = None,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._policy = policy or RequestPolicy(
            host_key="twitter", concurrency=4, max_retries=2, initial_delay_sec=0.25
        )

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def get_user_info(self, username: str) -> TwitterUser | None:
        """Get user profile by username. None means the account does not exist."""
        try:
            response = await self._http.get(
                f"{self._base_url}/twitter/user/info",
                self._policy,
                params={"userName": username},
                headers={"x-api-key": self._api_key},
            )
        except RetryError as e:
            raise TwitterApiError(f"Request failed: {e}", e.last_status) from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise TwitterApiError(
                f"HTTP {response.status_code}: {response.text[:200]}", response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TwitterApiError("Non-JSON response", response.status_code) from e
        if not isinstance(data, dict):
            raise TwitterApiError("Unexpected payload shape", response.status_code)
        if data.get("status") == "error":
            msg = data.get("msg", "Unknown error")
            if "not found" in str(msg).lower():
                return None
            raise TwitterApiError(msg, response.status_code)

        user_data = data.get("data", data)
        if not isinstance(user_data, dict):
            return None
        try:
            return TwitterUser.model_validate(user_data)
        except ValidationError as e:
            raise TwitterApiError(f"Malformed user payload: {e}") from e

    async def get_followers(self, username: str) -> int | None:
        """Follower count for a handle, None when the account is unknown."""
        if not self.enabled:
            logger.debug("[TWITTER] TWITTER_API_KEY not configured")
            return None
        user = await self.get_user_info(username)
        if user is None:
            return None
        return user.follower_count
