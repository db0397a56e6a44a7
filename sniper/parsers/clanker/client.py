"""Clanker public API: token metadata by contract address."""

from sniper.parsers.clanker.models import ClankerToken, ClankerTokensResponse
from sniper.parsers.http_guard import GuardedHttpClient, RequestPolicy
from sniper.parsers.retry import RetryError

API_URL = "https://www.clanker.world/api/tokens"


class ClankerApiError(Exception):
    """Clanker API error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ClankerClient:
    def __init__(
        self,
        http: GuardedHttpClient,
        *,
        api_url: str = API_URL,
        policy: RequestPolicy | None = None,
    ) -> None:
        self._http = http
        self._api_url = api_url
        self._policy = policy or RequestPolicy(
            host_key="clanker", concurrency=4, max_retries=2, initial_delay_sec=0.5
        )

    async def get_token(self, token_address: str) -> ClankerToken | None:
        """Token record, or None when Clanker has not indexed it (yet)."""
        try:
            response = await self._http.get(
                self._api_url,
                self._policy,
                params={"contractAddress": token_address.lower()},
            )
        except RetryError as e:
            raise ClankerApiError(f"Request failed: {e}", e.last_status) from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise ClankerApiError(f"HTTP {response.status_code}", response.status_code)
        try:
            data = response.json()
            return ClankerTokensResponse.model_validate(data).first
        except ValueError as e:
            raise ClankerApiError(f"Malformed response: {e}", response.status_code) from e
