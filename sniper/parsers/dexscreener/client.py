from loguru import logger

from sniper.parsers.dexscreener.models import DexScreenerPair
from sniper.parsers.http_guard import GuardedHttpClient, RequestPolicy
from sniper.parsers.retry import RetryError

BASE_URL = "https://api.dexscreener.com"
CHAIN_ID = "base"


class DexScreenerApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DexScreenerClient:
    """Async REST client for DexScreener public API (no auth required)."""

    def __init__(
        self,
        http: GuardedHttpClient,
        *,
        base_url: str = BASE_URL,
        policy: RequestPolicy | None = None,
    ) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._policy = policy or RequestPolicy(
            host_key="dexscreener", concurrency=4, max_retries=2, initial_delay_sec=1.0
        )

    async def get_token_pairs(self, token_address: str) -> list[DexScreenerPair]:
        """Get all pairs for a token on Base. Empty list if not listed yet."""
        try:
            response = await self._http.get(
                f"{self._base_url}/token-pairs/v1/{CHAIN_ID}/{token_address}",
                self._policy,
            )
        except RetryError as e:
            raise DexScreenerApiError(f"Request failed: {e}", e.last_status) from e

        if response.status_code == 404:
            return []
        if response.status_code >= 400:
            raise DexScreenerApiError(
                f"Dexscreener request failed ({response.status_code})", response.status_code
            )
        try:
            data = response.json()
        except ValueError as e:
            raise DexScreenerApiError("Non-JSON response", response.status_code) from e

        if isinstance(data, list):
            pairs = data
        elif isinstance(data, dict):
            pairs = data.get("pairs") or []
        else:
            pairs = []
        if not isinstance(pairs, list):
            pairs = [pairs] if pairs else []

        result = []
        for raw in pairs:
            try:
                result.append(DexScreenerPair.model_validate(raw))
            except ValueError as e:
                logger.debug(f"[DEXSCREENER] Skipping malformed pair for {token_address}: {e}")
        return result
