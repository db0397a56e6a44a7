"""Zora SDK API client: coin metadata and creator profile.

Tries the primary base then the fallback base. 404 on every base means the
coin is not indexed (yet); a 503 anywhere is flagged as an infrastructure
error so slow validation can back off longer.
"""

import time
from collections.abc import Callable

from loguru import logger

from sniper.parsers.http_guard import GuardedHttpClient, RequestPolicy
from sniper.parsers.retry import RetryError
from sniper.parsers.zora.models import ZoraCoinResponse, ZoraCoinResult, ZoraLookupStatus

API_BASE = "https://api-sdk.zora.engineering"
API_BASE_FALLBACK = "https://api-sdk.zora.co"
BASE_CHAIN_ID = 8453
HEALTH_CHECK_INTERVAL_SEC = 30.0
HEALTH_PROBE_ADDRESS = "0x0000000000000000000000000000000000000000"


class ZoraApiError(Exception):
    """Zora API error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ZoraClient:
    def __init__(
        self,
        http: GuardedHttpClient,
        api_key: str,
        *,
        api_base: str = API_BASE,
        api_base_fallback: str = API_BASE_FALLBACK,
        policy: RequestPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._bases = [b.rstrip("/") for b in (api_base, api_base_fallback) if b]
        self._policy = policy or RequestPolicy(
            host_key="zora", concurrency=4, max_retries=2, initial_delay_sec=0.5
        )
        self._clock = clock
        self.healthy = True
        self._last_check: float | None = None
        self._last_healthy_at = clock()

    async def _fetch_from(self, base: str, token_address: str) -> ZoraCoinResponse | None:
        try:
            response = await self._http.get(
                f"{base}/coin",
                self._policy,
                params={"address": token_address, "chain": str(BASE_CHAIN_ID)},
                headers={"api-key": self._api_key},
            )
        except RetryError as e:
            raise ZoraApiError(str(e), e.last_status) from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise ZoraApiError(f"Zora HTTP {response.status_code}", response.status_code)
        try:
            return ZoraCoinResponse.model_validate(response.json())
        except ValueError as e:
            raise ZoraApiError(
                f"Zora non-JSON response ({response.status_code})", response.status_code
            ) from e

    async def get_coin(self, token_address: str) -> ZoraCoinResult:
        """Look up a coin across all configured bases. Never raises."""
        if not self._api_key:
            return ZoraCoinResult(
                status=ZoraLookupStatus.API_ERROR, error="ZORA_API_KEY not configured"
            )

        not_found_count = 0
        got_503 = False
        last_error: str | None = None

        for base in self._bases:
            try:
                coin = await self._fetch_from(base, token_address)
            except ZoraApiError as e:
                last_error = str(e)
                if e.status_code == 503:
                    got_503 = True
                    logger.warning(f"[ZORA] 503 on {base} - infrastructure issue")
                continue

            if coin is None:
                logger.debug(f"[ZORA] 404 for {token_address} on {base}")
                not_found_count += 1
                continue

            self.healthy = True
            return ZoraCoinResult(status=ZoraLookupStatus.SUCCESS, token=coin.token)

        if not_found_count == len(self._bases):
            return ZoraCoinResult(status=ZoraLookupStatus.NOT_FOUND)

        if got_503:
            if self.healthy:
                logger.warning("[ZORA] API marked as unhealthy (503)")
            self.healthy = False

        if last_error:
            logger.warning(f"[ZORA] Coin lookup failed: {last_error}")
            return ZoraCoinResult(
                status=ZoraLookupStatus.API_ERROR, error=last_error, is_503=got_503
            )
        return ZoraCoinResult(status=ZoraLookupStatus.NOT_FOUND)

    async def check_health(self) -> bool:
        """Probe the primary base at most once per HEALTH_CHECK_INTERVAL_SEC."""
        now = self._clock()
        if self._last_check is not None and now - self._last_check < HEALTH_CHECK_INTERVAL_SEC:
            return self.healthy
        self._last_check = now

        probe_policy = RequestPolicy(
            host_key=self._policy.host_key,
            concurrency=self._policy.concurrency,
            timeout_sec=min(self._policy.timeout_sec, 5.0),
            max_retries=0,
        )
        try:
            await self._http.get(
                f"{self._bases[0]}/coin",
                probe_policy,
                params={"address": HEALTH_PROBE_ADDRESS, "chain": str(BASE_CHAIN_ID)},
                headers={"api-key": self._api_key},
            )
        except RetryError as e:
            if self.healthy:
                logger.warning(f"[ZORA] API health check FAILED: {e}")
            self.healthy = False
            return False

        if not self.healthy:
            downtime = int(now - self._last_healthy_at)
            logger.info(f"[ZORA] API recovered after {downtime}s downtime")
        self.healthy = True
        self._last_healthy_at = now
        return True
