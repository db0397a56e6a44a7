"""Per-host concurrency guard + timeout + exponential-backoff retry for httpx.

Every external lookup (Neynar, Twitter, Zora, Clanker, DexScreener) goes
through one shared GuardedHttpClient so a burst of new tokens cannot open
more than `concurrency` sockets against any single API host.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from sniper.parsers.retry import RetryError, compute_backoff


class RetryableStatusError(Exception):
    """HTTP status that the policy treats as transient (5xx / 429 by default)."""

    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"HTTP {status_code} from {url}")
        self.status_code = status_code
        self.url = url


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def is_retryable_error(error: BaseException) -> bool:
    """Network errors, timeouts and retryable statuses are worth another try."""
    if isinstance(error, RetryableStatusError):
        return True
    return isinstance(error, httpx.TransportError)


@dataclass(frozen=True)
class RequestPolicy:
    host_key: str | None = None
    concurrency: int = 8
    timeout_sec: float = 10.0
    max_retries: int = 3
    initial_delay_sec: float = 0.5
    max_delay_sec: float = 10.0
    backoff_multiplier: float = 2.0
    retry_status: Callable[[int], bool] = field(default=is_retryable_status)
    should_retry: Callable[[BaseException], bool] = field(default=is_retryable_error)


class HostLimiter:
    """FIFO concurrency limiter for one host key."""

    def __init__(self, concurrency: int) -> None:
        self.concurrency = max(1, concurrency)
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self._active = 0

    @property
    def active(self) -> int:
        return self._active

    async def __aenter__(self) -> "HostLimiter":
        await self._semaphore.acquire()
        self._active += 1
        return self

    async def __aexit__(self, *exc: object) -> None:
        self._active -= 1
        self._semaphore.release()


class GuardedHttpClient:
    """Shared httpx client with per-host limiters and retry policy."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        user_agent: str = "base-sniper/1.0",
        default_policy: RequestPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            headers={"Accept": "application/json", "User-Agent": user_agent},
            follow_redirects=True,
        )
        self._limiters: dict[tuple[str, int], HostLimiter] = {}
        self._default_policy = default_policy or RequestPolicy()
        self._sleep = sleep

    def limiter(self, key: str, concurrency: int) -> HostLimiter:
        """Get existing limiter for key or create a new one.

        No await between check and set, so concurrent callers share one limiter.
        """
        limiter_key = (key, max(1, concurrency))
        inst = self._limiters.get(limiter_key)
        if inst is None:
            inst = HostLimiter(concurrency)
            self._limiters[limiter_key] = inst
        return inst

    async def request(
        self,
        method: str,
        url: str | httpx.URL,
        policy: RequestPolicy | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Run one guarded request.

        Returns the response for 2xx and non-retryable statuses (404 included).
        Raises RetryError once retries are exhausted or the failure is not retryable.
        """
        policy = policy or self._default_policy
        target = httpx.URL(url)
        host_key = policy.host_key or target.host
        async with self.limiter(host_key, policy.concurrency):
            return await self._request_with_retry(method, target, policy, **kwargs)

    async def get(self, url: str | httpx.URL, policy: RequestPolicy | None = None, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, policy, **kwargs)

    async def _request_with_retry(
        self,
        method: str,
        url: httpx.URL,
        policy: RequestPolicy,
        **kwargs: Any,
    ) -> httpx.Response:
        attempts = policy.max_retries + 1
        for attempt in range(attempts):
            try:
                response = await self._client.request(
                    method, url, timeout=policy.timeout_sec, **kwargs
                )
                if policy.retry_status(response.status_code):
                    raise RetryableStatusError(response.status_code, str(url))
                return response
            except (httpx.HTTPError, RetryableStatusError) as e:
                if attempt >= policy.max_retries or not policy.should_retry(e):
                    raise RetryError(
                        f"Failed after {attempt + 1} attempts: {type(e).__name__}: {e}",
                        attempt + 1,
                        e,
                    ) from e
                delay = compute_backoff(
                    attempt,
                    policy.initial_delay_sec,
                    policy.max_delay_sec,
                    policy.backoff_multiplier,
                )
                logger.debug(
                    f"[HTTP] {url.host} {type(e).__name__}, "
                    f"retry {attempt + 1}/{policy.max_retries} in {delay:.2f}s"
                )
                await self._sleep(delay)
        raise RetryError("Max retries exceeded", attempts, None)

    async def close(self) -> None:
        await self._client.aclose()
