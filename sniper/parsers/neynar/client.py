"""Neynar client: Farcaster users by wallet, username and FID.

Docs: https://docs.neynar.com/reference
"""

from typing import Any

from pydantic import ValidationError

from sniper.parsers.http_guard import GuardedHttpClient, RequestPolicy
from sniper.parsers.neynar.models import (
    NeynarBulkUsersResponse,
    NeynarUser,
    NeynarUserResponse,
    VerificationsResponse,
)
from sniper.parsers.retry import RetryError

API_BASE = "https://api.neynar.com"
HUB_BASE = "https://hub-api.neynar.com"


class NeynarApiError(Exception):
    """Neynar API error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NeynarClient:
    """Farcaster lookups. 404 maps to None, everything else non-2xx raises NeynarApiError."""

    def __init__(
        self,
        http: GuardedHttpClient,
        api_key: str,
        *,
        api_base: str = API_BASE,
        hub_base: str = HUB_BASE,
        policy: RequestPolicy | None = None,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._api_base = api_base.rstrip("/")
        self._hub_base = hub_base.rstrip("/")
        self._policy = policy or RequestPolicy(
            host_key="neynar", concurrency=4, max_retries=2, initial_delay_sec=0.25
        )

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def _get_json(self, url: str, params: dict[str, Any]) -> Any | None:
        try:
            response = await self._http.get(
                url, self._policy, params=params, headers={"x-api-key": self._api_key}
            )
        except RetryError as e:
            raise NeynarApiError(f"Request failed: {e}", e.last_status) from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise NeynarApiError(
                f"HTTP {response.status_code}: {response.text[:200]}", response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise NeynarApiError("Non-JSON response", response.status_code) from e

    async def get_user_by_address(self, address: str) -> NeynarUser | None:
        """Primary Farcaster user that verified this wallet."""
        address = address.lower()
        data = await self._get_json(
            f"{self._api_base}/v2/farcaster/user/bulk-by-address",
            {"addresses": address},
        )
        if data is None:
            return None
        if not isinstance(data, dict):
            raise NeynarApiError("Unexpected bulk-by-address payload")
        users = data.get(address) or []
        if not isinstance(users, list) or not users:
            return None
        try:
            user = NeynarUser.model_validate(users[0])
        except ValidationError as e:
            raise NeynarApiError(f"Malformed user payload: {e}") from e
        return user if user.fid else None

    async def get_user_by_username(self, username: str) -> NeynarUser | None:
        data = await self._get_json(
            f"{self._api_base}/v2/farcaster/user/by_username",
            {"username": username},
        )
        if data is None:
            return None
        try:
            user = NeynarUserResponse.model_validate(data).user
        except ValidationError as e:
            raise NeynarApiError(f"Malformed user payload: {e}") from e
        return user if user and user.fid else None

    async def get_user_by_fid(self, fid: int) -> NeynarUser | None:
        data = await self._get_json(
            f"{self._api_base}/v2/farcaster/user/bulk",
            {"fids": str(fid)},
        )
        if data is None:
            return None
        try:
            users = NeynarBulkUsersResponse.model_validate(data).users
        except ValidationError as e:
            raise NeynarApiError(f"Malformed bulk payload: {e}") from e
        return users[0] if users else None

    async def get_verified_addresses(self, fid: int) -> list[str]:
        """Lowercase ETH addresses verified by this FID (hub API)."""
        data = await self._get_json(
            f"{self._hub_base}/v1/verificationsByFid",
            {"fid": str(fid)},
        )
        if data is None:
            return []
        try:
            return VerificationsResponse.model_validate(data).eth_addresses
        except ValidationError as e:
            raise NeynarApiError(f"Malformed verifications payload: {e}") from e
