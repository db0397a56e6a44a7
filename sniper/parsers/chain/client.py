"""Base chain JSON-RPC: eth_blockNumber / eth_getLogs over HTTP, eth_subscribe "logs" over WS."""

import asyncio
import json
from collections.abc import Callable
from enum import Enum
from typing import Any

import httpx
import websockets
from loguru import logger
from pydantic import ValidationError

from sniper.parsers.chain.models import RawLog

LogsCallback = Callable[[list[RawLog]], None]
ErrorCallback = Callable[[BaseException], None]


class ChainRpcError(Exception):
    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ACTIVE = "active"


def build_log_filter(address: str | list[str], topics: list[str] | None = None) -> dict[str, Any]:
    """eth_subscribe / eth_getLogs filter. `topics` are OR-ed in position 0."""
    log_filter: dict[str, Any] = {"address": address}
    if topics:
        log_filter["topics"] = [topics if len(topics) > 1 else topics[0]]
    return log_filter


class LogWatch:
    """One eth_subscribe("logs") stream with auto-reconnect.

    Delivered logs are handed to `on_logs` synchronously, in arrival order,
    so the caller can mark dedup keys before any await. Transport failures
    are reported to `on_error` before each reconnect.
    """

    def __init__(
        self,
        ws_url: str,
        label: str,
        log_filter: dict[str, Any],
        on_logs: LogsCallback,
        on_error: ErrorCallback | None = None,
        *,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 30.0,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        self.ws_url = ws_url
        self.label = label
        self.log_filter = log_filter
        self.on_logs = on_logs
        self.on_error = on_error
        self._connect = connect
        self._initial_delay = reconnect_delay
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._running = False
        self._ws: Any = None
        self._task: asyncio.Task | None = None
        self._subscription_id: str | None = None
        self._state = ConnectionState.DISCONNECTED
        self._message_count = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def message_count(self) -> int:
        return self._message_count

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> asyncio.Task:
        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"watch:{self.label}")
        return self._task

    async def _run(self) -> None:
        while self._running:
            try:
                self._state = ConnectionState.CONNECTING
                async with self._connect(
                    self.ws_url,
                    ping_interval=30,
                    ping_timeout=10,
                    close_timeout=5,
                ) as ws:
                    self._ws = ws
                    self._state = ConnectionState.CONNECTED
                    await self._subscribe()
                    self._state = ConnectionState.ACTIVE
                    self._reconnect_delay = self._initial_delay
                    logger.info(f"[CHAIN] {self.label} subscribed (id={self._subscription_id})")
                    await self._listen()
                    if self._running:
                        raise ChainRpcError(f"{self.label} stream ended")
            except (
                websockets.ConnectionClosed,
                ConnectionError,
                OSError,
                TimeoutError,
                ChainRpcError,
            ) as e:
                self._state = ConnectionState.DISCONNECTED
                self._ws = None
                self._subscription_id = None
                if not self._running:
                    break
                logger.warning(f"[CHAIN] {self.label} watch error: {e}")
                if self.on_error:
                    self.on_error(e)
                logger.info(f"[CHAIN] {self.label} reconnecting in {self._reconnect_delay:.0f}s...")
                await asyncio.sleep(self._reconnect_delay)
                self._reconnect_delay = min(self._reconnect_delay * 2, self._max_reconnect_delay)
        self._state = ConnectionState.DISCONNECTED

    async def _subscribe(self) -> None:
        await self._ws.send(json.dumps({
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_subscribe",
            "params": ["logs", self.log_filter],
        }))
        try:
            response = await asyncio.wait_for(self._ws.recv(), timeout=10.0)
            data = json.loads(response)
        except json.JSONDecodeError as e:
            raise ChainRpcError(f"bad eth_subscribe response: {e}") from e
        if "error" in data:
            error = data["error"] or {}
            raise ChainRpcError(f"eth_subscribe failed: {error.get('message')}", error.get("code"))
        self._subscription_id = data.get("result")

    async def _listen(self) -> None:
        async for message in self._ws:
            self._message_count += 1
            self.handle_message(message)

    def handle_message(self, message: str | bytes) -> list[RawLog]:
        """Parse one WS frame; deliver its log (if any) to on_logs."""
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            return []
        if data.get("method") != "eth_subscription":
            return []
        result = (data.get("params") or {}).get("result")
        if not isinstance(result, dict):
            return []
        try:
            log = RawLog.model_validate(result)
        except ValidationError as e:
            logger.debug(f"[CHAIN] {self.label} malformed log notification: {e}")
            return []
        if log.removed:
            logger.debug(f"[CHAIN] {self.label} skipping removed (reorged) log {log.dedup_key}")
            return []
        self.on_logs([log])
        return [log]

    async def unwatch(self) -> None:
        self._running = False
        if self._ws is not None:
            try:
                await self._ws.close()
            except (websockets.ConnectionClosed, OSError) as e:
                logger.debug(f"[CHAIN] {self.label} close error: {e}")
            self._ws = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._state = ConnectionState.DISCONNECTED


class ChainRpcClient:
    """Minimal Base JSON-RPC client."""

    def __init__(
        self,
        http_url: str,
        ws_url: str,
        *,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.http_url = http_url
        self.ws_url = ws_url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._request_id = 0

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        try:
            resp = await self._client.post(self.http_url, json=payload)
        except httpx.HTTPError as e:
            raise ChainRpcError(f"{method} request failed: {type(e).__name__}: {e}") from e
        if resp.status_code != 200:
            raise ChainRpcError(f"{method} HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise ChainRpcError(f"{method} returned non-JSON body") from e
        if data.get("error"):
            error = data["error"]
            raise ChainRpcError(f"{method} error: {error.get('message')}", error.get("code"))
        return data.get("result")

    async def get_block_number(self) -> int:
        result = await self._call("eth_blockNumber", [])
        if not isinstance(result, str):
            raise ChainRpcError(f"eth_blockNumber returned {result!r}")
        return int(result, 16)

    async def get_logs(
        self,
        address: str | list[str],
        topics: list[str] | None,
        from_block: int,
        to_block: int,
    ) -> list[RawLog]:
        log_filter = build_log_filter(address, topics)
        log_filter["fromBlock"] = hex(from_block)
        log_filter["toBlock"] = hex(to_block)
        result = await self._call("eth_getLogs", [log_filter])
        logs = []
        for raw in result or []:
            try:
                log = RawLog.model_validate(raw)
            except ValidationError as e:
                logger.debug(f"[CHAIN] Skipping malformed log: {e}")
                continue
            if not log.removed:
                logs.append(log)
        return logs

    def watch_logs(
        self,
        label: str,
        address: str | list[str],
        topics: list[str] | None,
        on_logs: LogsCallback,
        on_error: ErrorCallback | None = None,
    ) -> LogWatch:
        """Start a live log watch. Caller owns the returned LogWatch and must unwatch() it."""
        watch = LogWatch(self.ws_url, label, build_log_filter(address, topics), on_logs, on_error)
        watch.start()
        return watch
