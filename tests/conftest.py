"""Shared test fixtures."""

from datetime import UTC, datetime

import pytest
from eth_abi import encode

from sniper.parsers.chain.events import (
    CLANKER_TOKEN_CREATED_TOPIC,
    POOL_KEY_TYPE,
    ZORA_COIN_CREATED_TOPIC,
    ZORA_COIN_CREATED_V4_TOPIC,
)
from sniper.parsers.chain.models import RawLog
from sniper.parsers.models import CreatorInfo, TokenEvent

CLANKER_FACTORY = "0xe85a59c628f7d27878aceb4bf3b35733630083a9"
ZORA_FACTORY = "0x777777751622c0d3258f214f9df38e35bf45baf3"
WETH = "0x4200000000000000000000000000000000000006"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def topic_address(address: str) -> str:
    return "0x" + "0" * 24 + address.lower().removeprefix("0x")


def _clanker_log(
    token: str = "0x" + "a" * 40,
    creator: str = "0x" + "b" * 40,
    *,
    name: str = "Alice Coin",
    symbol: str = "ALICE",
    block: int = 100,
    log_index: int = 0,
    tx_hash: str = "0x" + "1" * 64,
) -> RawLog:
    data = encode(["string", "string", "uint256"], [name, symbol, 10**27])
    return RawLog(
        address=CLANKER_FACTORY,
        topics=[CLANKER_TOKEN_CREATED_TOPIC, topic_address(token), topic_address(creator)],
        data="0x" + data.hex(),
        blockNumber=hex(block),
        transactionHash=tx_hash,
        logIndex=hex(log_index),
    )


def _zora_coin_log(
    coin: str = "0x" + "c" * 40,
    payout: str = "0x" + "d" * 40,
    *,
    caller: str = "0x" + "e" * 40,
    pool: str = "0x" + "f" * 40,
    block: int = 200,
    log_index: int = 1,
    tx_hash: str = "0x" + "2" * 64,
) -> RawLog:
    data = encode(
        ["address", "string", "string", "string", "address", "address", "string"],
        [WETH, "ipfs://meta", "Zora Coin", "ZC", coin, pool, "1.0.0"],
    )
    return RawLog(
        address=ZORA_FACTORY,
        topics=[
            ZORA_COIN_CREATED_TOPIC,
            topic_address(caller),
            topic_address(payout),
            topic_address("0x" + "0" * 40),
        ],
        data="0x" + data.hex(),
        blockNumber=hex(block),
        transactionHash=tx_hash,
        logIndex=hex(log_index),
    )


def _zora_v4_log(
    coin: str = "0x" + "9" * 40,
    payout: str = "0x" + "8" * 40,
    *,
    caller: str = "0x" + "7" * 40,
    block: int = 300,
    log_index: int = 2,
    tx_hash: str = "0x" + "3" * 64,
) -> RawLog:
    pool_key = (WETH, coin, 10000, 200, "0x" + "5" * 40)
    data = encode(
        ["address", "string", "string", "string", "address", POOL_KEY_TYPE, "bytes32", "string"],
        [WETH, "ipfs://post", "Post", "POST", coin, pool_key, b"\x11" * 32, "4.0.0"],
    )
    return RawLog(
        address=ZORA_FACTORY,
        topics=[
            ZORA_COIN_CREATED_V4_TOPIC,
            topic_address(caller),
            topic_address(payout),
            topic_address("0x" + "0" * 40),
        ],
        data="0x" + data.hex(),
        blockNumber=hex(block),
        transactionHash=tx_hash,
        logIndex=hex(log_index),
    )


def _make_event(**kwargs) -> TokenEvent:
    defaults = {
        "address": "0x" + "a" * 40,
        "platform": "clanker",
        "tx_hash": "0x" + "1" * 64,
        "block_number": 100,
        "detected_at": datetime(2026, 1, 1, tzinfo=UTC),
        "name": "Alice Coin",
        "symbol": "ALICE",
        "creator": "0x" + "b" * 40,
    }
    defaults.update(kwargs)
    return TokenEvent(**defaults)


def _make_creator(**kwargs) -> CreatorInfo:
    defaults = {
        "platform": "clanker",
        "fid": 42,
        "username": "alice",
        "neynar_score": 0.95,
        "farcaster_followers": 15_000,
        "twitter_handle": None,
        "twitter_followers": None,
    }
    defaults.update(kwargs)
    return CreatorInfo(**defaults)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1_000.0)


@pytest.fixture
def clanker_log():
    return _clanker_log


@pytest.fixture
def zora_coin_log():
    return _zora_coin_log


@pytest.fixture
def zora_v4_log():
    return _zora_v4_log


@pytest.fixture
def make_event():
    return _make_event


@pytest.fixture
def make_creator():
    return _make_creator
