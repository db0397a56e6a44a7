"""Factory event signatures and log decoding.

Each supported event signature decodes into its own frozen dataclass, so
downstream code never pokes at ad hoc dicts of decoded args.

Clanker:
    TokenCreated(address indexed token, address indexed creator,
                 string name, string symbol, uint256 supply)
Zora (all share indexed caller, payoutRecipient, platformReferrer and a
data prefix of currency, uri, name, symbol, coin):
    CoinCreated            legacy, Uniswap V3 pool address
    CreatorCoinCreated     V1, bytes32 poolKeyHash
    CreatorCoinCreated     V2, PoolKey tuple + bytes32 poolKeyHash
    CoinCreatedV4          content coins, PoolKey tuple + bytes32 poolId
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import encode_hex, keccak
from loguru import logger

from sniper.parsers.chain.models import RawLog
from sniper.parsers.models import TokenEvent

ZERO_ADDRESS = "0x" + "0" * 40
POOL_KEY_TYPE = "(address,address,uint24,int24,address)"

CLANKER_TOKEN_CREATED_SIG = "TokenCreated(address,address,string,string,uint256)"
ZORA_COIN_CREATED_SIG = (
    "CoinCreated(address,address,address,address,string,string,string,address,address,string)"
)
ZORA_CREATOR_COIN_CREATED_SIG = (
    "CreatorCoinCreated(address,address,address,address,string,string,string,address,bytes32,string)"
)
ZORA_CREATOR_COIN_CREATED_V2_SIG = (
    "CreatorCoinCreated(address,address,address,address,string,string,string,address,"
    f"{POOL_KEY_TYPE},bytes32,string)"
)
ZORA_COIN_CREATED_V4_SIG = (
    "CoinCreatedV4(address,address,address,address,string,string,string,address,"
    f"{POOL_KEY_TYPE},bytes32,string)"
)


def event_topic(signature: str) -> str:
    return encode_hex(keccak(text=signature)).lower()


CLANKER_TOKEN_CREATED_TOPIC = event_topic(CLANKER_TOKEN_CREATED_SIG)
ZORA_COIN_CREATED_TOPIC = event_topic(ZORA_COIN_CREATED_SIG)
ZORA_CREATOR_COIN_CREATED_TOPIC = event_topic(ZORA_CREATOR_COIN_CREATED_SIG)
ZORA_CREATOR_COIN_CREATED_V2_TOPIC = event_topic(ZORA_CREATOR_COIN_CREATED_V2_SIG)
ZORA_COIN_CREATED_V4_TOPIC = event_topic(ZORA_COIN_CREATED_V4_SIG)

ZORA_CREATOR_TOPICS = (
    ZORA_COIN_CREATED_TOPIC,
    ZORA_CREATOR_COIN_CREATED_TOPIC,
    ZORA_CREATOR_COIN_CREATED_V2_TOPIC,
)

_ZORA_PREFIX = ["address", "string", "string", "string"]


class EventDecodeError(Exception):
    """Log matched a known signature but its payload is malformed."""


@dataclass(frozen=True)
class PoolKey:
    currency: str
    token0: str
    fee: int
    tick_spacing: int
    hooks: str


@dataclass(frozen=True)
class DecodedEvent:
    factory: str
    tx_hash: str
    block_number: int
    log_index: int


@dataclass(frozen=True)
class ClankerTokenCreated(DecodedEvent):
    token: str
    creator: str | None
    name: str
    symbol: str
    supply: int


@dataclass(frozen=True)
class ZoraCoinEvent(DecodedEvent):
    caller: str | None
    payout_recipient: str | None
    platform_referrer: str | None
    currency: str
    uri: str
    name: str
    symbol: str
    coin: str
    version: str

    @property
    def creator(self) -> str | None:
        return self.payout_recipient or self.caller


@dataclass(frozen=True)
class ZoraCoinCreated(ZoraCoinEvent):
    pool: str | None


@dataclass(frozen=True)
class ZoraCreatorCoinCreated(ZoraCoinEvent):
    pool_key_hash: str


@dataclass(frozen=True)
class ZoraCreatorCoinCreatedV2(ZoraCoinEvent):
    pool_key: PoolKey
    pool_key_hash: str


@dataclass(frozen=True)
class ZoraCoinCreatedV4(ZoraCoinEvent):
    pool_key: PoolKey
    pool_id: str


def normalize_address(value: str | bytes | None) -> str | None:
    """20-byte or 32-byte padded hex -> lowercase 0x address. Zero address -> None."""
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.hex()
    hex_str = value.lower().removeprefix("0x")
    if len(hex_str) < 40:
        return None
    hex_str = hex_str[-40:]
    try:
        int(hex_str, 16)
    except ValueError:
        return None
    address = "0x" + hex_str
    return None if address == ZERO_ADDRESS else address


def is_bankr_address(address: str) -> bool:
    """Bankr-deployed Clanker tokens use vanity addresses ending in b07."""
    return address.lower().endswith("b07")


def _data_bytes(raw: RawLog) -> bytes:
    try:
        return bytes.fromhex(raw.data.removeprefix("0x"))
    except ValueError as e:
        raise EventDecodeError(f"log data is not hex: {e}") from e


def _decode(types: list[str], raw: RawLog) -> tuple:
    try:
        return decode(types, _data_bytes(raw))
    except (DecodingError, ValueError, OverflowError) as e:
        raise EventDecodeError(f"cannot decode {raw.topic0} data: {e}") from e


def _meta(raw: RawLog) -> dict:
    if raw.transactionHash is None or raw.blockNumber is None:
        raise EventDecodeError("log is missing transactionHash or blockNumber (pending?)")
    return {
        "factory": raw.address.lower(),
        "tx_hash": raw.transactionHash.lower(),
        "block_number": raw.blockNumber,
        "log_index": raw.logIndex or 0,
    }


def _pool_key(value: tuple) -> PoolKey:
    currency, token0, fee, tick_spacing, hooks = value
    return PoolKey(
        currency=currency.lower(),
        token0=token0.lower(),
        fee=fee,
        tick_spacing=tick_spacing,
        hooks=hooks.lower(),
    )


def _decode_clanker(raw: RawLog) -> ClankerTokenCreated | None:
    if len(raw.topics) < 3:
        raise EventDecodeError("TokenCreated needs 3 topics")
    token = normalize_address(raw.topics[1])
    if token is None or token == raw.address.lower():
        raise EventDecodeError("TokenCreated has no usable token address")
    if is_bankr_address(token):
        logger.info(f"[INGEST] Skipping Bankr deployment (address ends with b07): {token}")
        return None
    name, symbol, supply = _decode(["string", "string", "uint256"], raw)
    return ClankerTokenCreated(
        **_meta(raw),
        token=token,
        creator=normalize_address(raw.topics[2]),
        name=name,
        symbol=symbol,
        supply=supply,
    )


def _decode_zora(raw: RawLog, topic: str) -> ZoraCoinEvent:
    if len(raw.topics) < 4:
        raise EventDecodeError("Zora coin event needs 4 topics")

    if topic == ZORA_COIN_CREATED_TOPIC:
        tail = ["address", "address", "string"]
    elif topic == ZORA_CREATOR_COIN_CREATED_TOPIC:
        tail = ["address", "bytes32", "string"]
    else:
        tail = ["address", POOL_KEY_TYPE, "bytes32", "string"]
    currency, uri, name, symbol, *rest = _decode(_ZORA_PREFIX + tail, raw)

    coin = normalize_address(rest[0])
    if coin is None or coin == raw.address.lower():
        raise EventDecodeError("Zora event has no usable coin address")

    common = {
        **_meta(raw),
        "caller": normalize_address(raw.topics[1]),
        "payout_recipient": normalize_address(raw.topics[2]),
        "platform_referrer": normalize_address(raw.topics[3]),
        "currency": currency.lower(),
        "uri": uri,
        "name": name,
        "symbol": symbol,
        "coin": coin,
        "version": rest[-1],
    }
    if topic == ZORA_COIN_CREATED_TOPIC:
        return ZoraCoinCreated(**common, pool=normalize_address(rest[1]))
    if topic == ZORA_CREATOR_COIN_CREATED_TOPIC:
        return ZoraCreatorCoinCreated(**common, pool_key_hash=encode_hex(rest[1]))
    if topic == ZORA_CREATOR_COIN_CREATED_V2_TOPIC:
        return ZoraCreatorCoinCreatedV2(
            **common, pool_key=_pool_key(rest[1]), pool_key_hash=encode_hex(rest[2])
        )
    return ZoraCoinCreatedV4(**common, pool_key=_pool_key(rest[1]), pool_id=encode_hex(rest[2]))


def decode_log(raw: RawLog) -> DecodedEvent | None:
    """Decode a factory log. None for unknown signatures and skipped deployments.

    Raises EventDecodeError when a known signature carries a malformed payload.
    """
    topic = raw.topic0
    if topic == CLANKER_TOKEN_CREATED_TOPIC:
        return _decode_clanker(raw)
    if topic in ZORA_CREATOR_TOPICS or topic == ZORA_COIN_CREATED_V4_TOPIC:
        return _decode_zora(raw, topic)
    return None


def to_token_event(event: DecodedEvent, detected_at: datetime | None = None) -> TokenEvent:
    detected_at = detected_at or datetime.now(UTC)
    if isinstance(event, ClankerTokenCreated):
        return TokenEvent(
            address=event.token,
            platform="clanker",
            tx_hash=event.tx_hash,
            block_number=event.block_number,
            detected_at=detected_at,
            name=event.name or None,
            symbol=event.symbol or None,
            creator=event.creator,
        )
    if isinstance(event, ZoraCoinEvent):
        # only the legacy event carries a pool address; poolKey.hooks is not a pool
        pool = event.pool if isinstance(event, ZoraCoinCreated) else None
        return TokenEvent(
            address=event.coin,
            platform="zora",
            tx_hash=event.tx_hash,
            block_number=event.block_number,
            detected_at=detected_at,
            name=event.name or None,
            symbol=event.symbol or None,
            creator=event.creator,
            pool_address=pool,
        )
    raise TypeError(f"unsupported event type {type(event).__name__}")
