"""Tests for factory log decoding into typed events."""

import pytest

from sniper.parsers.chain.events import (
    CLANKER_TOKEN_CREATED_TOPIC,
    ClankerTokenCreated,
    EventDecodeError,
    ZoraCoinCreated,
    ZoraCoinCreatedV4,
    decode_log,
    event_topic,
    normalize_address,
    to_token_event,
)
from sniper.parsers.chain.models import RawLog


def test_event_topic_is_keccak_of_signature() -> None:
    # well-known ERC-20 Transfer topic
    assert event_topic("Transfer(address,address,uint256)") == (
        "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
    )


def test_normalize_address() -> None:
    padded = "0x" + "0" * 24 + "AbC" + "1" * 37
    assert normalize_address(padded) == "0xabc" + "1" * 37
    assert normalize_address("0x" + "0" * 64) is None
    assert normalize_address("0x1234") is None
    assert normalize_address(None) is None


def test_raw_log_parses_hex_quantities() -> None:
    log = RawLog(
        address="0xABC",
        topics=[],
        blockNumber="0x10",
        logIndex="0x2",
        transactionHash="0xDEAD",
    )
    assert log.blockNumber == 16
    assert log.logIndex == 2
    assert log.dedup_key == "0xdead:2:0xabc"


def test_dedup_key_defaults_for_missing_fields() -> None:
    log = RawLog(address="0xabc")
    assert log.dedup_key == "unknown:unknown:0xabc"


class TestClankerDecode:
    def test_token_created(self, clanker_log) -> None:
        event = decode_log(clanker_log(block=123, log_index=4))
        assert isinstance(event, ClankerTokenCreated)
        assert event.token == "0x" + "a" * 40
        assert event.creator == "0x" + "b" * 40
        assert event.name == "Alice Coin"
        assert event.symbol == "ALICE"
        assert event.supply == 10**27
        assert event.block_number == 123
        assert event.log_index == 4

    def test_to_token_event(self, clanker_log) -> None:
        token_event = to_token_event(decode_log(clanker_log()))
        assert token_event.platform == "clanker"
        assert token_event.address == "0x" + "a" * 40
        assert token_event.creator == "0x" + "b" * 40
        assert token_event.pool_address is None
        assert token_event.label == "ALICE"

    def test_bankr_vanity_address_skipped(self, clanker_log) -> None:
        assert decode_log(clanker_log(token="0x" + "1" * 37 + "b07")) is None

    def test_missing_topics_raises(self, clanker_log) -> None:
        raw = clanker_log()
        broken = raw.model_copy(update={"topics": [CLANKER_TOKEN_CREATED_TOPIC]})
        with pytest.raises(EventDecodeError):
            decode_log(broken)

    def test_garbage_data_raises(self, clanker_log) -> None:
        broken = clanker_log().model_copy(update={"data": "0x1234"})
        with pytest.raises(EventDecodeError):
            decode_log(broken)

    def test_pending_log_raises(self, clanker_log) -> None:
        pending = clanker_log().model_copy(update={"blockNumber": None})
        with pytest.raises(EventDecodeError):
            decode_log(pending)


class TestZoraDecode:
    def test_coin_created(self, zora_coin_log) -> None:
        event = decode_log(zora_coin_log())
        assert isinstance(event, ZoraCoinCreated)
        assert event.coin == "0x" + "c" * 40
        assert event.payout_recipient == "0x" + "d" * 40
        assert event.caller == "0x" + "e" * 40
        assert event.platform_referrer is None
        assert event.creator == event.payout_recipient
        assert event.pool == "0x" + "f" * 40
        assert event.version == "1.0.0"

    def test_coin_created_keeps_pool_address(self, zora_coin_log) -> None:
        token_event = to_token_event(decode_log(zora_coin_log()))
        assert token_event.platform == "zora"
        assert token_event.address == "0x" + "c" * 40
        assert token_event.pool_address == "0x" + "f" * 40
        assert token_event.symbol == "ZC"

    def test_coin_created_v4(self, zora_v4_log) -> None:
        event = decode_log(zora_v4_log())
        assert isinstance(event, ZoraCoinCreatedV4)
        assert event.coin == "0x" + "9" * 40
        assert event.pool_key.fee == 10000
        assert event.pool_key.tick_spacing == 200
        assert event.pool_id == "0x" + "11" * 32
        # poolKey.hooks is not a pool address
        assert to_token_event(event).pool_address is None

    def test_unknown_topic_ignored(self) -> None:
        raw = RawLog(address="0xabc", topics=["0x" + "00" * 32], blockNumber=1, transactionHash="0x1")
        assert decode_log(raw) is None
