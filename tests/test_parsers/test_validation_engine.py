"""Tests for the fast/slow validation paths."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from sniper.parsers.clanker.models import ClankerToken
from sniper.parsers.creator_resolver import CreatorResolver, FarcasterProfile
from sniper.parsers.models import CreatorLookup, LookupStatus
from sniper.parsers.neynar.models import NeynarUser
from sniper.parsers.validation import SpamGuard, ValidationEngine, ValidationPolicy


def _resolver() -> MagicMock:
    resolver = MagicMock()
    resolver.farcaster_by_address = AsyncMock(return_value=None)
    resolver.twitter_followers = AsyncMock(return_value=None)
    resolver.resolve_clanker = AsyncMock()
    resolver.resolve_zora = AsyncMock()
    return resolver


def _engine(resolver, clock, **policy) -> ValidationEngine:
    return ValidationEngine(
        resolver,
        ValidationPolicy(**policy),
        SpamGuard(max_tokens_per_creator=2, clock=clock),
        sleep=AsyncMock(),
    )


class TestFastPath:
    @pytest.mark.asyncio
    async def test_big_account_passes(self, clock, make_event) -> None:
        resolver = _resolver()
        resolver.farcaster_by_address.return_value = FarcasterProfile(
            fid=42, username="alice", score=0.8, followers=500, twitter_handle="alice"
        )
        resolver.twitter_followers.return_value = 80_000
        engine = _engine(resolver, clock)

        result = await engine.validate_fast(make_event())

        assert result.passes
        info = result.creator_info
        assert info.fid == 42
        assert info.twitter_followers == 80_000
        assert engine.policy.is_big_account(info)
        resolver.farcaster_by_address.assert_awaited_once_with("0x" + "b" * 40, timeout=2.5)
        resolver.twitter_followers.assert_awaited_once_with("alice", timeout=2.5)

    @pytest.mark.asyncio
    async def test_missing_creator(self, clock, make_event) -> None:
        engine = _engine(_resolver(), clock)
        result = await engine.validate_fast(make_event(creator=None))
        assert result.reasons == ["creator_missing"]

    @pytest.mark.asyncio
    async def test_not_found(self, clock, make_event) -> None:
        engine = _engine(_resolver(), clock)
        result = await engine.validate_fast(make_event())
        assert not result.passes
        assert result.reasons == ["creator_not_found_fast"]

    @pytest.mark.asyncio
    async def test_platform_fid_rejected(self, clock, make_event) -> None:
        resolver = _resolver()
        resolver.farcaster_by_address.return_value = FarcasterProfile(
            fid=886870, username="bankr", score=1.0, followers=90_000, twitter_handle=None
        )
        engine = _engine(resolver, clock)
        result = await engine.validate_fast(make_event())
        assert result.reasons == ["platform_fid: 886870"]
        resolver.twitter_followers.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lookup_timeout_reads_as_not_found(self, clock, make_event) -> None:
        release = asyncio.Event()

        async def slow_lookup(_address):
            await release.wait()
            return None

        neynar = MagicMock(enabled=True)
        neynar.get_user_by_address = AsyncMock(side_effect=slow_lookup)
        twitter = MagicMock(enabled=True)
        resolver = CreatorResolver(neynar, twitter, MagicMock(), MagicMock(), clock=clock)
        engine = _engine(resolver, clock, fast_timeout_sec=0.01)

        result = await engine.validate_fast(make_event())

        assert result.reasons == ["creator_not_found_fast"]
        release.set()
        await asyncio.sleep(0)


class TestSlowPath:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_503(self, clock, make_event, make_creator) -> None:
        resolver = _resolver()
        resolver.resolve_clanker.side_effect = [
            CreatorLookup(status=LookupStatus.API_ERROR_503, reason="HTTP 503"),
            CreatorLookup(status=LookupStatus.SUCCESS, creator_info=make_creator(fid=42)),
        ]
        engine = _engine(resolver, clock)

        result = await engine.validate_with_retry(make_event())

        assert result.passes
        assert resolver.resolve_clanker.await_count == 2
        # 503 doubles the first 1s delay
        engine._sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self, clock, make_event) -> None:
        resolver = _resolver()
        resolver.resolve_clanker.return_value = CreatorLookup(status=LookupStatus.NOT_FOUND)
        engine = _engine(resolver, clock, slow_retries=3)

        result = await engine.validate_with_retry(make_event())

        assert not result.passes
        assert result.reasons == ["creator_not_found_after_retries"]
        assert resolver.resolve_clanker.await_count == 4
        assert [c.args[0] for c in engine._sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_policy_rejection_is_not_retried(self, clock, make_event, make_creator) -> None:
        resolver = _resolver()
        resolver.resolve_clanker.return_value = CreatorLookup(
            status=LookupStatus.SUCCESS, creator_info=make_creator(farcaster_followers=10)
        )
        engine = _engine(resolver, clock)
        result = await engine.validate_with_retry(make_event())
        assert not result.passes
        assert resolver.resolve_clanker.await_count == 1
        engine._sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_platform_bot_is_not_retried(self, clock, make_event) -> None:
        resolver = _resolver()
        resolver.resolve_clanker.return_value = CreatorLookup(
            status=LookupStatus.PLATFORM_BOT, reason="platform_bot: bankr"
        )
        engine = _engine(resolver, clock)
        result = await engine.validate_with_retry(make_event())
        assert result.reasons == ["platform_bot: bankr"]
        assert resolver.resolve_clanker.await_count == 1

    @pytest.mark.asyncio
    async def test_zora_uses_zora_resolution(self, clock, make_event, make_creator) -> None:
        resolver = _resolver()
        resolver.resolve_zora.return_value = CreatorLookup(
            status=LookupStatus.SUCCESS, creator_info=make_creator(platform="zora")
        )
        engine = _engine(resolver, clock)
        event = make_event(platform="zora", address="0x" + "c" * 40)
        result = await engine.validate_full(event)
        assert result.passes
        resolver.resolve_zora.assert_awaited_once_with(event.address, event.creator)
        resolver.resolve_clanker.assert_not_awaited()


class TestSpamAcrossValidations:
    @pytest.mark.asyncio
    async def test_creator_limited_to_two_tokens(self, clock, make_event) -> None:
        resolver = _resolver()
        resolver.farcaster_by_address.return_value = FarcasterProfile(
            fid=99, username="prolific", score=0.95, followers=25_000, twitter_handle=None
        )
        engine = _engine(resolver, clock)

        results = []
        for i in range(3):
            clock.advance(600)
            results.append(await engine.validate_fast(make_event(address=f"0x{i:040x}")))

        assert [r.passes for r in results] == [True, True, False]
        assert "spam: fid:99" in results[2].reasons

    @pytest.mark.asyncio
    async def test_revalidating_same_token_does_not_count_twice(self, clock, make_event) -> None:
        resolver = _resolver()
        resolver.farcaster_by_address.return_value = FarcasterProfile(
            fid=99, username="prolific", score=0.95, followers=25_000, twitter_handle=None
        )
        engine = _engine(resolver, clock)
        event = make_event()
        for _ in range(3):
            assert (await engine.validate_fast(event)).passes
        assert engine.spam_guard.count("fid:99") == 1


class TestUnexpectedErrors:
    @pytest.mark.asyncio
    async def test_fast_path_error_reads_as_not_found(self, clock, make_event) -> None:
        resolver = _resolver()
        resolver.farcaster_by_address.side_effect = RuntimeError("boom")
        engine = _engine(resolver, clock)

        result = await engine.validate_fast(make_event())

        assert not result.passes
        assert result.reasons == ["creator_not_found_fast"]

    @pytest.mark.asyncio
    async def test_slow_path_error_is_retried(self, clock, make_event, make_creator) -> None:
        resolver = _resolver()
        resolver.resolve_clanker.side_effect = [
            RuntimeError("boom"),
            CreatorLookup(status=LookupStatus.SUCCESS, creator_info=make_creator(fid=42)),
        ]
        engine = _engine(resolver, clock)

        result = await engine.validate_with_retry(make_event())

        assert result.passes
        assert resolver.resolve_clanker.await_count == 2
        engine._sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_slow_path_error_every_attempt(self, clock, make_event) -> None:
        resolver = _resolver()
        resolver.resolve_clanker.side_effect = RuntimeError("boom")
        engine = _engine(resolver, clock, slow_retries=2)

        result = await engine.validate_with_retry(make_event())

        assert result.reasons == ["creator_not_found_after_retries"]
        assert resolver.resolve_clanker.await_count == 3


class TestClankerWithRealResolver:
    @pytest.mark.asyncio
    async def test_requester_fid_profile_and_verification_resolved_together(self, clock, make_event) -> None:
        creator = "0x" + "b" * 40
        neynar = MagicMock(enabled=True)
        neynar.get_user_by_fid = AsyncMock(return_value=NeynarUser.model_validate({
            "fid": 42, "username": "alice", "follower_count": 25_000, "score": 0.95,
        }))
        neynar.get_verified_addresses = AsyncMock(return_value=[creator])
        twitter = MagicMock(enabled=False)
        clanker = MagicMock()
        clanker.get_token = AsyncMock(return_value=ClankerToken.model_validate({
            "contract_address": "0x" + "a" * 40,
            "requestor_fid": 42,
        }))
        resolver = CreatorResolver(neynar, twitter, clanker, MagicMock(), clock=clock)
        engine = _engine(resolver, clock)

        result = await engine.validate_with_retry(make_event(creator=creator))

        assert result.passes
        assert result.creator_info.fid == 42
        assert result.creator_info.creator_address_verified is True
        neynar.get_user_by_fid.assert_awaited_once_with(42)
        neynar.get_verified_addresses.assert_awaited_once_with(42)
