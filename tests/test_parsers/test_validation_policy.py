"""Tests for creator reputation policy, quality score and spam suppression."""

import pytest

from sniper.parsers.validation import (
    SpamGuard,
    ValidationPolicy,
    calculate_creator_score,
    evaluate_creator,
    follower_type,
)


@pytest.fixture
def policy() -> ValidationPolicy:
    return ValidationPolicy()


class TestEvaluateCreator:
    def test_big_twitter_account_passes(self, policy, make_creator) -> None:
        info = make_creator(farcaster_followers=500, twitter_handle="alice", twitter_followers=80_000)
        result = evaluate_creator(info, policy)
        assert result.passes
        assert result.reasons == []
        assert result.creator_info is info

    def test_farcaster_bar_passes_without_twitter(self, policy, make_creator) -> None:
        info = make_creator(farcaster_followers=15_000)
        assert evaluate_creator(info, policy).passes

    def test_neither_platform_has_reach(self, policy, make_creator) -> None:
        info = make_creator(farcaster_followers=2_000, twitter_handle="bob", twitter_followers=20_000)
        result = evaluate_creator(info, policy)
        assert not result.passes
        assert result.reasons == ["followers_low: tw=20K, fc=2K"]

    def test_twitter_floor_rejects_tiny_account_even_with_farcaster(self, policy, make_creator) -> None:
        info = make_creator(farcaster_followers=50_000, twitter_handle="tiny", twitter_followers=1_200)
        result = evaluate_creator(info, policy)
        assert not result.passes
        assert "twitter_below_min: 1,200" in result.reasons

    def test_unknown_twitter_count_skips_floor(self, policy, make_creator) -> None:
        info = make_creator(farcaster_followers=12_000, twitter_handle="x", twitter_followers=None)
        assert evaluate_creator(info, policy).passes

    def test_neynar_gate_off_by_default(self, policy, make_creator) -> None:
        info = make_creator(neynar_score=0.2, farcaster_followers=12_000)
        assert evaluate_creator(info, policy).passes

    def test_neynar_gate_rejects_low_score(self, make_creator) -> None:
        gated = ValidationPolicy(neynar_gate_enabled=True, min_neynar_score=0.9)
        result = evaluate_creator(make_creator(neynar_score=0.5, farcaster_followers=12_000), gated)
        assert not result.passes
        assert result.reasons == ["neynar_low: 50%"]

        missing = evaluate_creator(make_creator(neynar_score=None, farcaster_followers=12_000), gated)
        assert missing.reasons == ["neynar_unavailable"]

    def test_neynar_gate_bypassed_by_big_account(self, make_creator) -> None:
        gated = ValidationPolicy(neynar_gate_enabled=True)
        info = make_creator(neynar_score=0.1, twitter_handle="big", twitter_followers=250_000)
        assert evaluate_creator(info, gated).passes

    @pytest.mark.parametrize(
        ("score", "farcaster", "twitter"),
        [
            (0.95, 15_000, None),
            (0.50, 15_000, None),
            (None, 20_000, 6_000),
            (0.30, 3_000, 60_000),
            (0.99, 11_000, 10_000),
        ],
    )
    def test_enabling_gate_never_turns_fail_into_pass(self, make_creator, score, farcaster, twitter) -> None:
        info = make_creator(
            neynar_score=score,
            farcaster_followers=farcaster,
            twitter_handle="h" if twitter is not None else None,
            twitter_followers=twitter,
        )
        off = evaluate_creator(info, ValidationPolicy(neynar_gate_enabled=False))
        on = evaluate_creator(info, ValidationPolicy(neynar_gate_enabled=True))
        if not off.passes:
            assert not on.passes
        if on.passes:
            assert off.passes
        if off.passes and not on.passes:
            assert score is None or score < 0.9


class TestCreatorScore:
    def test_zero_for_empty_profile(self, make_creator) -> None:
        info = make_creator(neynar_score=None, farcaster_followers=None)
        assert calculate_creator_score(info) == 0

    def test_full_marks_capped_at_eight(self, make_creator) -> None:
        info = make_creator(
            neynar_score=0.99,
            farcaster_followers=80_000,
            twitter_handle="whale",
            twitter_followers=900_000,
        )
        # 3 + 2 + 2 + 1
        assert calculate_creator_score(info) == 8

    def test_mid_profile(self, make_creator) -> None:
        info = make_creator(neynar_score=0.87, farcaster_followers=12_000, twitter_followers=None)
        assert calculate_creator_score(info) == 2

    def test_follower_type(self, policy, make_creator) -> None:
        assert follower_type(make_creator(twitter_followers=80_000, farcaster_followers=20_000), policy) == "both"
        assert follower_type(make_creator(twitter_followers=80_000, farcaster_followers=100), policy) == "twitter"
        assert follower_type(make_creator(farcaster_followers=20_000), policy) == "farcaster"


class TestSlowRetryDelay:
    def test_schedule_and_503_doubling(self, policy) -> None:
        assert [policy.slow_retry_delay(i, False) for i in range(3)] == [1.0, 2.0, 4.0]
        assert [policy.slow_retry_delay(i, True) for i in range(3)] == [2.0, 4.0, 8.0]
        assert policy.slow_retry_delay(4, True) == 30.0
        assert policy.slow_retry_delay(10, False) == 16.0


class TestSpamGuard:
    def test_third_token_in_window_rejected(self, clock, make_creator) -> None:
        guard = SpamGuard(max_tokens_per_creator=2, window_sec=86_400, clock=clock)
        info = make_creator(fid=99)
        assert guard.check_and_record(info, "0x01") == (True, None)
        clock.advance(1_200)
        assert guard.check_and_record(info, "0x02") == (True, None)
        clock.advance(1_200)
        assert guard.check_and_record(info, "0x03") == (False, "spam: fid:99")
        assert guard.count("fid:99") == 2

    def test_same_token_counted_once(self, clock, make_creator) -> None:
        guard = SpamGuard(max_tokens_per_creator=2, clock=clock)
        info = make_creator(fid=7)
        for _ in range(5):
            assert guard.check_and_record(info, "0xABC")[0]
        assert guard.check_and_record(info, "0xabc")[0]
        assert guard.count("fid:7") == 1

    def test_window_resets_after_expiry(self, clock, make_creator) -> None:
        guard = SpamGuard(max_tokens_per_creator=1, window_sec=3_600, clock=clock)
        info = make_creator(fid=5)
        assert guard.check_and_record(info, "0x1")[0]
        assert not guard.check_and_record(info, "0x2")[0]
        clock.advance(3_601)
        assert guard.check_and_record(info, "0x3")[0]

    def test_twitter_handle_key_when_no_fid(self, clock, make_creator) -> None:
        guard = SpamGuard(max_tokens_per_creator=1, clock=clock)
        info = make_creator(fid=None, twitter_handle="anon")
        assert SpamGuard.creator_key(info) == "tw:anon"
        assert guard.check_and_record(info, "0x1")[0]
        assert guard.check_and_record(info, "0x2") == (False, "spam: tw:anon")

    def test_no_key_is_never_limited(self, clock, make_creator) -> None:
        guard = SpamGuard(max_tokens_per_creator=1, clock=clock)
        info = make_creator(fid=None, twitter_handle=None)
        assert all(guard.check_and_record(info, f"0x{i}")[0] for i in range(3))

    def test_fid_and_numeric_handle_counted_separately(self, clock, make_creator) -> None:
        guard = SpamGuard(max_tokens_per_creator=1, clock=clock)
        by_fid = make_creator(fid=42, twitter_handle=None)
        by_handle = make_creator(fid=None, twitter_handle="42")
        assert SpamGuard.creator_key(by_fid) != SpamGuard.creator_key(by_handle)
        assert guard.check_and_record(by_fid, "0x1")[0]
        assert guard.check_and_record(by_handle, "0x2")[0]
        assert guard.count("fid:42") == 1
        assert guard.count("tw:42") == 1
