"""Tests for log ingestion: dedup, cursor, handler isolation, backfill and stale probe."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from sniper.parsers.chain.client import ChainRpcError
from sniper.parsers.chain.subscription import WatchSpec
from sniper.parsers.cursor import CursorStore
from sniper.parsers.ingestion import EventIngestor, IngestionConfig

SPECS = [
    WatchSpec("clanker", "0xclanker", ("0xt1",)),
    WatchSpec("zora", "0xzora", ("0xt2", "0xt3")),
]


def _ingestor(tmp_path, clock, handler=None, rpc=None, **config) -> EventIngestor:
    rpc = rpc or MagicMock()
    return EventIngestor(
        rpc,
        CursorStore(tmp_path / "cursor.json"),
        handler or AsyncMock(),
        SPECS,
        IngestionConfig(**config),
        clock=clock,
    )


class TestAcceptLogs:
    @pytest.mark.asyncio
    async def test_duplicate_log_handled_once(self, tmp_path, clock, clanker_log) -> None:
        handler = AsyncMock()
        ingestor = _ingestor(tmp_path, clock, handler)
        log = clanker_log()

        assert ingestor.accept_logs([log, log]) == 1
        assert ingestor.accept_logs([log]) == 0
        await ingestor.pool.drain()

        handler.assert_awaited_once_with(log)
        assert ingestor.metrics.count("logs_duplicate") == 2

    @pytest.mark.asyncio
    async def test_same_tx_different_log_index_both_handled(self, tmp_path, clock, clanker_log) -> None:
        handler = AsyncMock()
        ingestor = _ingestor(tmp_path, clock, handler)
        ingestor.accept_logs([clanker_log(log_index=0), clanker_log(log_index=1)])
        await ingestor.pool.drain()
        assert handler.await_count == 2

    @pytest.mark.asyncio
    async def test_dedup_expires_after_ttl(self, tmp_path, clock, clanker_log) -> None:
        handler = AsyncMock()
        ingestor = _ingestor(tmp_path, clock, handler, dedup_ttl_sec=1800)
        log = clanker_log()
        ingestor.accept_logs([log])
        clock.advance(1801)
        assert ingestor.accept_logs([log]) == 1
        await ingestor.pool.drain()
        assert handler.await_count == 2

    def test_cursor_advances_to_highest_block(self, tmp_path, clock, clanker_log) -> None:
        ingestor = _ingestor(tmp_path, clock)
        ingestor.pool.submit = MagicMock()
        ingestor.accept_logs([clanker_log(block=105, log_index=0), clanker_log(block=103, log_index=1)])
        assert ingestor.cursor.block == 105
        assert ingestor.cursor.dirty
        assert ingestor.last_event_at == clock.now

    def test_accept_resets_subscription_errors(self, tmp_path, clock, clanker_log) -> None:
        ingestor = _ingestor(tmp_path, clock)
        ingestor.pool.submit = MagicMock()
        subscription = MagicMock()
        ingestor.attach(subscription)
        ingestor.accept_logs([clanker_log()])
        subscription.record_activity.assert_called_once()

    @pytest.mark.asyncio
    async def test_handler_error_unmarks_dedup_key(self, tmp_path, clock, clanker_log) -> None:
        handler = AsyncMock(side_effect=[RuntimeError("boom"), None])
        ingestor = _ingestor(tmp_path, clock, handler)
        log = clanker_log()

        ingestor.accept_logs([log])
        await ingestor.pool.drain()
        assert not ingestor.dedup.has(log.dedup_key)
        assert ingestor.metrics.count("handler_errors") == 1

        # redelivery (e.g. backfill) is processed again
        assert ingestor.accept_logs([log]) == 1
        await ingestor.pool.drain()
        assert handler.await_count == 2
        assert ingestor.dedup.has(log.dedup_key)

    @pytest.mark.asyncio
    async def test_handler_error_does_not_affect_siblings(self, tmp_path, clock, clanker_log) -> None:
        seen = []

        async def handler(log) -> None:
            if log.logIndex == 1:
                raise ValueError("bad log")
            seen.append(log.logIndex)

        ingestor = _ingestor(tmp_path, clock, handler)
        ingestor.accept_logs([clanker_log(log_index=i) for i in range(3)])
        await ingestor.pool.drain()
        assert sorted(seen) == [0, 2]


class TestStartup:
    @pytest.mark.asyncio
    async def test_first_run_seeds_cursor_to_head(self, tmp_path, clock) -> None:
        rpc = MagicMock()
        rpc.get_block_number = AsyncMock(return_value=5000)
        ingestor = _ingestor(tmp_path, clock, rpc=rpc)
        assert await ingestor.initialize_cursor() == 5000
        assert ingestor.cursor.block == 5000

    @pytest.mark.asyncio
    async def test_existing_cursor_is_kept(self, tmp_path, clock) -> None:
        (tmp_path / "cursor.json").write_text('{"lastSeenBlock": "4900", "updatedAt": "x"}')
        rpc = MagicMock()
        rpc.get_block_number = AsyncMock(return_value=5000)
        ingestor = _ingestor(tmp_path, clock, rpc=rpc)
        await ingestor.initialize_cursor()
        assert ingestor.cursor.block == 4900

    @pytest.mark.asyncio
    async def test_unreachable_rpc_is_fatal(self, tmp_path, clock) -> None:
        rpc = MagicMock()
        rpc.get_block_number = AsyncMock(side_effect=ChainRpcError("connection refused"))
        ingestor = _ingestor(tmp_path, clock, rpc=rpc)
        with pytest.raises(ChainRpcError):
            await ingestor.initialize_cursor()


class TestBackfill:
    @pytest.mark.asyncio
    async def test_queries_window_behind_cursor(self, tmp_path, clock, clanker_log) -> None:
        rpc = MagicMock()
        rpc.get_logs = AsyncMock(side_effect=[[clanker_log(block=990)], [], ChainRpcError("timeout")])
        handler = AsyncMock()
        ingestor = _ingestor(tmp_path, clock, handler, rpc=rpc, backfill_blocks=50)
        ingestor.cursor.mark(1000)

        assert await ingestor.backfill(head=1010) == 1
        await ingestor.pool.drain()

        # one getLogs per (factory, topic)
        assert rpc.get_logs.await_count == 3
        for call in rpc.get_logs.await_args_list:
            assert call.args[2:] == (950, 1010)
        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_keeps_newest_logs_when_capped(self, tmp_path, clock, clanker_log) -> None:
        logs = [clanker_log(block=900 + i, log_index=0, tx_hash=f"0x{i:064x}") for i in range(5)]
        rpc = MagicMock()
        rpc.get_logs = AsyncMock(side_effect=[list(reversed(logs)), [], []])
        handler = AsyncMock()
        ingestor = _ingestor(tmp_path, clock, handler, rpc=rpc, backfill_max_logs=2)
        ingestor.cursor.mark(950)

        assert await ingestor.backfill(head=960) == 2
        await ingestor.pool.drain()
        handled_blocks = sorted(call.args[0].blockNumber for call in handler.await_args_list)
        assert handled_blocks == [903, 904]

    @pytest.mark.asyncio
    async def test_skipped_when_disabled_or_no_window(self, tmp_path, clock) -> None:
        rpc = MagicMock()
        rpc.get_logs = AsyncMock(return_value=[])
        ingestor = _ingestor(tmp_path, clock, rpc=rpc, enable_backfill=False)
        ingestor.cursor.mark(1000)
        assert await ingestor.backfill(head=1010) == 0

        ingestor = _ingestor(tmp_path, clock, rpc=rpc, backfill_blocks=0)
        ingestor.cursor.mark(1000)
        assert await ingestor.backfill(head=1000) == 0
        rpc.get_logs.assert_not_awaited()


class TestHealthCheck:
    def _setup(self, tmp_path, clock, heads, logs=None):
        rpc = MagicMock()
        rpc.get_block_number = AsyncMock(side_effect=heads)
        rpc.get_logs = AsyncMock(return_value=logs or [])
        ingestor = _ingestor(
            tmp_path,
            clock,
            rpc=rpc,
            heartbeat_interval_sec=60,
            event_stale_threshold_sec=600,
            stale_probe_interval_sec=300,
            stale_probe_blocks=500,
        )
        subscription = MagicMock()
        subscription.reconnect = AsyncMock(return_value=True)
        ingestor.attach(subscription)
        return ingestor, rpc, subscription

    @pytest.mark.asyncio
    async def test_stale_probe_finding_logs_forces_resubscribe(self, tmp_path, clock, clanker_log) -> None:
        ingestor, rpc, subscription = self._setup(tmp_path, clock, [10_000], [clanker_log(block=9_800)])
        clock.advance(700)
        await ingestor.health_check_once()
        await ingestor.pool.drain()

        assert rpc.get_logs.await_count == 3
        assert rpc.get_logs.await_args_list[0].args[2:] == (9_500, 10_000)
        subscription.reconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stale_probe_without_missed_logs_does_not_resubscribe(self, tmp_path, clock) -> None:
        ingestor, rpc, subscription = self._setup(tmp_path, clock, [10_000])
        clock.advance(700)
        await ingestor.health_check_once()
        assert rpc.get_logs.await_count == 3
        subscription.reconnect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fresh_events_skip_probe(self, tmp_path, clock, clanker_log) -> None:
        ingestor, rpc, _subscription = self._setup(tmp_path, clock, [10_000])
        ingestor.pool.submit = MagicMock()
        ingestor.accept_logs([clanker_log()])
        clock.advance(120)
        await ingestor.health_check_once()
        rpc.get_logs.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stalled_head_takes_no_action(self, tmp_path, clock) -> None:
        ingestor, rpc, subscription = self._setup(tmp_path, clock, [10_000, 10_000])
        clock.advance(700)
        await ingestor.health_check_once()
        rpc.get_logs.reset_mock()

        clock.advance(400)
        await ingestor.health_check_once()
        rpc.get_logs.assert_not_awaited()
        subscription.reconnect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_probe_respects_interval(self, tmp_path, clock) -> None:
        ingestor, rpc, _subscription = self._setup(tmp_path, clock, [10_000, 10_030, 10_180])
        clock.advance(700)
        await ingestor.health_check_once()
        assert rpc.get_logs.await_count == 3

        clock.advance(60)
        await ingestor.health_check_once()
        assert rpc.get_logs.await_count == 3

        clock.advance(300)
        await ingestor.health_check_once()
        assert rpc.get_logs.await_count == 6

    @pytest.mark.asyncio
    async def test_head_read_failure_is_logged_not_raised(self, tmp_path, clock) -> None:
        ingestor, rpc, _subscription = self._setup(
            tmp_path, clock, [ChainRpcError("node down")]
        )
        await ingestor.health_check_once()
        rpc.get_logs.assert_not_awaited()
