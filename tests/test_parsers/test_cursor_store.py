"""Tests for the persisted ingestion cursor."""

import json
from unittest.mock import patch

import pytest

from sniper.parsers.cursor import CursorStore


def test_load_missing_file(tmp_path) -> None:
    store = CursorStore(tmp_path / "cursor.json")
    assert store.load() is None
    assert store.block is None


def test_load_corrupt_file(tmp_path) -> None:
    path = tmp_path / "cursor.json"
    path.write_text("{not json")
    assert CursorStore(path).load() is None


def test_load_reads_string_block(tmp_path) -> None:
    path = tmp_path / "cursor.json"
    path.write_text(json.dumps({"lastSeenBlock": "12345", "updatedAt": "2026-01-01T00:00:00+00:00"}))
    store = CursorStore(path)
    assert store.load() == 12345
    assert store.block == 12345
    assert not store.dirty


def test_mark_is_monotonic(tmp_path) -> None:
    store = CursorStore(tmp_path / "cursor.json")
    assert store.mark(100) is True
    assert store.mark(90) is False
    assert store.mark(100) is False
    assert store.mark(None) is False
    assert store.mark(101) is True
    assert store.block == 101


@pytest.mark.asyncio
async def test_flush_writes_json_atomically(tmp_path) -> None:
    path = tmp_path / "data" / "cursor.json"
    store = CursorStore(path)
    store.mark(500)
    assert await store.flush() is True

    payload = json.loads(path.read_text())
    assert payload["lastSeenBlock"] == "500"
    assert "updatedAt" in payload
    assert not (tmp_path / "data" / "cursor.json.tmp").exists()
    assert not store.dirty


@pytest.mark.asyncio
async def test_flush_only_when_advanced(tmp_path) -> None:
    store = CursorStore(tmp_path / "cursor.json")
    assert await store.flush() is False
    store.mark(10)
    assert await store.flush() is True
    assert await store.flush() is False


@pytest.mark.asyncio
async def test_flush_failure_keeps_cursor_dirty(tmp_path) -> None:
    store = CursorStore(tmp_path / "cursor.json")
    store.mark(77)
    with patch("sniper.parsers.cursor.os.replace", side_effect=OSError("disk full")):
        assert await store.flush() is False
    assert store.dirty

    # next tick succeeds
    assert await store.flush() is True
    assert CursorStore(tmp_path / "cursor.json").load() == 77


@pytest.mark.asyncio
async def test_reload_roundtrip(tmp_path) -> None:
    path = tmp_path / "cursor.json"
    first = CursorStore(path)
    first.mark(42)
    await first.flush()

    second = CursorStore(path)
    assert second.load() == 42
    second.mark(41)
    assert second.block == 42
