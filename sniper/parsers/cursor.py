"""Persisted ingestion cursor: highest block seen, flushed periodically.

File format: {"lastSeenBlock": "<int as string>", "updatedAt": "<ISO-8601 UTC>"}.
Writes go to a temp file then rename, so a crash never leaves a torn cursor.
"""

import asyncio
import json
import os
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger


class CursorStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.block: int | None = None
        self._persisted: int | None = None
        self._dirty = False

    @property
    def dirty(self) -> bool:
        return self._dirty

    def load(self) -> int | None:
        """Read the persisted cursor once at startup. Missing or corrupt file -> None."""
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            block = int(raw["lastSeenBlock"])
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"[CURSOR] Ignoring unreadable cursor file {self.path}: {e}")
            return None
        if block < 0:
            return None
        self.block = block
        self._persisted = block
        logger.info(f"[CURSOR] Loaded lastSeenBlock={block}")
        return block

    def mark(self, block_number: int | None) -> bool:
        """Advance the in-memory cursor. Never moves backwards."""
        if block_number is None:
            return False
        if self.block is not None and block_number <= self.block:
            return False
        self.block = block_number
        self._dirty = True
        return True

    def _write(self, block: int) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "lastSeenBlock": str(block),
            "updatedAt": datetime.now(UTC).isoformat(),
        }
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        tmp_path.write_text(json.dumps(payload), encoding="utf-8")
        os.replace(tmp_path, self.path)

    async def flush(self) -> bool:
        """Persist the cursor if it advanced. Failures keep it dirty for the next tick."""
        block = self.block
        if not self._dirty or block is None:
            return False
        if self._persisted is not None and block <= self._persisted:
            self._dirty = False
            return False
        # cleared before the write so a mark() during the write re-dirties it
        self._dirty = False
        try:
            await asyncio.to_thread(self._write, block)
        except OSError as e:
            self._dirty = True
            logger.warning(f"[CURSOR] Flush failed (block {block}), will retry: {e}")
            return False
        self._persisted = block
        logger.debug(f"[CURSOR] Flushed lastSeenBlock={block}")
        return True

    async def run_flush_loop(self, interval_sec: float) -> None:
        while True:
            await asyncio.sleep(interval_sec)
            await self.flush()
