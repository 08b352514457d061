"""
Local JSON file key/value store.

Same async interface as the Redis client (get / set_with_ttl / delete /
ping) so the state repository can run without a Redis server. TTLs are
ignored; timeline state does not expire.
"""

import asyncio
import json
import os
from pathlib import Path

from recon_timeline.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FileKeyValueStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"State file {self.path} does not contain a JSON object")
        return data

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)

    async def ping(self) -> bool:
        return os.access(self.path.parent if self.path.parent.exists() else Path("."), os.W_OK)

    async def get(self, key: str) -> str | None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
        return data.get(key)

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data[key] = value
            await asyncio.to_thread(self._write, data)
        return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            if key not in data:
                return False
            del data[key]
            await asyncio.to_thread(self._write, data)
        return True

    async def close(self) -> None:
        logger.debug("File state store closed", path=str(self.path))
