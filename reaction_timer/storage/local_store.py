"""JSON file fallback used when device storage is unavailable."""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .base import PersistenceError

logger = logging.getLogger(__name__)


class LocalJsonStore:
    """Keeps every key in one JSON object, values stored as JSON text."""

    name = "local"

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, self._read_all)
        raw = data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"malformed stored value: {raw!r}", key=key) from exc

    async def set(self, key: str, value: Any) -> None:
        loop = asyncio.get_running_loop()

        def _write() -> None:
            data = self._read_all()
            data[key] = json.dumps(value)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            tmp_path.replace(self.path)

        async with self._lock:
            try:
                await loop.run_in_executor(None, _write)
            except OSError as exc:
                raise PersistenceError(f"write failed: {exc}", key=key) from exc

    async def aclose(self) -> None:
        return None

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as exc:
            raise PersistenceError(f"read failed: {exc}") from exc
        except ValueError as exc:
            raise PersistenceError(f"corrupt store file {self.path}") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"corrupt store file {self.path}")
        return data
