"""HTTP client for the device's durable creation storage."""
from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Optional

import httpx

from .base import PersistenceError

logger = logging.getLogger(__name__)


def encode_value(value: Any) -> str:
    """JSON-encode then base64-wrap, the format device storage keeps."""
    return base64.b64encode(json.dumps(value).encode("utf-8")).decode("ascii")


def decode_value(raw: str) -> Any:
    try:
        return json.loads(base64.b64decode(raw, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise PersistenceError(f"malformed stored value: {raw!r}") from exc


class DeviceStorageClient:
    """Thin wrapper around the device storage REST API."""

    name = "device"

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def probe(self) -> bool:
        """Return True when device storage answers its health check."""
        try:
            response = await self._client.get("/healthz")
            response.raise_for_status()
            return True
        except httpx.TimeoutException:
            logger.warning("device_storage.probe: request timeout")
            return False
        except httpx.HTTPStatusError as e:
            logger.warning("device_storage.probe: HTTP %d", e.response.status_code)
            return False
        except httpx.HTTPError as e:
            logger.warning("device_storage.probe: unavailable - %s", e)
            return False

    async def get(self, key: str) -> Optional[Any]:
        try:
            response = await self._client.get(self._path(key))
            if response.status_code == httpx.codes.NOT_FOUND:
                return None
            response.raise_for_status()
            raw = response.json().get("value")
        except httpx.HTTPStatusError as e:
            raise PersistenceError(f"read failed: HTTP {e.response.status_code}", key=key) from e
        except httpx.HTTPError as e:
            raise PersistenceError(f"read failed: {e}", key=key) from e
        except ValueError as e:
            raise PersistenceError("read failed: response is not JSON", key=key) from e

        if raw is None:
            return None
        if not isinstance(raw, str):
            raise PersistenceError(f"malformed stored value: {raw!r}", key=key)
        return decode_value(raw)

    async def set(self, key: str, value: Any) -> None:
        try:
            response = await self._client.put(self._path(key), json={"value": encode_value(value)})
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PersistenceError(f"write failed: HTTP {e.response.status_code}", key=key) from e
        except httpx.HTTPError as e:
            raise PersistenceError(f"write failed: {e}", key=key) from e

    async def aclose(self) -> None:
        try:
            await self._client.aclose()
        except Exception as e:
            logger.warning("Error closing device storage client: %s", e)

    @staticmethod
    def _path(key: str) -> str:
        return f"/storage/plain/{key}"
