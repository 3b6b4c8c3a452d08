"""Best-time persistence backends."""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config import StorageSettings
from .base import KeyValueStore, PersistenceError
from .device_client import DeviceStorageClient
from .local_store import LocalJsonStore

logger = logging.getLogger(__name__)


async def select_store(
    settings: StorageSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> KeyValueStore:
    """Pick device storage when it answers its probe, else the local JSON file."""

    if settings.device_url:
        client = DeviceStorageClient(settings.device_url, timeout=settings.device_timeout, transport=transport)
        if await client.probe():
            logger.info("Using device storage at %s", settings.device_url)
            return client
        await client.aclose()
        logger.warning("Device storage unavailable - falling back to %s", settings.local_path)
    else:
        logger.info("Device storage not configured - using %s", settings.local_path)
    return LocalJsonStore(settings.local_path)


__all__ = [
    "DeviceStorageClient",
    "KeyValueStore",
    "LocalJsonStore",
    "PersistenceError",
    "select_store",
]
