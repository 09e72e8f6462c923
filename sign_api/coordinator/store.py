"""Backends de persistencia del Coordinator.

Cada valor se guarda serializado en JSON, así ningún caller comparte
referencias mutables con el estado persistido.

Implementaciones:
- MemoryStateStore: dict en proceso (desarrollo y tests)
- RedisStateStore: Redis vía redis.asyncio
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class IStateStore(ABC):
    """Interfaz clave/valor asíncrona mínima que necesita el Coordinator."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Devuelve el valor deserializado o None si no existe."""

    @abstractmethod
    async def put(self, key: str, value: Any) -> None:
        """Guarda (reemplaza) el valor de la clave."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Borra la clave; no es error si no existe."""

    async def health_check(self) -> dict:
        return {"backend": type(self).__name__, "connected": True}

    async def close(self) -> None:
        return None


class MemoryStateStore(IStateStore):
    """Store en memoria del proceso."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def put(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class RedisStateStore(IStateStore):
    """Store sobre Redis.

    El proceso del Coordinator es el único escritor de su espacio de claves;
    la atomicidad la da el lock por instancia, no Redis.
    """

    KEY_PREFIX = "sign:"

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[aioredis.Redis] = None,
    ):
        self._url = url or "redis://localhost:6379/0"
        self._client = client or aioredis.Redis.from_url(
            self._url,
            decode_responses=True,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._client.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def put(self, key: str, value: Any) -> None:
        await self._client.set(self._key(key), json.dumps(value))

    async def delete(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def health_check(self) -> dict:
        try:
            await self._client.ping()
            return {"backend": "redis", "connected": True, "url": self._url.split("@")[-1]}
        except Exception as e:
            logger.warning("[REDIS] Ping failed: %s", e)
            return {"backend": "redis", "connected": False, "error": type(e).__name__}

    async def close(self) -> None:
        await self._client.aclose()


def create_store(backend: str, redis_url: Optional[str] = None) -> IStateStore:
    """Crea el store según COORDINATOR_BACKEND ("memory" | "redis")."""
    if backend == "redis":
        logger.info("[COORDINATOR] Using Redis store: %s", (redis_url or "").split("@")[-1])
        return RedisStateStore(url=redis_url)
    if backend != "memory":
        raise ValueError(f"Unknown coordinator backend: {backend}")
    logger.info("[COORDINATOR] Using in-memory store (no persistence across restarts)")
    return MemoryStateStore()
