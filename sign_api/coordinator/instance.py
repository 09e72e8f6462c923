"""Instancia nombrada del Coordinator = dominio de serialización.

Todas las operaciones sobre la misma instancia se ejecutan de a una
(asyncio.Lock), lo que da atomicidad load -> modificar -> persistir sin
locks explícitos en cada operación. Instancias distintas no tienen orden
entre sí.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from .store import IStateStore


class CoordinatorInstance:
    """Espacio de claves propio + cola de operaciones serializada."""

    def __init__(self, name: str, store: IStateStore):
        self.name = name
        self._store = store
        self._lock = asyncio.Lock()
        self._operations = 0

    def _key(self, key: str) -> str:
        return f"{self.name}:{key}"

    @asynccontextmanager
    async def serialized(self) -> AsyncIterator["CoordinatorInstance"]:
        """Sección crítica de una operación lógica.

        Uso:
            async with instance.serialized() as inst:
                data = await inst.get("currentTrack")
                await inst.put("currentTrack", data)
        """
        async with self._lock:
            self._operations += 1
            yield self

    async def get(self, key: str) -> Optional[Any]:
        return await self._store.get(self._key(key))

    async def put(self, key: str, value: Any) -> None:
        await self._store.put(self._key(key), value)

    async def delete(self, key: str) -> None:
        await self._store.delete(self._key(key))

    @property
    def stats(self) -> dict:
        return {
            "name": self.name,
            "operations": self._operations,
            "busy": self._lock.locked(),
        }
