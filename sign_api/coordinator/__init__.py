"""Coordinator de estado compartido.

Estructura:
- store.py: backends de persistencia (memoria, Redis)
- instance.py: instancia nombrada = dominio de serialización
- coordinator.py: operaciones (rate limit, track, telemetría, salud)
"""

from .coordinator import (
    DEFAULT_MAX_REQUESTS,
    DEFAULT_WINDOW_MS,
    Coordinator,
)
from .instance import CoordinatorInstance
from .store import IStateStore, MemoryStateStore, RedisStateStore, create_store

__all__ = [
    "DEFAULT_MAX_REQUESTS",
    "DEFAULT_WINDOW_MS",
    "Coordinator",
    "CoordinatorInstance",
    "IStateStore",
    "MemoryStateStore",
    "RedisStateStore",
    "create_store",
]
