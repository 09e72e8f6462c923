"""Taxonomía de errores del dominio.

Dentro del Coordinator y del codec las condiciones esperadas (ausencia,
registro vencido, longitud inválida) NO se lanzan como excepciones: se
devuelven como resultados tipados. Los endpoints traducen esos resultados
a códigos HTTP.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Clases de error reconocidas."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    INVALID_PAYLOAD = "invalid_payload"
    UPSTREAM = "upstream"


@dataclass(frozen=True)
class OpResult:
    """Resultado de una operación de escritura del Coordinator."""
    ok: bool
    error: Optional[ErrorKind] = None
    detail: Optional[str] = None

    @classmethod
    def success(cls) -> "OpResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: ErrorKind, detail: str) -> "OpResult":
        return cls(ok=False, error=error, detail=detail)
