"""Cliente del LoRaWAN network server (ChirpStack)."""

from .chirpstack import ChirpStackClient, GatewayResult

__all__ = [
    "ChirpStackClient",
    "GatewayResult",
]
