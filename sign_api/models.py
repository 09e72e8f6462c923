"""Modelos de dominio: track, ventana de rate limit, telemetría y salud.

Todos los instantes son milisegundos desde epoch (int). La serialización usa
las claves camelCase que ya consumen el frontend y el publisher.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .errors import ErrorKind


@dataclass
class TrackRecord:
    """Stream de video registrado por el publisher."""
    session_id: str
    track_name: str
    timestamp: int

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "trackName": self.track_name,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackRecord":
        return cls(
            session_id=data["sessionId"],
            track_name=data["trackName"],
            timestamp=int(data["timestamp"]),
        )


@dataclass
class RateWindow:
    """Ventana fija de rate limiting para una clave."""
    start: int
    count: int = 0

    def to_dict(self) -> dict:
        return {"start": self.start, "count": self.count}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RateWindow":
        return cls(start=int(data["start"]), count=int(data["count"]))


@dataclass
class Color:
    r: int
    g: int
    b: int
    hex: str


@dataclass
class Timing:
    # Décimas de segundo; off_duration=0 = luz fija
    on_duration: int
    off_duration: int


@dataclass
class Firmware:
    sw: int
    hw: int


@dataclass
class BusylightState:
    """Estado del dispositivo decodificado del último uplink.

    Se reemplaza completo en cada uplink; no se guarda historial.
    """
    rssi: int
    snr: int
    downlinks_received: int
    uplinks_sent: int
    color: Color
    timing: Timing
    firmware: Firmware
    adr_enabled: bool
    timestamp: int

    def to_dict(self) -> dict:
        return {
            "rssi": self.rssi,
            "snr": self.snr,
            "downlinksReceived": self.downlinks_received,
            "uplinksSent": self.uplinks_sent,
            "color": {
                "r": self.color.r,
                "g": self.color.g,
                "b": self.color.b,
                "hex": self.color.hex,
            },
            "timing": {
                "onDuration": self.timing.on_duration,
                "offDuration": self.timing.off_duration,
            },
            "firmware": {
                "sw": self.firmware.sw,
                "hw": self.firmware.hw,
            },
            "adrEnabled": self.adr_enabled,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BusylightState":
        color = data["color"]
        timing = data["timing"]
        firmware = data["firmware"]
        return cls(
            rssi=int(data["rssi"]),
            snr=int(data["snr"]),
            downlinks_received=int(data["downlinksReceived"]),
            uplinks_sent=int(data["uplinksSent"]),
            color=Color(r=color["r"], g=color["g"], b=color["b"], hex=color["hex"]),
            timing=Timing(
                on_duration=timing["onDuration"],
                off_duration=timing["offDuration"],
            ),
            firmware=Firmware(sw=firmware["sw"], hw=firmware["hw"]),
            adr_enabled=bool(data["adrEnabled"]),
            timestamp=int(data["timestamp"]),
        )


@dataclass
class PullStats:
    """Estadísticas de pulls reportadas por los viewers."""
    last_success: Optional[int] = None
    recent_failures: int = 0
    session_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "lastSuccess": self.last_success,
            "recentFailures": self.recent_failures,
            "sessionId": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PullStats":
        last_success = data.get("lastSuccess")
        return cls(
            last_success=int(last_success) if last_success is not None else None,
            recent_failures=int(data.get("recentFailures", 0)),
            session_id=data.get("sessionId"),
        )


@dataclass
class HealthVerdict:
    """Veredicto del health monitor sobre el feed en vivo."""
    healthy: bool
    reason: Optional[str] = None
    session_id: Optional[str] = None
    last_success: Optional[int] = None
    recent_failures: int = 0

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {"healthy": self.healthy}
        if self.reason is not None:
            data["reason"] = self.reason
        if self.healthy:
            data["sessionId"] = self.session_id
            data["lastSuccess"] = self.last_success
            data["recentFailures"] = self.recent_failures
        return data


@dataclass
class RateDecision:
    """Resultado de check_and_increment_rate."""
    allowed: bool
    retry_after_seconds: Optional[int] = None

    @property
    def error(self) -> Optional[ErrorKind]:
        return None if self.allowed else ErrorKind.RATE_LIMITED


@dataclass
class TrackLookup:
    """Resultado de get_current_track: el track o el motivo de ausencia."""
    track: Optional[TrackRecord] = None
    not_found_reason: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.track is not None


@dataclass
class DecodeResult:
    """Resultado del decode de un uplink (nunca lanza)."""
    state: Optional[BusylightState] = None
    error: Optional[str] = None
    length: Optional[int] = None
    details: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state is not None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return None if self.ok else ErrorKind.INVALID_PAYLOAD

    def to_dict(self) -> dict:
        if self.state is not None:
            return self.state.to_dict()
        return {k: v for k, v in {
            "error": self.error,
            "length": self.length,
            "details": self.details,
        }.items() if v is not None}


@dataclass
class QueueItem:
    id: Optional[str]
    confirmed: bool
    f_port: Optional[int]
    pending: bool

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "confirmed": self.confirmed,
            "fPort": self.f_port,
            "pending": self.pending,
        }


@dataclass
class QueueSnapshot:
    queue_depth: int = 0
    items: list = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "queueDepth": self.queue_depth,
            "items": [item.to_dict() for item in self.items],
        }
        if self.error:
            data["error"] = self.error
        return data
