"""Codec del protocolo binario del Busylight (Kuando, LoRaWAN).

Funciones puras, sin estado ni I/O:
- encode_color: downlink de color [R, B, G, on, off] (+ 0x01 opcional)
- encode_command: downlink de comando [opcode, param]
- decode_telemetry: uplink de 24 bytes -> BusylightState

IMPORTANTE: el dispositivo usa orden R, B, G (no R, G, B) tanto en downlink
como en uplink. Invertirlo no da error, da una luz del color equivocado.
"""

from __future__ import annotations

import base64
import binascii
import struct
import time
from typing import Optional

from ..models import BusylightState, Color, DecodeResult, Firmware, Timing


DOWNLINK_FPORT = 15

ON_DURATION_ALWAYS = 255  # décimas de segundo; 255 + off=0 = siempre encendido
OFF_DURATION_STEADY = 0   # sin parpadeo
REQUEST_UPLINK_FLAG = 0x01

TELEMETRY_FRAME_LENGTH = 24

# rssi, snr (int32 con signo), downlinks, uplinks (uint32), 8 bytes sueltos
_TELEMETRY_STRUCT = struct.Struct("<iiII8B")


def clamp_byte(value) -> int:
    return max(0, min(255, int(value)))


def rgb_to_hex(r: int, g: int, b: int) -> str:
    """Hex de 6 dígitos en minúsculas, con '#'."""
    return "#" + "".join(f"{x:02x}" for x in (r, g, b))


def encode_color(r, g, b, request_uplink: bool = False) -> bytes:
    """Codifica un color como payload de downlink.

    Los valores se truncan a entero y se acotan a [0, 255]; no se rechazan.

    Args:
        r, g, b: Componentes del color (cualquier numérico)
        request_uplink: Si True agrega el 6º byte 0x01 para pedir un uplink

    Returns:
        5 o 6 bytes: [R, B, G, 0xFF, 0x00(, 0x01)]
    """
    red, green, blue = clamp_byte(r), clamp_byte(g), clamp_byte(b)
    frame = bytearray([
        red,
        blue,   # azul antes que verde en este dispositivo
        green,
        ON_DURATION_ALWAYS,
        OFF_DURATION_STEADY,
    ])
    if request_uplink:
        frame.append(REQUEST_UPLINK_FLAG)
    return bytes(frame)


def encode_command(command: int, param: int) -> bytes:
    """Codifica un comando de 2 bytes.

    Raises:
        ValueError: si command o param no caben en un byte
    """
    for name, value in (("command", command), ("param", param)):
        if not 0 <= int(value) <= 255:
            raise ValueError(f"{name} out of byte range: {value}")
    return bytes([int(command), int(param)])


def decode_telemetry(data: bytes, now_ms: Optional[int] = None) -> DecodeResult:
    """Decodifica el frame de telemetría de 24 bytes.

    Layout little-endian:
        0-3   int32  RSSI (dBm)
        4-7   int32  SNR (dB)
        8-11  uint32 downlinks recibidos
        12-15 uint32 uplinks enviados
        16    rojo, 17 azul, 18 verde
        19    on duration, 20 off duration
        21    firmware sw, 22 firmware hw
        23    ADR habilitado (1 = sí)

    El timestamp es el reloj al momento del decode; no viaja en el frame.
    """
    if len(data) != TELEMETRY_FRAME_LENGTH:
        return DecodeResult(error="invalid-length", length=len(data))

    (
        rssi,
        snr,
        downlinks,
        uplinks,
        red,
        blue,
        green,
        on_duration,
        off_duration,
        sw_rev,
        hw_rev,
        adr_flag,
    ) = _TELEMETRY_STRUCT.unpack(bytes(data))

    if now_ms is None:
        now_ms = int(time.time() * 1000)

    state = BusylightState(
        rssi=rssi,
        snr=snr,
        downlinks_received=downlinks,
        uplinks_sent=uplinks,
        color=Color(r=red, g=green, b=blue, hex=rgb_to_hex(red, green, blue)),
        timing=Timing(on_duration=on_duration, off_duration=off_duration),
        firmware=Firmware(sw=sw_rev, hw=hw_rev),
        adr_enabled=adr_flag == 1,
        timestamp=now_ms,
    )
    return DecodeResult(state=state, length=TELEMETRY_FRAME_LENGTH)


def decode_uplink_base64(data: str, now_ms: Optional[int] = None) -> DecodeResult:
    """Decodifica el campo `data` (base64) de un evento del network server."""
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        return DecodeResult(error="invalid-base64", details=str(e))
    return decode_telemetry(raw, now_ms=now_ms)


def to_base64(payload: bytes) -> str:
    return base64.b64encode(payload).decode("ascii")
