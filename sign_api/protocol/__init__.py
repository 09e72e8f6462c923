"""Protocolo binario del Busylight.

- codec.py: encode de color/comandos y decode de telemetría
- commands.py: tabla cerrada de opcodes
"""

from .codec import (
    DOWNLINK_FPORT,
    TELEMETRY_FRAME_LENGTH,
    clamp_byte,
    decode_telemetry,
    decode_uplink_base64,
    encode_color,
    encode_command,
    rgb_to_hex,
    to_base64,
)
from .commands import DeviceCommand, default_frame, describe

__all__ = [
    "DOWNLINK_FPORT",
    "TELEMETRY_FRAME_LENGTH",
    "clamp_byte",
    "decode_telemetry",
    "decode_uplink_base64",
    "encode_color",
    "encode_command",
    "rgb_to_hex",
    "to_base64",
    "DeviceCommand",
    "default_frame",
    "describe",
]
