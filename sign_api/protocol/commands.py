"""Tabla cerrada de comandos de 2 bytes del Busylight.

Cada comando es [opcode, param]. Los valores por defecto del firmware se
restauran con FACTORY_RESET.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Callable, Dict, Tuple


class DeviceCommand(IntEnum):
    """Opcodes soportados por el dispositivo."""
    ENABLE_ADR = 0x01
    DISABLE_ADR = 0x02
    SET_ADR_WATCHDOG = 0x03      # param = N x 10 min
    SET_UPLINK_INTERVAL = 0x04   # param = N minutos
    REQUEST_UPLINK = 0x05        # uplink inmediato, una vez
    AUTO_UPLINK = 0x06           # param 0 = deshabilitar, 1 = habilitar
    FACTORY_RESET = 0xAA
    BOOT_MODE = 0xBB             # modo bootloader para actualizar firmware


ADR_WATCHDOG_DEFAULT = 30     # 30 x 10 min = 5 h
UPLINK_INTERVAL_DEFAULT = 30  # minutos


def enable_adr() -> Tuple[int, int]:
    return DeviceCommand.ENABLE_ADR, 0x00


def disable_adr() -> Tuple[int, int]:
    return DeviceCommand.DISABLE_ADR, 0x00


def set_adr_watchdog(tens_of_minutes: int = ADR_WATCHDOG_DEFAULT) -> Tuple[int, int]:
    return DeviceCommand.SET_ADR_WATCHDOG, tens_of_minutes


def set_uplink_interval(minutes: int = UPLINK_INTERVAL_DEFAULT) -> Tuple[int, int]:
    return DeviceCommand.SET_UPLINK_INTERVAL, minutes


def request_uplink() -> Tuple[int, int]:
    return DeviceCommand.REQUEST_UPLINK, 0x00


def auto_uplink(enabled: bool) -> Tuple[int, int]:
    return DeviceCommand.AUTO_UPLINK, 0x01 if enabled else 0x00


def factory_reset() -> Tuple[int, int]:
    return DeviceCommand.FACTORY_RESET, 0x00


def boot_mode() -> Tuple[int, int]:
    return DeviceCommand.BOOT_MODE, 0x00


_DEFAULT_FRAMES: Dict[DeviceCommand, Callable[[], Tuple[int, int]]] = {
    DeviceCommand.ENABLE_ADR: enable_adr,
    DeviceCommand.DISABLE_ADR: disable_adr,
    DeviceCommand.SET_ADR_WATCHDOG: set_adr_watchdog,
    DeviceCommand.SET_UPLINK_INTERVAL: set_uplink_interval,
    DeviceCommand.REQUEST_UPLINK: request_uplink,
    DeviceCommand.AUTO_UPLINK: lambda: auto_uplink(True),
    DeviceCommand.FACTORY_RESET: factory_reset,
    DeviceCommand.BOOT_MODE: boot_mode,
}


def default_frame(command: int) -> Tuple[int, int]:
    """Frame [opcode, param] con el parámetro por defecto del firmware.

    Raises:
        ValueError: si el opcode no está en la tabla
    """
    return _DEFAULT_FRAMES[DeviceCommand(command)]()


def describe(command: int, param: int) -> str:
    """Descripción legible de un comando (para logs)."""
    try:
        name = DeviceCommand(command).name
    except ValueError:
        name = "UNKNOWN"
    return f"{name}(0x{command:02x}, 0x{param:02x})"
