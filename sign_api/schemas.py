from __future__ import annotations

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class TrackRegisterIn(BaseModel):
    # Campos opcionales: la validación de presencia la hace el Coordinator
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    track_name: Optional[str] = Field(default=None, alias="trackName")


class ColorIn(BaseModel):
    r: Optional[float] = None
    g: Optional[float] = None
    b: Optional[float] = None

    def is_complete(self) -> bool:
        return self.r is not None and self.g is not None and self.b is not None


class CommandIn(BaseModel):
    # Opcode numérico o nombre (ej: "REQUEST_UPLINK")
    command: Optional[Union[int, str]] = None
    param: Optional[int] = None


class DeviceInfo(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    dev_eui: Optional[str] = Field(default=None, alias="devEui")


class UplinkEventIn(BaseModel):
    """Evento del webhook de ChirpStack. Solo `data` llega al codec."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: Optional[str] = None
    device_info: Optional[DeviceInfo] = Field(default=None, alias="deviceInfo")
    device_id: Optional[str] = Field(default=None, alias="deviceId")
    data: Optional[str] = None

    def device_eui(self) -> str:
        if self.device_info and self.device_info.dev_eui:
            return self.device_info.dev_eui
        return self.device_id or "unknown"


NeedsConfigIn = Dict[str, Any]
