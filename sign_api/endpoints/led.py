"""Endpoints del Busylight: color, estado, cola, comandos y flag de config."""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse

from ..auth import require_admin_secret
from ..coordinator import Coordinator
from ..dependencies import (
    enforce_led_rate_limit,
    get_coordinator,
    get_downlink_service,
    get_gateway,
)
from ..downlink import DownlinkOutcome, DownlinkService
from ..gateway import ChirpStackClient
from ..protocol import DeviceCommand, default_frame
from ..schemas import ColorIn, CommandIn, NeedsConfigIn

router = APIRouter(tags=["led"])


def _respond(outcome: DownlinkOutcome) -> JSONResponse:
    return JSONResponse(content=outcome.body, status_code=outcome.status)


def _is_command_name(command) -> bool:
    return isinstance(command, str) and not command.strip().lstrip("-").isdigit()


def _resolve_command(command) -> int:
    if _is_command_name(command):
        try:
            return int(DeviceCommand[command.strip().upper()])
        except KeyError:
            raise HTTPException(status_code=400, detail=f"Unknown command: {command}")
    return int(command)


@router.post("/led", dependencies=[Depends(enforce_led_rate_limit)])
async def send_color(
    payload: ColorIn,
    downlink: DownlinkService = Depends(get_downlink_service),
):
    if not payload.is_complete():
        raise HTTPException(status_code=400, detail="Missing r, g, or b values")

    outcome = await downlink.send_color(payload.r, payload.g, payload.b)
    return _respond(outcome)


@router.get("/led")
async def current_state(
    coordinator: Coordinator = Depends(get_coordinator),
    gateway: ChirpStackClient = Depends(get_gateway),
):
    state = await coordinator.get_telemetry()
    if state is None:
        return {"color": None, "message": "No uplink received yet"}

    snapshot = await gateway.list_queue()
    return {**state.to_dict(), "queue": snapshot.to_dict()}


@router.get("/queue")
async def queue(gateway: ChirpStackClient = Depends(get_gateway)):
    snapshot = await gateway.list_queue()
    return snapshot.to_dict()


@router.post("/led/command", dependencies=[Depends(require_admin_secret)])
async def send_command(
    payload: CommandIn,
    downlink: DownlinkService = Depends(get_downlink_service),
):
    """Comando por opcode o por nombre.

    Por nombre, `param` es opcional: sin él se usa el valor por defecto del
    firmware (ej: SET_UPLINK_INTERVAL -> 30 min). Por opcode es obligatorio.
    """
    if payload.command is None:
        raise HTTPException(status_code=400, detail="Missing command or param")

    command = _resolve_command(payload.command)
    param = payload.param
    if param is None:
        if not _is_command_name(payload.command):
            raise HTTPException(status_code=400, detail="Missing command or param")
        command, param = default_frame(command)

    outcome = await downlink.send_command(command, param)
    return _respond(outcome)


@router.post("/led/needs-config", dependencies=[Depends(require_admin_secret)])
async def set_needs_config(
    data: NeedsConfigIn = Body(...),
    coordinator: Coordinator = Depends(get_coordinator),
):
    await coordinator.set_needs_config(data)
    return {"success": True}


@router.get("/led/needs-config")
async def get_needs_config(coordinator: Coordinator = Depends(get_coordinator)):
    return await coordinator.get_needs_config()
