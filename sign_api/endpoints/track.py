"""Track registry: el publisher registra su stream, los viewers lo consultan.

Escrituras del publisher (register, heartbeat, unregister) requieren
X-Publisher-Secret cuando está configurado. Los reportes de pull vienen de
viewers anónimos y no lo requieren.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..auth import require_publisher_secret
from ..coordinator import Coordinator
from ..dependencies import get_coordinator
from ..errors import ErrorKind, OpResult
from ..schemas import TrackRegisterIn

router = APIRouter(prefix="/track", tags=["track"])


def _raise_for(result: OpResult) -> None:
    if result.ok:
        return
    status = 404 if result.error is ErrorKind.NOT_FOUND else 400
    raise HTTPException(status_code=status, detail=result.detail)


@router.post("/register", dependencies=[Depends(require_publisher_secret)])
async def register_track(
    payload: TrackRegisterIn,
    coordinator: Coordinator = Depends(get_coordinator),
):
    result = await coordinator.register_track(payload.session_id, payload.track_name)
    _raise_for(result)
    return {"success": True}


@router.get("/current")
async def current_track(coordinator: Coordinator = Depends(get_coordinator)):
    lookup = await coordinator.get_current_track()
    if not lookup.found:
        raise HTTPException(status_code=404, detail=lookup.not_found_reason)
    return lookup.track.to_dict()


@router.post("/heartbeat", dependencies=[Depends(require_publisher_secret)])
async def heartbeat(coordinator: Coordinator = Depends(get_coordinator)):
    result = await coordinator.heartbeat()
    _raise_for(result)
    return {"success": True}


@router.delete("/unregister", dependencies=[Depends(require_publisher_secret)])
async def unregister_track(coordinator: Coordinator = Depends(get_coordinator)):
    await coordinator.unregister_track()
    return {"success": True}


@router.post("/pull-success")
async def pull_success(coordinator: Coordinator = Depends(get_coordinator)):
    await coordinator.record_pull_success()
    return {"recorded": True}


@router.post("/pull-failure")
async def pull_failure(coordinator: Coordinator = Depends(get_coordinator)):
    await coordinator.record_pull_failure()
    return {"recorded": True}


@router.get("/health")
async def track_health(coordinator: Coordinator = Depends(get_coordinator)):
    verdict = await coordinator.get_health()
    return verdict.to_dict()
