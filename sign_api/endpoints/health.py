"""Health and metrics endpoints."""

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..coordinator import Coordinator
from ..dependencies import get_coordinator

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(coordinator: Coordinator = Depends(get_coordinator)):
    """Liveness probe: ok si el proceso corre, con el estado del store."""
    return {
        "status": "ok",
        "store": await coordinator.store.health_check(),
        "coordinator": coordinator.stats,
    }


@router.get("/metrics")
def metrics():
    """Métricas Prometheus en formato texto."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
