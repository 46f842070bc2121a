from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST

from core.clock import utc_now
from core.prometheus_metrics import prometheus_collector
from core.session import session_registry

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("/health")
async def metrics_health():
    return {
        "status": "healthy",
        "active_sessions": len(session_registry),
        "checked_at": utc_now().isoformat(),
    }


@router.get("/prometheus")
async def prometheus_metrics():
    """Scrape target. Unauthenticated; expose it only on the internal network."""
    return Response(content=prometheus_collector.get_prometheus_metrics(), media_type=CONTENT_TYPE_LATEST)
