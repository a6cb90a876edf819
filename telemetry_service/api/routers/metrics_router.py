# telemetry_service/api/routers/metrics_router.py
"""
Prometheus metrics endpoint
"""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["Monitoring"])


@router.get("/metrics")
async def prometheus_metrics():
    """
    Prometheus metrics endpoint

    Exposes the default registry in Prometheus text format:
    - Telemetry pipeline counters and processing latency
    - Circuit breaker state and transitions

    Usage:
        curl http://localhost:8080/metrics
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
