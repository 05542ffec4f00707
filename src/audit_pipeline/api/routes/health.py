"""
Health check endpoint.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from audit_pipeline import __version__
from audit_pipeline.api.dependencies import get_services
from audit_pipeline.api.schemas.responses import HealthResponse
from audit_pipeline.core.exceptions import AuditPipelineError
from audit_pipeline.services import AuditServices

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=HealthResponse)
@router.get("/", response_model=HealthResponse)
def health_check(services: AuditServices = Depends(get_services)) -> HealthResponse:
    """
    Report store reachability, monitor buffer usage and stream clients.

    Status is "healthy" when the store answers a count query and
    "unhealthy" otherwise.
    """
    components: dict[str, str] = {}
    overall = "healthy"

    try:
        total = services.store.count()
        components["store"] = f"healthy: {total} events"
    except AuditPipelineError as e:
        logger.warning(f"Health check: store unreachable: {e}")
        components["store"] = f"unhealthy: {e.message}"
        overall = "unhealthy"

    monitor = services.monitor
    components["monitor"] = f"healthy: {monitor.buffer_size}/{monitor.capacity} buffered"

    return HealthResponse(
        status=overall,
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        components=components,
        stream_clients=services.gateway.get_client_count(),
    )
