"""
Audit endpoints.

Ingestion, real-time buffer, retrieval, analytics, export, retention and
the live activity stream.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response, StreamingResponse

from audit_pipeline.api.dependencies import get_services
from audit_pipeline.api.schemas.requests import EventCreateRequest, ExportRequest
from audit_pipeline.api.schemas.responses import (
    EventCreatedResponse,
    IntegrityResponse,
    RecentEventsResponse,
)
from audit_pipeline.core.exceptions import RetentionError
from audit_pipeline.core.result import OperationResult
from audit_pipeline.events.models import (
    ActivityCategory,
    ActivitySeverity,
    ActivityStatus,
    EventFilter,
    StatisticsFilters,
    StatisticsPeriod,
)
from audit_pipeline.gateway.sse import QueueSink
from audit_pipeline.retention.manager import RetentionReport
from audit_pipeline.services import AuditServices

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/events", response_model=EventCreatedResponse, status_code=status.HTTP_201_CREATED)
def create_event(
    request: EventCreateRequest,
    services: AuditServices = Depends(get_services),
) -> EventCreatedResponse:
    """Ingest one audit event."""
    stored = services.recorder.log(**request.model_dump())
    return EventCreatedResponse(id=stored.id, created_at=stored.created_at)


@router.get("/events/recent", response_model=RecentEventsResponse)
def recent_events(
    limit: int | None = Query(None, ge=1, le=10_000, description="Newest N buffered events"),
    services: AuditServices = Depends(get_services),
) -> RecentEventsResponse:
    """Snapshot of the real-time buffer, oldest first."""
    events = services.monitor.recent(limit)
    return RecentEventsResponse(events=events, count=len(events), capacity=services.monitor.capacity)


def _result_response(result: OperationResult, failure_status: int) -> JSONResponse:
    status_code = status.HTTP_200_OK if result.success else failure_status
    return JSONResponse(status_code=status_code, content=jsonable_encoder(result.to_dict()))


def _event_filter(
    user_id: int | None = Query(None, description="Filter by acting user"),
    action: str | None = Query(None),
    category: ActivityCategory | None = Query(None),
    severity: ActivitySeverity | None = Query(None),
    event_status: ActivityStatus | None = Query(None, alias="status"),
    resource_type: str | None = Query(None),
    resource_id: int | None = Query(None),
    session_id: str | None = Query(None),
    ip_address: str | None = Query(None),
    date_from: datetime | None = Query(None, description="Inclusive lower bound"),
    date_to: datetime | None = Query(None, description="Inclusive upper bound"),
) -> EventFilter:
    return EventFilter(
        user_id=user_id,
        action=action,
        category=category,
        severity=severity,
        status=event_status,
        resource_type=resource_type,
        resource_id=resource_id,
        session_id=session_id,
        ip_address=ip_address,
        date_from=date_from,
        date_to=date_to,
    )


@router.get("/events")
def list_events(
    filters: EventFilter = Depends(_event_filter),
    search: str | None = Query(None, description="Case-insensitive text search"),
    page: int | None = Query(None, description="1-based page number"),
    limit: int | None = Query(None, description="Page size, capped at 1000"),
    sort_by: str | None = Query(None, description="Sort column"),
    sort_order: str | None = Query(None, description="asc or desc"),
    services: AuditServices = Depends(get_services),
) -> JSONResponse:
    """
    Page through stored activity logs.

    Out-of-range paging and unknown sort values fall back to defaults. A
    ``search`` parameter that is blank is rejected with 400.
    """
    paging = {"page": page, "limit": limit, "sort_by": sort_by, "sort_order": sort_order}
    if search is not None:
        result = services.retrieval.search_activities(search, filters, **paging)
        if not result.success and result.error == "Search term is required":
            return _result_response(result, status.HTTP_400_BAD_REQUEST)
    else:
        result = services.retrieval.get_activity_logs(filters, **paging)
    return _result_response(result, status.HTTP_500_INTERNAL_SERVER_ERROR)


@router.get("/events/{event_id}")
def get_event(event_id: int, services: AuditServices = Depends(get_services)) -> JSONResponse:
    """One stored event by id."""
    result = services.retrieval.get_activity_by_id(event_id)
    if event_id <= 0:
        return _result_response(result, status.HTTP_400_BAD_REQUEST)
    if not result.success and result.error == "Activity not found":
        return _result_response(result, status.HTTP_404_NOT_FOUND)
    return _result_response(result, status.HTTP_500_INTERNAL_SERVER_ERROR)


@router.get("/users/{user_id}/events")
def user_events(
    user_id: int,
    filters: EventFilter = Depends(_event_filter),
    page: int | None = Query(None, description="1-based page number"),
    limit: int | None = Query(None, description="Page size, capped at 1000"),
    sort_by: str | None = Query(None, description="Sort column"),
    sort_order: str | None = Query(None, description="asc or desc"),
    services: AuditServices = Depends(get_services),
) -> JSONResponse:
    """Paged activity history of one user."""
    result = services.retrieval.get_user_activity_history(
        user_id, filters, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order
    )
    if user_id <= 0:
        return _result_response(result, status.HTTP_400_BAD_REQUEST)
    return _result_response(result, status.HTTP_500_INTERNAL_SERVER_ERROR)


@router.get("/statistics")
def statistics(
    period: StatisticsPeriod = Query(StatisticsPeriod.MONTH, description="Grouping period"),
    date_from: datetime | None = Query(None, description="Inclusive lower bound"),
    date_to: datetime | None = Query(None, description="Inclusive upper bound"),
    services: AuditServices = Depends(get_services),
) -> dict:
    """Event counts grouped by period."""
    filters = StatisticsFilters(period=period, date_from=date_from, date_to=date_to)
    return services.analytics.get_statistics(filters).to_dict()


@router.get("/dashboard")
def dashboard(services: AuditServices = Depends(get_services)) -> dict:
    """Totals, success rate, breakdowns and daily trend."""
    return services.analytics.get_dashboard_data().to_dict()


@router.get("/anomalies")
def anomalies(
    user_id: int | None = Query(None, description="Scope to one user"),
    window_hours: float = Query(1, gt=0, le=24 * 7, description="Observed window length"),
    threshold_multiplier: float = Query(3, gt=0, description="Multiple of expected volume"),
    services: AuditServices = Depends(get_services),
) -> dict:
    """Volume anomaly verdict against the trailing baseline."""
    result = services.analytics.detect_anomaly(
        user_id=user_id,
        window_hours=window_hours,
        threshold_multiplier=threshold_multiplier,
    )
    return result.to_dict()


@router.get("/compliance")
def compliance_report(
    start_date: datetime | None = Query(None, description="Report range start"),
    end_date: datetime | None = Query(None, description="Report range end"),
    services: AuditServices = Depends(get_services),
) -> JSONResponse:
    """Compliance report for a date range. Both bounds are required."""
    result = services.analytics.generate_compliance_report(start_date, end_date)
    if start_date is None or end_date is None:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=result.to_dict())
    return JSONResponse(content=result.to_dict())


@router.post("/export")
def export_logs(
    request: ExportRequest,
    services: AuditServices = Depends(get_services),
) -> Response:
    """Download matching activity logs as an attachment."""
    result = services.exporter.export(
        request.format,
        request.to_filter(),
        batch_size=request.batch_size,
        include_metadata=request.include_metadata,
    )
    stamp = services.clock.now().strftime("%Y%m%d%H%M%S")
    filename = f"activity_logs_{stamp}.{result.format.extension}"
    return Response(
        content=result.buffer,
        media_type=result.format.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Total-Rows": str(result.total_rows),
        },
    )


@router.post("/retention/run", response_model=RetentionReport)
def run_retention(services: AuditServices = Depends(get_services)) -> RetentionReport:
    """Run archive, delete and compress."""
    report = services.retention.run_cycle()
    if not report.success:
        raise RetentionError(
            "Retention cycle failed",
            details={"errors": report.errors, "archived_files": report.archived_files},
        )
    return report


@router.get("/integrity", response_model=IntegrityResponse)
def integrity(
    date_from: datetime | None = Query(None, description="Inclusive lower bound"),
    date_to: datetime | None = Query(None, description="Inclusive upper bound"),
    services: AuditServices = Depends(get_services),
) -> IntegrityResponse:
    """Check id ordering and timestamps over a stored range."""
    valid = services.retention.validate_integrity(date_from, date_to)
    return IntegrityResponse(valid=valid, date_from=date_from, date_to=date_to)


@router.get("/stream")
async def stream(services: AuditServices = Depends(get_services)) -> StreamingResponse:
    """Server-Sent Events stream of live activity and alerts."""
    sink = QueueSink()
    services.gateway.add_client(sink)
    headers = {k: v for k, v in sink.headers.items() if k != "Content-Type"}
    return StreamingResponse(sink.stream(), media_type=sink.media_type, headers=headers)
