"""
Activity log retrieval.

Paged listing, lookup by id, per-user history and free-text search over the
event store. Like analytics, every public operation returns an
OperationResult and never raises.
"""

import logging
import math
from enum import Enum

from pydantic import BaseModel, Field

from audit_pipeline.core.result import OperationResult
from audit_pipeline.events.models import ActivityEvent, EventFilter
from audit_pipeline.store.base import EventStore
from audit_pipeline.store.sqlite import SORTABLE_COLUMNS

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 50
MAX_LIMIT = 1000
DEFAULT_RECENT_LIMIT = 10
DEFAULT_SORT_FIELD = "created_at"


class SortOrder(str, Enum):
    """Listing direction."""

    ASC = "asc"
    DESC = "desc"


class Pagination(BaseModel):
    """Position of one page within a filtered result set."""

    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0, description="Rows matching the filters")
    total_pages: int = Field(..., ge=0)
    has_next: bool
    has_previous: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit)
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1,
        )


class ActivityPage(BaseModel):
    """One page of events plus its pagination metadata."""

    events: list[ActivityEvent] = Field(default_factory=list)
    pagination: Pagination


def sanitize_paging(page: int | None, limit: int | None) -> tuple[int, int]:
    """Replace out-of-range paging values: page < 1 and limit < 1 fall back to defaults, limit is capped."""
    if page is None or page < 1:
        page = DEFAULT_PAGE
    if limit is None or limit < 1:
        limit = DEFAULT_LIMIT
    return page, min(limit, MAX_LIMIT)


def sanitize_sort(sort_by: str | None, sort_order: SortOrder | str | None) -> tuple[str, SortOrder]:
    """Unknown sort fields fall back to created_at and unknown directions to descending."""
    if sort_by not in SORTABLE_COLUMNS:
        sort_by = DEFAULT_SORT_FIELD
    try:
        order = SortOrder(sort_order) if sort_order is not None else SortOrder.DESC
    except ValueError:
        order = SortOrder.DESC
    return sort_by, order


class ActivityRetrieval:
    """Read access to stored activity logs."""

    def __init__(self, store: EventStore):
        self._store = store

    def get_activity_logs(
        self,
        filters: EventFilter | None = None,
        *,
        page: int | None = None,
        limit: int | None = None,
        sort_by: str | None = None,
        sort_order: SortOrder | str | None = None,
    ) -> OperationResult[ActivityPage]:
        """
        List events matching filters, one page at a time.

        Args:
            filters: Field filters, date bounds and optional ``search`` term
            page: 1-based page number (default 1)
            limit: Page size (default 50, capped at 1000)
            sort_by: One of the sortable columns (default created_at)
            sort_order: "asc" or "desc" (default desc)

        Returns:
            OperationResult carrying an ActivityPage
        """
        try:
            result = self._page(filters or EventFilter(), page, limit, sort_by, sort_order)
            logger.info(
                "Activity logs retrieved",
                extra={"count": len(result.events), "total": result.pagination.total},
            )
            return OperationResult.ok(result, f"Retrieved {len(result.events)} activity logs")
        except Exception as e:
            logger.error(f"Failed to retrieve activity logs: {e}")
            return OperationResult.fail(str(e), "Failed to retrieve activity logs")

    def get_activity_by_id(self, event_id: int) -> OperationResult[ActivityEvent]:
        """Look up one event. Non-positive and unknown ids are reported as failures."""
        if event_id <= 0:
            return OperationResult.fail("Invalid activity ID provided", "Activity ID must be a positive number")

        try:
            event = self._store.get(event_id)
        except Exception as e:
            logger.error(f"Failed to retrieve activity {event_id}: {e}")
            return OperationResult.fail(str(e), "Failed to retrieve activity")

        if event is None:
            return OperationResult.fail("Activity not found", f"Activity with ID {event_id} not found")
        return OperationResult.ok(event, "Activity retrieved successfully")

    def get_user_activity_history(
        self,
        user_id: int,
        filters: EventFilter | None = None,
        *,
        page: int | None = None,
        limit: int | None = None,
        sort_by: str | None = None,
        sort_order: SortOrder | str | None = None,
    ) -> OperationResult[ActivityPage]:
        """Paged history of one user's events; any user_id in filters is replaced."""
        if user_id <= 0:
            return OperationResult.fail("Invalid user ID provided", "User ID must be a positive number")

        scoped = (filters or EventFilter()).model_copy(update={"user_id": user_id})
        try:
            result = self._page(scoped, page, limit, sort_by, sort_order)
            logger.info(
                "User activity history retrieved",
                extra={"user_id": user_id, "count": len(result.events)},
            )
            return OperationResult.ok(result, f"Retrieved {len(result.events)} user activities")
        except Exception as e:
            logger.error(f"Failed to retrieve activity history for user {user_id}: {e}")
            return OperationResult.fail(str(e), "Failed to retrieve user activity history")

    def search_activities(
        self,
        term: str | None,
        filters: EventFilter | None = None,
        *,
        page: int | None = None,
        limit: int | None = None,
        sort_by: str | None = None,
        sort_order: SortOrder | str | None = None,
    ) -> OperationResult[ActivityPage]:
        """
        Case-insensitive substring search.

        Matches description, action, resource type, category, severity and
        status. A blank term fails without querying.
        """
        term = (term or "").strip()
        if not term:
            return OperationResult.fail("Search term is required", "Please provide a valid search term")

        scoped = (filters or EventFilter()).model_copy(update={"search": term})
        try:
            result = self._page(scoped, page, limit, sort_by, sort_order)
            logger.info("Activity search completed", extra={"count": len(result.events)})
            return OperationResult.ok(result, f"Found {len(result.events)} activities matching search")
        except Exception as e:
            logger.error(f"Failed to search activities: {e}")
            return OperationResult.fail(str(e), "Failed to search activities")

    def get_recent_activities(self, limit: int = DEFAULT_RECENT_LIMIT) -> OperationResult[list[ActivityEvent]]:
        """Newest stored events first. Unlike the monitor buffer, this reads the store."""
        limit = min(max(limit, 1), MAX_LIMIT)
        try:
            events = self._store.query(sort_by="created_at", descending=True, limit=limit)
            return OperationResult.ok(events, f"Retrieved {len(events)} recent activities")
        except Exception as e:
            logger.error(f"Failed to retrieve recent activities: {e}")
            return OperationResult.fail(str(e), "Failed to retrieve recent activities")

    def _page(
        self,
        filters: EventFilter,
        page: int | None,
        limit: int | None,
        sort_by: str | None,
        sort_order: SortOrder | str | None,
    ) -> ActivityPage:
        page, limit = sanitize_paging(page, limit)
        sort_by, order = sanitize_sort(sort_by, sort_order)

        total = self._store.count(filters)
        events = self._store.query(
            filters,
            sort_by=sort_by,
            descending=order is SortOrder.DESC,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return ActivityPage(events=events, pagination=Pagination.build(page, limit, total))
