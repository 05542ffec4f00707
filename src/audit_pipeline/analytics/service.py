"""
Activity analytics and anomaly detection.

Every public operation returns an OperationResult. Failures are logged and
reported with ``success=False`` so callers can render them as ordinary
responses.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from audit_pipeline.core.clock import Clock, SystemClock
from audit_pipeline.core.result import OperationResult
from audit_pipeline.events.models import ActivityStatus, EventFilter, StatisticsFilters, StatisticsPeriod
from audit_pipeline.store.base import EventStore

logger = logging.getLogger(__name__)


class ActivityAnalytics:
    """
    Reporting over the event store.

    Provides grouped statistics, a dashboard summary, volume anomaly
    verdicts against a trailing baseline, and compliance reports.
    """

    DEFAULT_TREND_DAYS = 30
    DEFAULT_BASELINE_DAYS = 7

    def __init__(
        self,
        store: EventStore,
        clock: Clock | None = None,
        trend_days: int = DEFAULT_TREND_DAYS,
        baseline_days: int = DEFAULT_BASELINE_DAYS,
    ):
        """
        Initialize analytics.

        Args:
            store: Event store to query
            clock: Time source for trailing windows
            trend_days: Days covered by the dashboard trend
            baseline_days: Days of history used as the anomaly baseline
        """
        self._store = store
        self._clock = clock or SystemClock()
        self._trend_days = trend_days
        self._baseline_days = baseline_days

    def get_statistics(self, filters: StatisticsFilters | None = None) -> OperationResult[dict[str, Any]]:
        """Event counts grouped by period within an optional date range."""
        filters = filters or StatisticsFilters()
        try:
            rows = self._store.count_by_period(filters.period, filters.to_event_filter())
            logger.info(
                "Activity statistics generated",
                extra={"period": filters.period.value, "buckets": len(rows)},
            )
            return OperationResult.ok(
                {
                    "group_by": "period",
                    "period": filters.period.value,
                    "stats": [{"period_value": value, "count": count} for value, count in rows],
                }
            )
        except Exception as e:
            logger.error(f"Failed to generate activity statistics: {e}")
            return OperationResult.fail(str(e), "Failed to generate activity statistics")

    def get_dashboard_data(self) -> OperationResult[dict[str, Any]]:
        """
        Summary for the audit dashboard.

        Includes total events, success rate as a 0..1 ratio, category and
        severity breakdowns, and a daily trend over the trailing window. Days
        without events do not appear in the trend.
        """
        try:
            total = self._store.count()
            if total == 0:
                return OperationResult.ok(
                    {
                        "total_events": 0,
                        "success_rate": 0.0,
                        "categories": {},
                        "severity_breakdown": {},
                        "recent_trend": [],
                    }
                )

            successful = self._store.count(EventFilter(status=ActivityStatus.SUCCESS))
            categories = self._store.count_by("category")
            severities = self._store.count_by("severity")

            trend_start = (self._clock.now() - timedelta(days=self._trend_days - 1)).replace(
                hour=0, minute=0, second=0, microsecond=0
            )
            trend = self._store.count_by_period(StatisticsPeriod.DAY, EventFilter(date_from=trend_start))

            return OperationResult.ok(
                {
                    "total_events": total,
                    "success_rate": successful / total,
                    "categories": categories,
                    "severity_breakdown": severities,
                    "recent_trend": [{"date": day, "count": count} for day, count in trend],
                }
            )
        except Exception as e:
            logger.error(f"Failed to generate dashboard data: {e}")
            return OperationResult.fail(str(e), "Failed to generate dashboard data")

    @staticmethod
    def is_anomalous(observed: float, expected: float, threshold_multiplier: float) -> bool:
        """A zero baseline is never anomalous."""
        return expected > 0 and observed > expected * threshold_multiplier

    def detect_anomaly(
        self,
        user_id: int | None = None,
        window_hours: float = 1,
        threshold_multiplier: float = 3,
    ) -> OperationResult[dict[str, Any]]:
        """
        Compare recent volume to the trailing baseline.

        Args:
            user_id: Scope both counts to one user
            window_hours: Length of the observed window
            threshold_multiplier: Observed must exceed expected times this

        Returns:
            Result with ``anomalous``, ``value`` (observed) and ``expected``
        """
        try:
            now = self._clock.now()
            observed = self._store.count(
                EventFilter(user_id=user_id, date_from=now - timedelta(hours=window_hours))
            )

            history = self._store.count(
                EventFilter(user_id=user_id, date_from=now - timedelta(days=self._baseline_days))
            )
            expected = history * window_hours / (self._baseline_days * 24)

            anomalous = self.is_anomalous(observed, expected, threshold_multiplier)
            if anomalous:
                logger.warning(
                    "Anomalous activity volume detected",
                    extra={"user_id": user_id, "observed": observed, "expected": expected},
                )

            return OperationResult.ok(
                {
                    "anomalous": anomalous,
                    "metric": "events",
                    "value": observed,
                    "expected": expected,
                    "window_hours": window_hours,
                    "user_id": user_id,
                }
            )
        except Exception as e:
            logger.error(f"Failed to detect anomalous activity: {e}")
            return OperationResult.fail(str(e), "Failed to detect anomalous activity")

    def generate_compliance_report(
        self,
        start_date: datetime | None,
        end_date: datetime | None,
    ) -> OperationResult[dict[str, Any]]:
        """Statistics for a date range plus the current dashboard."""
        if start_date is None or end_date is None:
            return OperationResult.fail("Date range required", "start_date and end_date are mandatory")

        try:
            statistics = self.get_statistics(StatisticsFilters(date_from=start_date, date_to=end_date))
            dashboard = self.get_dashboard_data()
            if not statistics.success or not dashboard.success:
                error = statistics.error or dashboard.error or "unknown error"
                return OperationResult.fail(error, "Failed to generate compliance report")

            return OperationResult.ok(
                {
                    "statistics": statistics.data,
                    "dashboard": dashboard.data,
                    "generated_at": self._clock.now().isoformat(),
                }
            )
        except Exception as e:
            logger.error(f"Failed to generate compliance report: {e}")
            return OperationResult.fail(str(e), "Failed to generate compliance report")
