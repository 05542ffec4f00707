"""
Statistics, dashboard data, anomaly detection and compliance reporting.
"""

from .service import ActivityAnalytics

__all__ = ["ActivityAnalytics"]
