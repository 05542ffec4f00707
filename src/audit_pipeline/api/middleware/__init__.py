"""
HTTP middleware for the audit API.
"""

from audit_pipeline.api.middleware.logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
