"""
API route handlers.
"""

from audit_pipeline.api.routes import audit, health

__all__ = ["audit", "health"]
