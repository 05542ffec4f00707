"""
REST API for the audit pipeline.

Usage:
    uvicorn audit_pipeline.api.app:create_app --factory
"""

from audit_pipeline.api.app import create_app

__all__ = ["create_app"]
