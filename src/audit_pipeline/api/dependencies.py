"""
FastAPI dependencies.
"""

from fastapi import Request

from audit_pipeline.services import AuditServices


def get_services(request: Request) -> AuditServices:
    """Pipeline components attached to the running app."""
    return request.app.state.services
