"""
Audit Pipeline - real-time audit event processing for the recruitment platform.

Ingests security and business events, fans them out to live observers,
persists them, detects anomalous activity, enforces retention policy and
exports events in bulk with bounded memory.
"""

__version__ = "0.1.0"

# API module is available but not exported by default
# Import explicitly: from audit_pipeline.api import create_app

__all__ = ["__version__"]
