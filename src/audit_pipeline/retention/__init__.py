"""
Retention policy: archival, expiry, compression bookkeeping and integrity.
"""

from .manager import RetentionManager, RetentionReport, archive_filename

__all__ = ["RetentionManager", "RetentionReport", "archive_filename"]
