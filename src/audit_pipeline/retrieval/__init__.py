"""
Paged listing, lookup and search over stored activity logs.
"""

from .service import (
    MAX_LIMIT,
    ActivityPage,
    ActivityRetrieval,
    Pagination,
    SortOrder,
)

__all__ = [
    "MAX_LIMIT",
    "ActivityPage",
    "ActivityRetrieval",
    "Pagination",
    "SortOrder",
]
