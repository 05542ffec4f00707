"""
Uniform operation result wrapper.

Read-only reporting operations return an OperationResult instead of raising,
so an HTTP layer can map failures to responses without a try/except per call.
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass
class OperationResult(Generic[T]):
    """Result of an operation that reports failures instead of raising."""

    success: bool
    data: T | None = None
    error: str | None = None
    message: str | None = None

    @classmethod
    def ok(cls, data: T, message: str | None = None) -> "OperationResult[T]":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str, message: str | None = None) -> "OperationResult[T]":
        return cls(success=False, error=error, message=message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the {success, data | error, message} response shape."""
        payload: dict[str, Any] = {"success": self.success}
        if self.success:
            payload["data"] = self.data
        else:
            payload["error"] = self.error
        if self.message is not None:
            payload["message"] = self.message
        return payload
