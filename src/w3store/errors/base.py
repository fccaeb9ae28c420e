"""
Base exception class for w3store.

All package-specific exceptions inherit from W3StoreError, which carries
a machine-readable error code and a dictionary of additional context so
failures can be logged and serialized uniformly.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class W3StoreError(Exception):
    """
    Base exception for all w3store errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code (e.g., "CONTENT_NOT_FOUND").
        details: Optional dictionary with additional error context.

    Example:
        >>> raise W3StoreError(
        ...     "Publish failed",
        ...     code="PUBLISH_FAILED",
        ...     details={"campaign_id": "c-1"}
        ... )
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "W3STORE_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to a dictionary for JSON serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }
