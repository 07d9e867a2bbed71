"""
errors.py – The single error type raised by every remote operation.
"""

from __future__ import annotations


class ServiceError(Exception):
    """A failed Azure DevOps operation, carrying the upstream HTTP status."""

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"ServiceError(status={self.status_code}, message={self.message!r})"
