"""
Exceptions raised by the job queue to its callers.
"""

from typing import Optional


class InvalidArgumentError(ValueError):
    """Raised when a job cannot be enqueued because its input is incomplete."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, field={self.field!r})"
