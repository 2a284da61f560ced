"""Error taxonomy shared by every operation.

Callers branch on the exception class and read ``context``; the message is
for humans only.
"""

from __future__ import annotations

from typing import Any


class PageToolsError(Exception):
    def __init__(self, message: str, *, operation: str | None = None, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.context: dict[str, Any] = dict(context or {})

    def with_operation(self, operation: str) -> "PageToolsError":
        if self.operation is None:
            self.operation = operation
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": type(self).__name__,
            "message": self.message,
            "operation": self.operation,
            "context": self.context,
        }


class InvalidSpec(PageToolsError):
    """Range/order text is empty or cannot be parsed."""


class OutOfRange(PageToolsError):
    """Split boundary outside the valid interval."""


class InsufficientInput(PageToolsError):
    """Merge called with fewer than two documents."""


class UnsupportedMediaType(PageToolsError):
    """File kind not accepted by the requested operation."""


class FileTooLarge(UnsupportedMediaType):
    pass


class CollaboratorFailure(PageToolsError):
    """Decode/encode/render/recognize error raised by an external library."""
