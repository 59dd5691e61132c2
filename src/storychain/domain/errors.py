"""Error taxonomy raised by the chapter contribution workflow."""

from __future__ import annotations

from typing import ClassVar, Literal

ErrorKind = Literal["validation", "not_found", "bad_request", "forbidden", "internal", "transient"]


class ChapterWorkflowError(Exception):
    """Base error; ``kind`` is what transports map onto their own status codes."""

    kind: ClassVar[ErrorKind] = "internal"
    retryable: ClassVar[bool] = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ChapterWorkflowError):
    kind = "validation"


class NotFoundError(ChapterWorkflowError):
    kind = "not_found"


class BadRequestError(ChapterWorkflowError):
    kind = "bad_request"


class ForbiddenError(ChapterWorkflowError):
    kind = "forbidden"


class InternalError(ChapterWorkflowError):
    kind = "internal"


class TransientError(ChapterWorkflowError):
    """Safe to retry unchanged: lock timeouts, expired transactions, failed commits."""

    kind = "transient"
    retryable = True


__all__ = [
    "BadRequestError",
    "ChapterWorkflowError",
    "ErrorKind",
    "ForbiddenError",
    "InternalError",
    "NotFoundError",
    "TransientError",
    "ValidationError",
]
