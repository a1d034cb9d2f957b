"""Closed set of job failure kinds.

WHY: Callers must turn every failure into a fixed, user-safe message and
log the real cause. Distinguishing failures by exception type (rather than
by poking at attributes of arbitrary error objects) makes that mapping
exhaustive and checkable.

HOW: Every job failure is a JobError subclass carrying an ErrorKind tag.
The underlying exception, when there is one, is kept on ``cause`` and
chained with ``raise ... from``.

RULES:
- ErrorKind is closed: adding a member requires a reply text in mp3bot.replies
- str(error) is for logs only and may contain internal details
"""

from __future__ import annotations

import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    """Tag identifying which failure variant a JobError is."""

    SIZE_EXCEEDED = "size_exceeded"
    TRANSFER_FAILED = "transfer_failed"
    CONVERSION_FAILED = "conversion_failed"
    TIMED_OUT = "timed_out"
    GATE_UNAVAILABLE = "gate_unavailable"


class JobError(Exception):
    """Base class for all job failures."""

    kind: ErrorKind

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(message)


class SizeExceeded(JobError):
    """Raised when a video is larger than the configured maximum.

    ``size`` is the declared size, or the number of bytes streamed so far
    when the limit was hit mid-transfer.
    """

    kind = ErrorKind.SIZE_EXCEEDED

    def __init__(self, limit: int, size: Optional[int] = None) -> None:
        self.limit = limit
        self.size = size
        if size is None:
            message = "File exceeds the {:,} byte limit".format(limit)
        else:
            message = "File size {:,} bytes exceeds the {:,} byte limit".format(size, limit)
        super().__init__(message)


class TransferError(JobError):
    """Raised when downloading the source video fails."""

    kind = ErrorKind.TRANSFER_FAILED


class ConversionError(JobError):
    """Raised when ffmpeg fails or produces no usable output."""

    kind = ErrorKind.CONVERSION_FAILED


class JobTimeout(JobError):
    """Raised when a pipeline stage runs past its deadline."""

    kind = ErrorKind.TIMED_OUT

    def __init__(self, stage: str, seconds: float) -> None:
        self.stage = stage
        self.seconds = seconds
        super().__init__("{} stage timed out after {:g}s".format(stage, seconds))


class GateUnavailable(JobError):
    """Raised when channel membership could not be determined.

    Kept separate from a plain "not a member" answer so users are never
    told they lack access when the bot is actually misconfigured.
    """

    kind = ErrorKind.GATE_UNAVAILABLE


class InvalidTransitionError(RuntimeError):
    """Raised when a JobContext is moved backwards or out of a terminal state."""
