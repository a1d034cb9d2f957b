"""Platform-neutral core: job models, error taxonomy, limits and the pipeline.

WHY: The conversion flow does not depend on Slack. Keeping it here lets the
CLI and tests drive it directly, with the platform layer plugged in only
through the resolver passed to the transfer client.

HOW: models.py defines the job dataclasses, errors.py the failure kinds,
limits.py the rate limiter and admission pool, pipeline.py the orchestrator.

RULES:
- Nothing in this package imports slack_bolt or slack_sdk
- Pipeline failures are JobError subclasses, never bare exceptions
"""

from mp3bot.core.errors import (
    ConversionError,
    ErrorKind,
    GateUnavailable,
    JobError,
    JobTimeout,
    SizeExceeded,
    TransferError,
)
from mp3bot.core.models import ConversionOptions, JobContext, JobOutcome, JobRequest, JobStatus

__all__ = [
    "ConversionError",
    "ConversionOptions",
    "ErrorKind",
    "GateUnavailable",
    "JobContext",
    "JobError",
    "JobOutcome",
    "JobRequest",
    "JobStatus",
    "JobTimeout",
    "SizeExceeded",
    "TransferError",
]
