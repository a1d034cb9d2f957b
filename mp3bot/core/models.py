"""Job request, job context and conversion option dataclasses.

WHY: A job moves through a short linear lifecycle and owns two files on
disk. Modelling that explicitly lets the pipeline enforce forward-only
status changes and guarantees the files can always be found and removed.

HOW: JobRequest and ConversionOptions are frozen inputs. JobContext is
the only mutable piece; it changes through advance()/fail() which check
the transition table. JobOutcome wraps the terminal context for callers.

RULES:
- created → downloading → converting → succeeded, with failed reachable
  from every non-terminal state; nothing else is allowed
- Terminal states (succeeded, failed) are never left
- cleanup() may be called any number of times
- File names come from the sanitized file reference plus the job id
"""

from __future__ import annotations

import enum
import logging
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from mp3bot.core.errors import InvalidTransitionError, JobError

logger = logging.getLogger(__name__)

TARGET_PREFIX = "mp3bot_"
DEFAULT_SOURCE_EXTENSION = ".mp4"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]+")
_MAX_REFERENCE_CHARS = 64


class JobStatus(str, enum.Enum):
    """Lifecycle states of a conversion job."""

    CREATED = "created"
    DOWNLOADING = "downloading"
    CONVERTING = "converting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.CREATED: frozenset({JobStatus.DOWNLOADING, JobStatus.FAILED}),
    JobStatus.DOWNLOADING: frozenset({JobStatus.CONVERTING, JobStatus.FAILED}),
    JobStatus.CONVERTING: frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED}),
    JobStatus.SUCCEEDED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED})


@dataclass(frozen=True)
class JobRequest:
    """One inbound video, as reported by the platform.

    file_reference is opaque to the pipeline; only the platform resolver
    knows how to turn it into a download URL. declared_size may be None
    when the platform does not report one. filename only picks the
    extension of the local source file.
    """

    file_reference: str
    requester_id: str
    declared_size: Optional[int] = None
    filename: Optional[str] = None


@dataclass(frozen=True)
class ConversionOptions:
    """Fixed ffmpeg target parameters.

    video_codec None drops the video stream; resolution is only used when a
    video codec is set. Optional fields left as None are not passed to ffmpeg.
    """

    audio_codec: str = "libmp3lame"
    audio_bitrate: Optional[str] = "192k"
    video_codec: Optional[str] = None
    resolution: Optional[str] = None
    sample_rate: Optional[int] = 44100
    channels: Optional[int] = None
    extension: str = "mp3"


@dataclass
class JobContext:
    """Mutable state of one job and the two files it owns."""

    job_id: str
    source_path: Path
    target_path: Path
    status: JobStatus = JobStatus.CREATED
    error: Optional[JobError] = None
    history: List[JobStatus] = field(default_factory=lambda: [JobStatus.CREATED])

    @classmethod
    def create(
        cls,
        request: JobRequest,
        work_dir: Path,
        options: ConversionOptions,
        job_id: Optional[str] = None,
    ) -> JobContext:
        """Create a context with paths derived from the request."""
        job_id = job_id or uuid.uuid4().hex[:12]
        stem = "{}_{}".format(safe_reference(request.file_reference), job_id)
        source = work_dir / (stem + source_extension(request.filename))
        target = work_dir / "{}{}.{}".format(TARGET_PREFIX, stem, options.extension.lstrip("."))
        return cls(job_id=job_id, source_path=source, target_path=target)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def advance(self, status: JobStatus) -> None:
        """Move to ``status``, raising InvalidTransitionError if not allowed."""
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                "Job {}: cannot move from {} to {}".format(
                    self.job_id, self.status.value, status.value
                )
            )
        self.status = status
        self.history.append(status)
        logger.info("Job %s -> %s", self.job_id, status.value)

    def fail(self, error: JobError) -> None:
        self.error = error
        self.advance(JobStatus.FAILED)

    def cleanup(self) -> None:
        """Remove both backing files; missing files are not an error."""
        for path in (self.source_path, self.target_path):
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError:
                logger.warning("Job %s: failed to remove %s", self.job_id, path)
            else:
                logger.debug("Job %s: removed %s", self.job_id, path)


@dataclass
class JobOutcome:
    """Terminal result of ConversionPipeline.run()."""

    context: JobContext
    error: Optional[JobError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.context.status == JobStatus.SUCCEEDED

    @property
    def status(self) -> JobStatus:
        return self.context.status

    @property
    def artifact_path(self) -> Optional[Path]:
        return self.context.target_path if self.ok else None

    def release(self) -> None:
        """Confirm hand-off; removes the job's files."""
        self.context.cleanup()


def safe_reference(file_reference: str) -> str:
    """Turn an opaque file reference into a filesystem-safe name fragment."""
    cleaned = _UNSAFE_CHARS.sub("-", file_reference).strip("-")
    return cleaned[:_MAX_REFERENCE_CHARS] or "file"


def source_extension(filename: Optional[str]) -> str:
    """Pick the local source extension from the platform filename."""
    if filename:
        suffix = Path(filename).suffix.lower()
        if suffix and _UNSAFE_CHARS.sub("", suffix[1:]) == suffix[1:] and len(suffix) <= 6:
            return suffix
    return DEFAULT_SOURCE_EXTENSION
