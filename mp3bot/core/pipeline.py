"""Single-job conversion pipeline: size check → download → convert → hand-off.

WHY: This is the one place where a job's files are created and destroyed.
Keeping the whole flow in one coroutine makes the cleanup guarantee easy to
see: whatever happens, the job's files are gone when it ends.

HOW: run() creates a JobContext, checks the declared size, then runs the
transfer and conversion stages under asyncio.wait_for deadlines. Job
failures are caught at the run() boundary and returned inside a JobOutcome;
only cancellation escapes, and it removes the files first. session() wraps
run() and removes the files once the caller is done with the artifact.

RULES:
- Declared size over the limit fails before any I/O (no file, no directory)
- Download strictly precedes conversion; a failed download skips conversion
- Unexpected exceptions are wrapped into the failing stage's error kind
- Files are removed on failure inside run(), on success when session() exits
- Nothing outside work_dir is written or removed
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncContextManager, AsyncIterator, Awaitable, Callable, Optional, Type

from mp3bot.core.errors import (
    ConversionError,
    JobError,
    JobTimeout,
    SizeExceeded,
    TransferError,
)
from mp3bot.core.models import (
    ConversionOptions,
    JobContext,
    JobOutcome,
    JobRequest,
    JobStatus,
)
from mp3bot.media.transcoder import FFmpegTranscoder

logger = logging.getLogger(__name__)

TransferFactory = Callable[[], AsyncContextManager[Any]]
"""Returns an async context manager whose value has TransferClient.fetch()."""


class ConversionPipeline:
    """Runs conversion jobs against a dedicated working directory."""

    def __init__(
        self,
        transfer_factory: TransferFactory,
        transcoder: FFmpegTranscoder,
        work_dir: Path,
        max_file_size_bytes: int,
        options: Optional[ConversionOptions] = None,
        transfer_timeout_s: Optional[float] = None,
        conversion_timeout_s: Optional[float] = None,
        enforce_streaming_cap: bool = True,
    ) -> None:
        self._transfer_factory = transfer_factory
        self._transcoder = transcoder
        self.work_dir = Path(work_dir)
        self.max_file_size_bytes = max_file_size_bytes
        self.options = options or ConversionOptions()
        self.transfer_timeout_s = transfer_timeout_s
        self.conversion_timeout_s = conversion_timeout_s
        self.enforce_streaming_cap = enforce_streaming_cap

    async def run(self, request: JobRequest) -> JobOutcome:
        """Run one job to a terminal state.

        WHY: Callers need a single awaitable that either yields a usable
        MP3 path or a typed failure, never a stray exception.

        HOW: Executes the stages; a JobError from any of them fails the
        context, removes the files, and is returned in the outcome.

        RULES:
        - Returns JobOutcome with status SUCCEEDED or FAILED
        - On SUCCEEDED the artifact exists and is non-empty; call
          outcome.release() (or use session()) after hand-off
        - asyncio.CancelledError propagates after file cleanup
        """
        context = JobContext.create(request, self.work_dir, self.options)
        logger.info(
            "Job %s created for %s (requester %s, declared size %s)",
            context.job_id,
            request.file_reference,
            request.requester_id,
            request.declared_size,
        )

        try:
            await self._execute(request, context)
        except JobError as exc:
            context.fail(exc)
            context.cleanup()
            logger.warning(
                "Job %s failed [%s]: %s", context.job_id, exc.kind.value, exc
            )
            return JobOutcome(context=context, error=exc)
        except BaseException:
            context.cleanup()
            logger.warning("Job %s aborted in %s", context.job_id, context.status.value)
            raise

        return JobOutcome(context=context)

    @asynccontextmanager
    async def session(self, request: JobRequest) -> AsyncIterator[JobOutcome]:
        """Run a job and remove its files when the block exits.

        The block is the hand-off window: the artifact path is valid inside
        it and gone afterwards.
        """
        outcome = await self.run(request)
        try:
            yield outcome
        finally:
            outcome.release()

    async def _execute(self, request: JobRequest, context: JobContext) -> None:
        if (
            request.declared_size is not None
            and request.declared_size > self.max_file_size_bytes
        ):
            raise SizeExceeded(self.max_file_size_bytes, request.declared_size)

        context.advance(JobStatus.DOWNLOADING)
        await self._stage(
            "transfer",
            self.transfer_timeout_s,
            self._download(request, context),
            TransferError,
        )

        context.advance(JobStatus.CONVERTING)
        await self._stage(
            "conversion",
            self.conversion_timeout_s,
            self._transcoder.convert(context.source_path, context.target_path, self.options),
            ConversionError,
        )

        context.advance(JobStatus.SUCCEEDED)

    async def _download(self, request: JobRequest, context: JobContext) -> None:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        max_bytes = self.max_file_size_bytes if self.enforce_streaming_cap else None
        async with self._transfer_factory() as transfer:
            await transfer.fetch(request.file_reference, context.source_path, max_bytes=max_bytes)

    @staticmethod
    async def _stage(
        name: str,
        timeout_s: Optional[float],
        work: Awaitable[None],
        wrap: Type[JobError],
    ) -> None:
        try:
            await asyncio.wait_for(work, timeout=timeout_s)
        except JobError:
            raise
        except asyncio.TimeoutError as exc:
            raise JobTimeout(name, timeout_s or 0.0) from exc
        except Exception as exc:
            raise wrap(
                "Unexpected error during {}: {}".format(name, exc), cause=exc
            ) from exc
