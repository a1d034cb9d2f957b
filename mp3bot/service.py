"""Conversion service: admission, job execution and user notification.

WHY: The pipeline knows nothing about users, chats or limits. Something has
to decide whether a video may be converted at all, run the job off the
platform's event thread, and tell the user what happened. Holding all of
that in one explicitly constructed object (rather than module globals)
keeps the bot handlers thin and makes the flow testable with fakes.

HOW: submit() runs the membership gate, the admission pool and the rate
limiter synchronously, posts the "processing" reply, then schedules the job
on a bounded ThreadPoolExecutor and returns its Future. Each worker runs the
job coroutine with asyncio.run(), so every job has its own event loop, HTTP
session and ffmpeg process. Results go back through the Notifier.

RULES:
- member/admin/owner are authorized; none is not; unknown → GateUnavailable
- Jobs are never queued: a full admission pool rejects with BUSY
- Rate-limit budget is only spent on jobs that pass gate and admission
- The admission slot is released when the worker finishes, whatever happens
- Notifier calls from inside a job run in a thread (they block)
"""

from __future__ import annotations

import asyncio
import enum
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import httpx

from mp3bot import replies
from mp3bot.config import Settings
from mp3bot.core.errors import GateUnavailable
from mp3bot.core.limits import JobAdmission, RateLimiter
from mp3bot.core.models import JobOutcome, JobRequest
from mp3bot.core.pipeline import ConversionPipeline
from mp3bot.media.transcoder import FFmpegTranscoder
from mp3bot.transfer.client import Resolver, TransferClient

logger = logging.getLogger(__name__)


class MembershipStatus(str, enum.Enum):
    """Answer of the membership gate for one user."""

    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"
    NONE = "none"
    UNKNOWN = "unknown"


AUTHORIZED_STATUSES = frozenset(
    {MembershipStatus.MEMBER, MembershipStatus.ADMIN, MembershipStatus.OWNER}
)


@dataclass(frozen=True)
class ChatRef:
    """Where replies for a request go."""

    channel: str
    thread_ts: Optional[str] = None
    user_id: Optional[str] = None


class MembershipGate(Protocol):
    def check(self, user_id: str) -> MembershipStatus: ...


class Notifier(Protocol):
    def send_text(self, chat: ChatRef, text: str) -> Optional[str]: ...

    def edit_text(self, chat: ChatRef, message_ref: str, text: str) -> None: ...

    def send_audio(self, chat: ChatRef, file_path: Path, caption: str) -> None: ...

    def send_join_prompt(self, chat: ChatRef) -> None: ...


class SubmitStatus(str, enum.Enum):
    ACCEPTED = "accepted"
    NOT_MEMBER = "not_member"
    GATE_UNAVAILABLE = "gate_unavailable"
    RATE_LIMITED = "rate_limited"
    BUSY = "busy"


@dataclass
class Submission:
    """Result of ConversionService.submit(); ``future`` is set only when accepted."""

    status: SubmitStatus
    future: Optional["Future[Optional[JobOutcome]]"] = None

    @property
    def accepted(self) -> bool:
        return self.status == SubmitStatus.ACCEPTED


def build_pipeline(settings: Settings, resolver: Resolver) -> ConversionPipeline:
    """Construct the pipeline described by ``settings``.

    Each job gets a fresh TransferClient because jobs run on separate
    event loops and an httpx.AsyncClient is bound to the loop it was used on.
    """
    timeout = httpx.Timeout(settings.transfer_timeout_s, connect=15.0)
    return ConversionPipeline(
        transfer_factory=lambda: TransferClient(resolver, timeout=timeout),
        transcoder=FFmpegTranscoder(settings.ffmpeg_path),
        work_dir=settings.work_dir,
        max_file_size_bytes=settings.max_file_size_bytes,
        options=settings.conversion,
        transfer_timeout_s=settings.transfer_timeout_s,
        conversion_timeout_s=settings.conversion_timeout_s,
        enforce_streaming_cap=settings.enforce_streaming_cap,
    )


def authorize(status: MembershipStatus) -> bool:
    """Map a gate answer to an access decision.

    Raises GateUnavailable for UNKNOWN so a broken gate is never mistaken
    for a plain "not a member".
    """
    if status in AUTHORIZED_STATUSES:
        return True
    if status == MembershipStatus.NONE:
        return False
    raise GateUnavailable("Membership status could not be determined")


class ConversionService:
    """Admits video requests and runs them through the pipeline."""

    def __init__(
        self,
        pipeline: ConversionPipeline,
        gate: MembershipGate,
        rate_limiter: RateLimiter,
        admission: JobAdmission,
        audio_caption: str = "",
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.pipeline = pipeline
        self.gate = gate
        self.rate_limiter = rate_limiter
        self.admission = admission
        self.audio_caption = audio_caption
        self._executor = executor or ThreadPoolExecutor(
            max_workers=admission.max_jobs,
            thread_name_prefix="mp3bot-job",
        )

    def check_access(self, user_id: str) -> bool:
        """Return whether ``user_id`` may use the bot; raises GateUnavailable."""
        try:
            status = self.gate.check(user_id)
        except Exception as exc:
            raise GateUnavailable(
                "Membership check failed for {}: {}".format(user_id, exc), cause=exc
            ) from exc
        logger.debug("Membership of %s: %s", user_id, status.value)
        return authorize(status)

    def submit(self, request: JobRequest, chat: ChatRef, notifier: Notifier) -> Submission:
        """Admit ``request`` and start its job in the background.

        WHY: Platform handlers must return quickly; the conversion takes
        seconds to minutes.

        HOW: Checks membership, capacity and rate limit in that order,
        replying to the user on each rejection. On acceptance, posts the
        processing message and hands the job to the worker pool.

        RULES:
        - Returns a Submission; its future resolves to the JobOutcome (or
          None if the job crashed outside the pipeline)
        - No job work happens on the calling thread
        """
        user_id = request.requester_id

        try:
            allowed = self.check_access(user_id)
        except GateUnavailable as exc:
            logger.error("Membership gate unavailable for %s: %s", user_id, exc)
            self._safe_send(notifier, chat, replies.user_message(exc))
            return Submission(SubmitStatus.GATE_UNAVAILABLE)

        if not allowed:
            logger.info("Rejected video from %s: not a channel member", user_id)
            try:
                notifier.send_join_prompt(chat)
            except Exception:
                logger.exception("Failed to send join prompt to %s", user_id)
            return Submission(SubmitStatus.NOT_MEMBER)

        if not self.admission.try_acquire():
            logger.warning("Rejected video from %s: all %d job slots busy", user_id, self.admission.max_jobs)
            self._safe_send(notifier, chat, replies.BUSY)
            return Submission(SubmitStatus.BUSY)

        if not self.rate_limiter.try_acquire(user_id):
            self.admission.release()
            retry_after = self.rate_limiter.retry_after(user_id)
            logger.info("Rate limited %s (retry in %.0fs)", user_id, retry_after)
            self._safe_send(notifier, chat, replies.rate_limited_message(retry_after))
            return Submission(SubmitStatus.RATE_LIMITED)

        message_ref = self._safe_send(notifier, chat, replies.PROCESSING)

        try:
            future = self._executor.submit(self._run_job, request, chat, notifier, message_ref)
        except RuntimeError:
            self.admission.release()
            raise

        return Submission(SubmitStatus.ACCEPTED, future=future)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _run_job(
        self,
        request: JobRequest,
        chat: ChatRef,
        notifier: Notifier,
        message_ref: Optional[str],
    ) -> Optional[JobOutcome]:
        try:
            return asyncio.run(self._convert_and_deliver(request, chat, notifier, message_ref))
        except Exception:
            logger.exception("Job for %s crashed", request.file_reference)
            self._reply(notifier, chat, message_ref, replies.UNEXPECTED)
            return None
        finally:
            self.admission.release()

    async def _convert_and_deliver(
        self,
        request: JobRequest,
        chat: ChatRef,
        notifier: Notifier,
        message_ref: Optional[str],
    ) -> JobOutcome:
        async with self.pipeline.session(request) as outcome:
            if not outcome.ok:
                assert outcome.error is not None
                await asyncio.to_thread(
                    self._reply, notifier, chat, message_ref, replies.user_message(outcome.error)
                )
                return outcome

            await asyncio.to_thread(
                self._reply, notifier, chat, message_ref, replies.CONVERSION_COMPLETE
            )
            try:
                await asyncio.to_thread(
                    notifier.send_audio, chat, outcome.artifact_path, self.audio_caption
                )
            except Exception:
                logger.exception("Job %s: failed to deliver audio", outcome.context.job_id)
                await asyncio.to_thread(
                    self._reply, notifier, chat, message_ref, replies.DELIVERY_FAILED
                )
            else:
                logger.info("Job %s: delivered audio to %s", outcome.context.job_id, chat.channel)

        return outcome

    @staticmethod
    def _reply(
        notifier: Notifier,
        chat: ChatRef,
        message_ref: Optional[str],
        text: str,
    ) -> None:
        """Edit the processing message, or post a new one if there is none."""
        try:
            if message_ref:
                notifier.edit_text(chat, message_ref, text)
            else:
                notifier.send_text(chat, text)
        except Exception:
            logger.exception("Failed to send reply to %s", chat.channel)

    @staticmethod
    def _safe_send(notifier: Notifier, chat: ChatRef, text: str) -> Optional[str]:
        try:
            return notifier.send_text(chat, text)
        except Exception:
            logger.exception("Failed to send message to %s", chat.channel)
            return None
