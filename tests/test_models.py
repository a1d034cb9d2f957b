"""Unit tests for job models: status transitions, paths and cleanup.

WHY: The pipeline's guarantees (forward-only status, one pair of files per
job, nothing left behind) rest on JobContext. A transition table that
allows going backwards, or a cleanup that fails on a second call, would
break them silently.

HOW: Tests are organized by concern:
  - TestTransitions: allowed and rejected status changes
  - TestPaths: file names derived from the reference and job id
  - TestCleanup: idempotent removal of both files
  - TestOutcome: JobOutcome accessors
  - TestHelpers: safe_reference and source_extension

RULES:
- Every test uses its own tmp_path
- No test depends on the random job id; ids are passed explicitly
"""

from __future__ import annotations

from pathlib import Path

import pytest

from mp3bot.core.errors import InvalidTransitionError, TransferError
from mp3bot.core.models import (
    TARGET_PREFIX,
    ConversionOptions,
    JobContext,
    JobOutcome,
    JobRequest,
    JobStatus,
    safe_reference,
    source_extension,
)


def _context(tmp_path: Path, job_id: str = "abc123def456", **request_kwargs) -> JobContext:
    request = JobRequest(
        file_reference=request_kwargs.pop("file_reference", "F0123"),
        requester_id="U1",
        **request_kwargs,
    )
    return JobContext.create(request, tmp_path, ConversionOptions(), job_id=job_id)


# ---------------------------------------------------------------------------
# TestTransitions
# ---------------------------------------------------------------------------


class TestTransitions:
    """JobContext.advance() only moves forward."""

    def test_starts_created(self, tmp_path):
        ctx = _context(tmp_path)
        assert ctx.status == JobStatus.CREATED
        assert ctx.history == [JobStatus.CREATED]
        assert not ctx.is_terminal

    def test_happy_path(self, tmp_path):
        ctx = _context(tmp_path)
        ctx.advance(JobStatus.DOWNLOADING)
        ctx.advance(JobStatus.CONVERTING)
        ctx.advance(JobStatus.SUCCEEDED)
        assert ctx.history == [
            JobStatus.CREATED,
            JobStatus.DOWNLOADING,
            JobStatus.CONVERTING,
            JobStatus.SUCCEEDED,
        ]
        assert ctx.is_terminal

    @pytest.mark.parametrize(
        "path",
        [
            [],
            [JobStatus.DOWNLOADING],
            [JobStatus.DOWNLOADING, JobStatus.CONVERTING],
        ],
    )
    def test_fail_from_any_non_terminal_state(self, tmp_path, path):
        ctx = _context(tmp_path)
        for status in path:
            ctx.advance(status)
        error = TransferError("boom")
        ctx.fail(error)
        assert ctx.status == JobStatus.FAILED
        assert ctx.error is error

    def test_cannot_skip_download(self, tmp_path):
        ctx = _context(tmp_path)
        with pytest.raises(InvalidTransitionError):
            ctx.advance(JobStatus.CONVERTING)
        assert ctx.status == JobStatus.CREATED

    def test_cannot_go_backwards(self, tmp_path):
        ctx = _context(tmp_path)
        ctx.advance(JobStatus.DOWNLOADING)
        ctx.advance(JobStatus.CONVERTING)
        with pytest.raises(InvalidTransitionError):
            ctx.advance(JobStatus.DOWNLOADING)

    def test_terminal_states_are_final(self, tmp_path):
        ctx = _context(tmp_path)
        ctx.fail(TransferError("x"))
        for status in JobStatus:
            with pytest.raises(InvalidTransitionError):
                ctx.advance(status)
        assert ctx.history == [JobStatus.CREATED, JobStatus.FAILED]


# ---------------------------------------------------------------------------
# TestPaths
# ---------------------------------------------------------------------------


class TestPaths:
    """Source and target names are unique per job and stay in work_dir."""

    def test_names_include_reference_and_job_id(self, tmp_path):
        ctx = _context(tmp_path, filename="holiday.MOV")
        assert ctx.source_path == tmp_path / "F0123_abc123def456.mov"
        assert ctx.target_path == tmp_path / (TARGET_PREFIX + "F0123_abc123def456.mp3")

    def test_default_source_extension(self, tmp_path):
        ctx = _context(tmp_path)
        assert ctx.source_path.suffix == ".mp4"

    def test_same_reference_different_jobs_do_not_collide(self, tmp_path):
        request = JobRequest(file_reference="F0123", requester_id="U1")
        a = JobContext.create(request, tmp_path, ConversionOptions())
        b = JobContext.create(request, tmp_path, ConversionOptions())
        assert a.job_id != b.job_id
        assert {a.source_path, a.target_path}.isdisjoint({b.source_path, b.target_path})

    def test_unsafe_reference_cannot_escape_work_dir(self, tmp_path):
        ctx = _context(tmp_path, file_reference="../../etc/passwd")
        assert ctx.source_path.parent == tmp_path
        assert ctx.target_path.parent == tmp_path

    def test_target_uses_options_extension(self, tmp_path):
        request = JobRequest(file_reference="F1", requester_id="U1")
        ctx = JobContext.create(
            request, tmp_path, ConversionOptions(extension=".ogg"), job_id="j1"
        )
        assert ctx.target_path.name == TARGET_PREFIX + "F1_j1.ogg"


# ---------------------------------------------------------------------------
# TestCleanup
# ---------------------------------------------------------------------------


class TestCleanup:
    """cleanup() removes both files and can be repeated."""

    def test_removes_both_files(self, tmp_path):
        ctx = _context(tmp_path)
        ctx.source_path.write_bytes(b"video")
        ctx.target_path.write_bytes(b"audio")
        ctx.cleanup()
        assert not ctx.source_path.exists()
        assert not ctx.target_path.exists()

    def test_missing_files_are_fine(self, tmp_path):
        ctx = _context(tmp_path)
        ctx.cleanup()
        ctx.cleanup()

    def test_twice_is_same_as_once(self, tmp_path):
        ctx = _context(tmp_path)
        ctx.source_path.write_bytes(b"video")
        ctx.cleanup()
        ctx.cleanup()
        assert list(tmp_path.iterdir()) == []

    def test_leaves_other_files_alone(self, tmp_path):
        ctx = _context(tmp_path)
        other = tmp_path / "keep.txt"
        other.write_text("x")
        ctx.source_path.write_bytes(b"video")
        ctx.cleanup()
        assert other.exists()


# ---------------------------------------------------------------------------
# TestOutcome
# ---------------------------------------------------------------------------


class TestOutcome:
    def test_success_exposes_artifact(self, tmp_path):
        ctx = _context(tmp_path)
        for status in (JobStatus.DOWNLOADING, JobStatus.CONVERTING, JobStatus.SUCCEEDED):
            ctx.advance(status)
        outcome = JobOutcome(context=ctx)
        assert outcome.ok
        assert outcome.status == JobStatus.SUCCEEDED
        assert outcome.artifact_path == ctx.target_path

    def test_failure_has_no_artifact(self, tmp_path):
        ctx = _context(tmp_path)
        error = TransferError("nope")
        ctx.fail(error)
        outcome = JobOutcome(context=ctx, error=error)
        assert not outcome.ok
        assert outcome.artifact_path is None

    def test_release_cleans_up(self, tmp_path):
        ctx = _context(tmp_path)
        ctx.target_path.write_bytes(b"audio")
        JobOutcome(context=ctx).release()
        assert not ctx.target_path.exists()


# ---------------------------------------------------------------------------
# TestHelpers
# ---------------------------------------------------------------------------


class TestHelpers:
    @pytest.mark.parametrize(
        "reference,expected",
        [
            ("F0ABC123", "F0ABC123"),
            ("https://x.test/a b.mp4", "https-x-test-a-b-mp4"),
            ("///", "file"),
            ("", "file"),
        ],
    )
    def test_safe_reference(self, reference, expected):
        assert safe_reference(reference) == expected

    def test_safe_reference_is_bounded(self):
        assert len(safe_reference("a" * 500)) == 64

    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("clip.MP4", ".mp4"),
            ("movie.webm", ".webm"),
            (None, ".mp4"),
            ("noext", ".mp4"),
            ("weird.m p4", ".mp4"),
            ("long.extension", ".mp4"),
        ],
    )
    def test_source_extension(self, filename, expected):
        assert source_extension(filename) == expected
