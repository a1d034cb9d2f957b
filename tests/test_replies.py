"""Tests for the user-facing reply texts.

RULES:
- Every ErrorKind has a text
- Texts never leak the internal error message
"""

from __future__ import annotations

import pytest

from mp3bot import replies
from mp3bot.core.errors import (
    ConversionError,
    ErrorKind,
    GateUnavailable,
    JobError,
    JobTimeout,
    SizeExceeded,
    TransferError,
)

MIB = 1024 * 1024


class TestErrorMessages:
    def test_every_kind_is_mapped(self):
        assert set(replies.ERROR_MESSAGES) == set(ErrorKind)

    @pytest.mark.parametrize(
        "error",
        [
            SizeExceeded(50 * MIB, 80 * MIB),
            TransferError("HTTP 403 from https://files.slack.com/secret"),
            ConversionError("ffmpeg exited with code 1: /work/F1_abc.mp4: Invalid data"),
            JobTimeout("conversion", 600),
            GateUnavailable("channel_not_found"),
        ],
    )
    def test_message_hides_internal_details(self, error):
        text = replies.user_message(error)
        assert text
        assert str(error) not in text

    def test_size_message_includes_limit(self):
        text = replies.user_message(SizeExceeded(50 * MIB, 80 * MIB))
        assert "50 MB" in text

    def test_fractional_limit(self):
        text = replies.user_message(SizeExceeded(int(1.5 * MIB)))
        assert "1.5 MB" in text

    def test_transfer_and_conversion_texts(self):
        assert replies.user_message(TransferError("x")) == (
            "Failed to download the video. Please try again."
        )
        assert replies.user_message(ConversionError("x")) == (
            "An error occurred while converting the video. Please try again."
        )

    def test_unmapped_kind_raises(self):
        class Unmapped(JobError):
            kind = "not-a-kind"

        with pytest.raises(KeyError):
            replies.user_message(Unmapped("x"))


class TestRateLimitedMessage:
    @pytest.mark.parametrize(
        "retry_after,expected",
        [(0.0, "1 seconds"), (0.2, "1 seconds"), (44.5, "45 seconds"), (45.0, "45 seconds")],
    )
    def test_rounds_up(self, retry_after, expected):
        assert expected in replies.rate_limited_message(retry_after)
