"""Fixed user-facing texts for every job outcome.

WHY: Internal causes (HTTP codes, ffmpeg stderr, Slack API errors) are
useful in the log but confusing or leaky in a chat. Users get one stable
sentence per outcome kind instead.

HOW: ERROR_MESSAGES maps each ErrorKind to a template. user_message()
fills in the size limit where relevant. The remaining constants cover
the non-error replies of the conversation.

RULES:
- Every ErrorKind must have an entry in ERROR_MESSAGES
- Texts never include str(error) or the cause
"""

from __future__ import annotations

from typing import Dict

from mp3bot.core.errors import ErrorKind, JobError, SizeExceeded

WELCOME = "Welcome to the bot! Send me a video, and I will convert it to MP3 for you."
JOIN_PROMPT = "To use this bot, you need to join our channel first:"
JOIN_THANKS = "Thank you for joining the channel! You can now use the bot by sending a video."
NOT_JOINED_YET = "It seems you haven't joined the channel yet. Please join and try again."
PROCESSING = "Processing your video... Please wait."
CONVERSION_COMPLETE = "Conversion complete! Sending your MP3 file..."
DELIVERY_FAILED = "The MP3 was ready but could not be sent. Please try again."
RATE_LIMITED = "You're sending videos too quickly. Please wait {seconds} seconds and try again."
BUSY = "The bot is busy converting other videos right now. Please try again in a moment."
UNEXPECTED = "An error occurred while processing your request. Please try again later."

ERROR_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.SIZE_EXCEEDED: "This video is too large. The maximum size is {limit_mb} MB.",
    ErrorKind.TRANSFER_FAILED: "Failed to download the video. Please try again.",
    ErrorKind.CONVERSION_FAILED: "An error occurred while converting the video. Please try again.",
    ErrorKind.TIMED_OUT: "Processing took too long and was stopped. Please try a shorter video.",
    ErrorKind.GATE_UNAVAILABLE: (
        "The bot is not configured correctly. Please contact the administrator."
    ),
}


def user_message(error: JobError) -> str:
    """Return the user-safe text for ``error``.

    Raises KeyError for an ErrorKind without a text, so a new kind cannot
    silently fall through to a generic reply.
    """
    template = ERROR_MESSAGES[error.kind]
    if isinstance(error, SizeExceeded):
        return template.format(limit_mb=_format_mb(error.limit))
    return template


def rate_limited_message(retry_after_s: float) -> str:
    return RATE_LIMITED.format(seconds=max(1, int(retry_after_s + 0.999)))


def _format_mb(size_bytes: int) -> str:
    mb = size_bytes / (1024 * 1024)
    if mb == int(mb):
        return str(int(mb))
    return "{:.1f}".format(mb)
