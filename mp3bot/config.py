"""Configuration defaults, .env loading and the immutable Settings object.

WHY: Every tunable value (tokens, limits, timeouts, ffmpeg parameters) is
supplied once at startup and must not change while jobs are running.
Keeping them in one module makes them easy to find and override.

HOW: python-dotenv loads the .env file on import. Module-level defaults are
read with os.getenv so they can be inspected directly. load_settings()
validates everything and returns a frozen Settings dataclass that the bot
and the CLI pass to the objects they construct.

RULES:
- Tokens are loaded from the environment, never hardcoded
- Settings is frozen; build a new one instead of mutating
- Malformed numbers raise ValueError naming the variable
- Slack tokens are only required by the bot, not by the CLI convert command
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from mp3bot.core.models import ConversionOptions

# Load .env from the project root (where the bot is started from)
load_dotenv()

MIB = 1024 * 1024

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_WORK_DIR = os.getenv("WORK_DIR", "downloads")
DEFAULT_MAX_FILE_SIZE_MB = 50
DEFAULT_TRANSFER_TIMEOUT_S = 300.0
DEFAULT_CONVERSION_TIMEOUT_S = 600.0
DEFAULT_RATE_LIMIT_WINDOW_S = 60.0
DEFAULT_RATE_LIMIT_MAX_REQUESTS = 3
DEFAULT_MAX_CONCURRENT_JOBS = 4
DEFAULT_AUDIO_CAPTION = "MP3 by mp3bot"

FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

VIDEO_EXTENSIONS: set[str] = {
    ".mp4", ".mov", ".mkv", ".webm", ".avi", ".m4v", ".3gp", ".mpeg", ".mpg", ".wmv",
}
"""Video file extensions the bot reacts to (lowercase, with dot)."""


@dataclass(frozen=True)
class Settings:
    """Startup configuration for one bot process.

    RULES:
    - max_file_size_bytes applies to both the declared and the streamed size
    - max_concurrent_jobs bounds worker threads and admission slots alike
    - required_channel_id may be empty; the membership gate then reports
      itself unavailable instead of letting everyone in
    """

    slack_bot_token: str = ""
    slack_app_token: str = ""
    required_channel_id: str = ""
    work_dir: Path = Path(DEFAULT_WORK_DIR)
    max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_MB * MIB
    transfer_timeout_s: float = DEFAULT_TRANSFER_TIMEOUT_S
    conversion_timeout_s: float = DEFAULT_CONVERSION_TIMEOUT_S
    rate_limit_window_s: float = DEFAULT_RATE_LIMIT_WINDOW_S
    rate_limit_max_requests: int = DEFAULT_RATE_LIMIT_MAX_REQUESTS
    max_concurrent_jobs: int = DEFAULT_MAX_CONCURRENT_JOBS
    ffmpeg_path: str = FFMPEG_PATH
    conversion: ConversionOptions = field(default_factory=ConversionOptions)
    audio_caption: str = DEFAULT_AUDIO_CAPTION
    enforce_streaming_cap: bool = True


def load_settings(require_slack: bool = True) -> Settings:
    """Build Settings from the environment.

    WHY: The bot needs its tokens and limits before it can construct the
    pipeline; failing early with a readable message beats failing on the
    first video.

    HOW: Reads each variable with os.getenv, converts and range-checks it,
    and assembles a frozen Settings.

    RULES:
    - Raises ValueError if a Slack token is missing and require_slack is True
    - Raises ValueError for non-numeric or non-positive limits
    """
    bot_token = os.getenv("SLACK_BOT_TOKEN", "").strip()
    app_token = os.getenv("SLACK_APP_TOKEN", "").strip()
    if require_slack:
        if not bot_token:
            raise ValueError(
                "Slack bot token not configured. "
                "Add SLACK_BOT_TOKEN to the .env file."
            )
        if not app_token:
            raise ValueError(
                "Slack app token not configured. "
                "Add SLACK_APP_TOKEN to the .env file."
            )

    conversion = ConversionOptions(
        audio_codec=os.getenv("AUDIO_CODEC", "libmp3lame"),
        audio_bitrate=os.getenv("AUDIO_BITRATE", "192k") or None,
    )

    return Settings(
        slack_bot_token=bot_token,
        slack_app_token=app_token,
        required_channel_id=os.getenv("REQUIRED_CHANNEL_ID", "").strip(),
        work_dir=Path(os.getenv("WORK_DIR", DEFAULT_WORK_DIR)),
        max_file_size_bytes=int(
            _positive_number("MAX_FILE_SIZE_MB", DEFAULT_MAX_FILE_SIZE_MB) * MIB
        ),
        transfer_timeout_s=_positive_number("TRANSFER_TIMEOUT_S", DEFAULT_TRANSFER_TIMEOUT_S),
        conversion_timeout_s=_positive_number(
            "CONVERSION_TIMEOUT_S", DEFAULT_CONVERSION_TIMEOUT_S
        ),
        rate_limit_window_s=_positive_number("RATE_LIMIT_WINDOW_S", DEFAULT_RATE_LIMIT_WINDOW_S),
        rate_limit_max_requests=int(
            _positive_number("RATE_LIMIT_MAX_REQUESTS", DEFAULT_RATE_LIMIT_MAX_REQUESTS)
        ),
        max_concurrent_jobs=int(
            _positive_number("MAX_CONCURRENT_JOBS", DEFAULT_MAX_CONCURRENT_JOBS)
        ),
        ffmpeg_path=os.getenv("FFMPEG_PATH", FFMPEG_PATH),
        conversion=conversion,
        audio_caption=os.getenv("AUDIO_CAPTION", DEFAULT_AUDIO_CAPTION),
        enforce_streaming_cap=_flag("ENFORCE_STREAMING_CAP", True),
    )


def _positive_number(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return float(default)
    try:
        value = float(raw)
    except ValueError:
        raise ValueError("{} must be a number, got {!r}".format(name, raw)) from None
    if value <= 0:
        raise ValueError("{} must be positive, got {}".format(name, raw))
    return value


def _flag(name: str, default: bool) -> bool:
    raw: Optional[str] = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
