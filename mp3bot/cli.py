"""Command-line interface: run the Slack bot or convert one video URL.

WHY: Operators need to start the bot, and to check the download/ffmpeg
path on a server without going through Slack.

HOW: argparse with two subcommands. ``bot`` loads Settings and starts the
Socket Mode app. ``convert`` runs one job through the same pipeline with a
resolver that treats the argument as a plain URL, then copies the MP3 out
of the working directory before the job's files are removed.

RULES:
- No subcommand means ``bot``
- Status output goes to stderr; the output path is printed to stdout
- ``convert`` exits 1 with the user-facing message on failure and logs the cause
- Slack tokens are not required for ``convert``
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import shutil
import sys
from pathlib import Path
from typing import List, Optional

from mp3bot import __version__, replies
from mp3bot.config import LOG_LEVEL, Settings, load_settings
from mp3bot.core.models import JobRequest
from mp3bot.service import build_pipeline
from mp3bot.slack.bot import main as bot_main
from mp3bot.transfer.client import direct_url_resolver

logger = logging.getLogger(__name__)


def _status(msg: str) -> None:
    """Print a status message to stderr."""
    print(msg, file=sys.stderr, flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mp3bot",
        description="Slack bot that converts shared videos to MP3.",
    )
    parser.add_argument("--version", action="version", version="%(prog)s " + __version__)
    parser.add_argument(
        "--log-level",
        default=LOG_LEVEL,
        help="Logging level (default: %(default)s)",
    )

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("bot", help="Run the Slack bot in Socket Mode (default)")

    convert = sub.add_parser("convert", help="Convert one video URL to MP3")
    convert.add_argument("url", help="http(s) URL of the video")
    convert.add_argument(
        "-o", "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory for the MP3 (default: current directory)",
    )
    convert.add_argument(
        "--name",
        default=None,
        help="Output file name without extension (default: derived from the URL)",
    )
    return parser


async def convert_url(
    url: str,
    output_dir: Path,
    settings: Settings,
    name: Optional[str] = None,
) -> Optional[Path]:
    """Run one job for ``url`` and copy the MP3 into ``output_dir``.

    Returns the copied path, or None if the job failed.
    """
    pipeline = build_pipeline(settings, direct_url_resolver)
    filename = url.rstrip("/").rsplit("/", 1)[-1].split("?", 1)[0] or "video.mp4"
    request = JobRequest(file_reference=url, requester_id="cli", filename=filename)

    _status("Converting {} ...".format(url))
    async with pipeline.session(request) as outcome:
        if not outcome.ok:
            assert outcome.error is not None
            _status(replies.user_message(outcome.error))
            return None

        assert outcome.artifact_path is not None
        stem = name or Path(filename).stem or "audio"
        output_dir.mkdir(parents=True, exist_ok=True)
        destination = output_dir / "{}.{}".format(stem, settings.conversion.extension)
        shutil.copyfile(outcome.artifact_path, destination)

    _status("Saved {}".format(destination))
    return destination


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if args.command == "convert":
        try:
            settings = load_settings(require_slack=False)
        except ValueError as exc:
            _status("Configuration error: {}".format(exc))
            return 2
        result = asyncio.run(convert_url(args.url, args.output_dir, settings, args.name))
        if result is None:
            return 1
        print(result)
        return 0

    try:
        settings = load_settings(require_slack=True)
    except ValueError as exc:
        _status("Configuration error: {}".format(exc))
        return 2
    bot_main(settings)
    return 0
