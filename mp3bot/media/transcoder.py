"""ffmpeg subprocess wrapper for the conversion stage.

WHY: The actual audio extraction is delegated entirely to ffmpeg. What
this module owns is the process lifecycle: start it, wait for its exit
signal, and make sure it never outlives the job, even when the job is
cancelled or times out.

HOW: build_ffmpeg_args() turns ConversionOptions into an argument list.
FFmpegTranscoder.convert() starts the process inside a scoped async
context manager that kills and reaps it on any exit path, then checks
the exit code and the output file.

RULES:
- Completion is ffmpeg's exit, never polling of the target file
- Nonzero exit, missing binary, or an absent/empty target raise ConversionError
- The target file is left in an indeterminate state on failure; the
  pipeline removes it
- stderr is captured for the log, truncated to the last _STDERR_TAIL chars
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List

from mp3bot.core.errors import ConversionError
from mp3bot.core.models import ConversionOptions

logger = logging.getLogger(__name__)

_STDERR_TAIL = 2000


def build_ffmpeg_args(
    source: Path,
    target: Path,
    options: ConversionOptions,
    ffmpeg_path: str = "ffmpeg",
) -> List[str]:
    """Build the ffmpeg command line for one conversion.

    RULES:
    - No video codec → "-vn" (audio only); resolution is then ignored
    - Optional parameters set to None are omitted
    - "-y" so a stale target never makes ffmpeg prompt
    """
    args = [
        ffmpeg_path,
        "-hide_banner",
        "-nostdin",
        "-loglevel", "error",
        "-y",
        "-i", str(source),
    ]

    if options.video_codec:
        args += ["-c:v", options.video_codec]
        if options.resolution:
            args += ["-s", options.resolution]
    else:
        args.append("-vn")

    args += ["-c:a", options.audio_codec]
    if options.audio_bitrate:
        args += ["-b:a", options.audio_bitrate]
    if options.sample_rate:
        args += ["-ar", str(options.sample_rate)]
    if options.channels:
        args += ["-ac", str(options.channels)]

    args.append(str(target))
    return args


class FFmpegTranscoder:
    """Runs ffmpeg to convert one media file into another."""

    def __init__(self, ffmpeg_path: str = "ffmpeg") -> None:
        self.ffmpeg_path = ffmpeg_path

    async def convert(
        self,
        source: Path,
        target: Path,
        options: ConversionOptions,
    ) -> None:
        """Convert ``source`` to ``target``; raise ConversionError on failure.

        Cancellation (e.g. from asyncio.wait_for) kills the ffmpeg process
        before the CancelledError propagates.
        """
        args = build_ffmpeg_args(source, target, options, self.ffmpeg_path)
        logger.info("Converting %s -> %s", source.name, target.name)
        logger.debug("ffmpeg command: %s", " ".join(args))

        async with _spawn(args) as proc:
            _, stderr = await proc.communicate()

        if proc.returncode != 0:
            tail = stderr.decode("utf-8", "replace")[-_STDERR_TAIL:].strip()
            raise ConversionError(
                "ffmpeg exited with code {}: {}".format(proc.returncode, tail or "no output")
            )

        if not target.exists() or target.stat().st_size == 0:
            raise ConversionError("ffmpeg reported success but produced no output")

        logger.info("Converted %s (%d bytes)", target.name, target.stat().st_size)


@asynccontextmanager
async def _spawn(args: List[str]) -> AsyncIterator[asyncio.subprocess.Process]:
    """Start a process and guarantee it is terminated and reaped on exit."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ConversionError(
            "Could not start {}: {}".format(args[0], exc), cause=exc
        ) from exc

    try:
        yield proc
    finally:
        if proc.returncode is None:
            logger.warning("Killing ffmpeg process %s", proc.pid)
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            # Shielded so a second cancellation cannot leave a zombie behind
            await asyncio.shield(proc.wait())
