"""Media conversion via an external ffmpeg process."""

from mp3bot.media.transcoder import FFmpegTranscoder, build_ffmpeg_args

__all__ = ["FFmpegTranscoder", "build_ffmpeg_args"]
