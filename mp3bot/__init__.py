"""mp3bot: a Slack bot that turns shared videos into MP3 files.

WHY: People drop video clips into Slack when all they want is the audio.
This package downloads the shared video, runs it through ffmpeg and posts
the MP3 back to the conversation, for members of one required channel.

HOW: Three-stage pipeline per job: transfer (HTTP download), transcode
(ffmpeg subprocess), hand-off (Slack upload). The pipeline is platform
neutral; Slack-specific code lives in mp3bot.slack.

RULES:
- One job per shared video, each with its own working files
- Working files are always removed when the job ends
- Users only ever see fixed messages; causes go to the log
"""

__version__ = "0.1.0"
