"""Slack bot: Socket Mode app, video events, /mp3 command and membership actions.

WHY: Users share a video in Slack and expect the MP3 back in the same
conversation, but only if they belong to the required channel. This module
is the glue between Slack events and the ConversionService.

HOW: Uses slack-bolt with Socket Mode (no public URL needed). SlackBot
holds the service and settings and exposes one method per Slack listener;
create_app() registers them on a Bolt App. Video jobs run on the service's
worker pool, so handlers return immediately.

RULES:
- All Slack actions and commands must be ack()'d within 3 seconds
- Only files with a video mimetype or extension start a job
- Listener errors are logged, never raised into Bolt
- Runnable as: python -m mp3bot bot
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler

from mp3bot import replies
from mp3bot.config import LOG_LEVEL, Settings, load_settings
from mp3bot.core.errors import GateUnavailable
from mp3bot.core.limits import JobAdmission, RateLimiter
from mp3bot.core.models import JobRequest
from mp3bot.service import ChatRef, ConversionService, Submission, build_pipeline
from mp3bot.slack.messages import (
    ACTION_CHECK_MEMBERSHIP,
    ACTION_JOIN_CHANNEL,
    SLASH_COMMAND,
    build_text_blocks,
    is_video_file,
)
from mp3bot.slack.platform import SlackFileResolver, SlackMembershipGate, SlackNotifier

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def build_service(settings: Settings, client: Any) -> ConversionService:
    """Wire the pipeline, gate and limits around one Slack WebClient."""
    pipeline = build_pipeline(settings, SlackFileResolver(client))
    return ConversionService(
        pipeline=pipeline,
        gate=SlackMembershipGate(client, settings.required_channel_id),
        rate_limiter=RateLimiter(
            window_s=settings.rate_limit_window_s,
            max_requests=settings.rate_limit_max_requests,
        ),
        admission=JobAdmission(settings.max_concurrent_jobs),
        audio_caption=settings.audio_caption,
    )


def create_app(settings: Settings, service: Optional[ConversionService] = None) -> App:
    """Create and configure the Slack Bolt app with all handlers.

    WHY: Factory function keeps construction explicit: no module-level
    client, service, or channel ID.

    HOW: Creates an App, builds the service around app.client unless one is
    given, and registers the SlackBot listener methods.
    """
    app = App(token=settings.slack_bot_token)
    service = service or build_service(settings, app.client)
    bot = SlackBot(service, settings)

    app.event("file_shared")(bot.handle_file_shared)
    app.command(SLASH_COMMAND)(bot.handle_start_command)
    app.action(ACTION_CHECK_MEMBERSHIP)(bot.handle_check_membership)
    app.action(ACTION_JOIN_CHANNEL)(bot.handle_join_channel)

    return app


# ---------------------------------------------------------------------------
# Listeners
# ---------------------------------------------------------------------------


class SlackBot:
    """Slack listeners bound to one ConversionService."""

    def __init__(self, service: ConversionService, settings: Settings) -> None:
        self.service = service
        self.settings = settings

    def _notifier(self, client: Any) -> SlackNotifier:
        return SlackNotifier(client, self.settings.required_channel_id)

    def handle_file_shared(
        self, event: Dict[str, Any], client: Any, logger: Any
    ) -> Optional[Submission]:
        """Handle file_shared events: start a conversion for shared videos.

        WHY: Sharing a video is the whole user interface; there is no form.

        RULES:
        - Non-video files (including the bot's own MP3 uploads) are ignored
        - Slack's reported size becomes the declared size of the job
        - Replies go to the file's thread when Slack reports one
        """
        file_id = event.get("file_id", "")
        channel_id = event.get("channel_id", "")
        user_id = event.get("user_id", "")

        try:
            file_info_resp = client.files_info(file=file_id)
        except Exception:
            logger.exception("Failed to fetch file info for %s", file_id)
            return None

        file_data = file_info_resp.get("file", {}) or {}
        filename = file_data.get("name", "")
        if not is_video_file(filename, file_data.get("mimetype")):
            return None

        thread_ts = event.get("event_ts") or file_data.get("timestamp") or event.get("ts")
        chat = ChatRef(
            channel=channel_id,
            thread_ts=str(thread_ts) if thread_ts else None,
            user_id=user_id,
        )
        request = JobRequest(
            file_reference=file_id,
            requester_id=user_id or file_data.get("user", ""),
            declared_size=file_data.get("size") or None,
            filename=filename,
        )

        try:
            submission = self.service.submit(request, chat, self._notifier(client))
        except Exception:
            logger.exception("Failed to submit %s", file_id)
            return None

        logger.info("Video %s from %s: %s", file_id, request.requester_id, submission.status.value)
        return submission

    def handle_start_command(self, ack: Any, command: Dict[str, Any], client: Any, logger: Any) -> None:
        """Handle /mp3: welcome members, prompt everyone else to join."""
        ack()

        chat = ChatRef(
            channel=command.get("channel_id", ""),
            user_id=command.get("user_id", ""),
        )
        notifier = self._notifier(client)

        try:
            if self.service.check_access(chat.user_id or ""):
                notifier.send_text(chat, replies.WELCOME)
            else:
                notifier.send_join_prompt(chat)
        except GateUnavailable as exc:
            logger.error("Invalid channel or bot is not a member of it: %s", exc)
            _send_quietly(notifier, chat, replies.user_message(exc))
        except Exception:
            logger.exception("Unexpected error handling %s", SLASH_COMMAND)
            _send_quietly(notifier, chat, replies.UNEXPECTED)

    def handle_check_membership(self, ack: Any, body: Dict[str, Any], client: Any, logger: Any) -> None:
        """Handle "I have joined": re-check membership and update the prompt."""
        ack()

        message = body.get("message", {}) or {}
        chat = ChatRef(
            channel=(body.get("channel", {}) or {}).get("id", ""),
            thread_ts=message.get("thread_ts"),
            user_id=(body.get("user", {}) or {}).get("id", ""),
        )
        notifier = self._notifier(client)

        try:
            if self.service.check_access(chat.user_id or ""):
                client.chat_update(
                    channel=chat.channel,
                    ts=message.get("ts", ""),
                    text=replies.JOIN_THANKS,
                    blocks=build_text_blocks(replies.JOIN_THANKS),
                )
            else:
                notifier.send_ephemeral(chat, replies.NOT_JOINED_YET)
        except GateUnavailable as exc:
            logger.error("Membership re-check unavailable: %s", exc)
            _send_quietly(notifier, chat, replies.user_message(exc))
        except Exception:
            logger.exception("Error checking membership")
            _send_quietly(notifier, chat, replies.UNEXPECTED)

    def handle_join_channel(self, ack: Any) -> None:
        """Acknowledge the "Join Channel" link button (Slack opens the URL)."""
        ack()


def _send_quietly(notifier: SlackNotifier, chat: ChatRef, text: str) -> None:
    try:
        notifier.send_text(chat, text)
    except Exception:
        logger.exception("Failed to post message to %s", chat.channel)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(settings: Optional[Settings] = None) -> None:
    """Start the Slack bot in Socket Mode.

    RULES:
    - Requires SLACK_BOT_TOKEN and SLACK_APP_TOKEN
    - Blocks on SocketModeHandler.start()
    """
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    settings = settings or load_settings(require_slack=True)
    settings.work_dir.mkdir(parents=True, exist_ok=True)

    app = create_app(settings)

    logger.info("Starting Slack bot in Socket Mode...")
    logger.info("Working directory: %s", settings.work_dir.resolve())
    if settings.required_channel_id:
        logger.info("Required channel: %s", settings.required_channel_id)
    else:
        logger.warning("REQUIRED_CHANNEL_ID is not set; every video will be refused")

    handler = SocketModeHandler(app, settings.slack_app_token)
    handler.start()


if __name__ == "__main__":
    main()
