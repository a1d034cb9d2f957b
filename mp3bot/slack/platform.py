"""Slack renditions of the membership gate, file resolver and notifier.

WHY: The service talks to three narrow collaborator interfaces. These
classes implement them on top of the Slack Web API so the service and the
pipeline never import slack_sdk.

HOW: Each class wraps a slack_sdk WebClient (the one Bolt passes to
handlers, or app.client).
  SlackMembershipGate : conversations.members + users.info
  SlackFileResolver   : files.info → private download URL + bearer header
  SlackNotifier       : chat.postMessage / chat.update / files_upload_v2

RULES:
- Gate API errors and a missing channel ID yield UNKNOWN, never NONE
- Resolver raises LookupError when Slack returns no download URL
- Notifier methods let SlackApiError propagate; the service logs them
- Uses files_upload_v2 (v1 is deprecated)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from slack_sdk.errors import SlackApiError

from mp3bot import replies
from mp3bot.service import ChatRef, MembershipStatus
from mp3bot.slack.messages import build_join_prompt_blocks
from mp3bot.transfer.client import DownloadLocator

logger = logging.getLogger(__name__)

_MEMBERS_PAGE_SIZE = 200


class SlackMembershipGate:
    """Answers whether a user belongs to the required channel."""

    def __init__(self, client: Any, channel_id: str) -> None:
        self._client = client
        self.channel_id = channel_id

    def check(self, user_id: str) -> MembershipStatus:
        """Return the user's membership status in the required channel.

        WHY: Only members of one channel may use the bot; admins and owners
        are reported separately so callers can tell them apart in logs.

        HOW: Pages through conversations.members looking for the user, then
        reads users.info for the is_owner / is_admin flags.

        RULES:
        - Not in the channel → NONE
        - is_owner or is_primary_owner → OWNER, is_admin → ADMIN, else MEMBER
        - Any SlackApiError (channel_not_found, not_in_channel, ...) → UNKNOWN
        """
        if not self.channel_id:
            logger.error("REQUIRED_CHANNEL_ID is not configured; membership unknown")
            return MembershipStatus.UNKNOWN

        try:
            if not self._in_channel(user_id):
                return MembershipStatus.NONE
            info = self._client.users_info(user=user_id)
        except SlackApiError as exc:
            logger.error(
                "Membership check for %s in %s failed: %s",
                user_id,
                self.channel_id,
                exc.response.get("error", exc),
            )
            return MembershipStatus.UNKNOWN

        user = info.get("user", {}) or {}
        if user.get("is_owner") or user.get("is_primary_owner"):
            return MembershipStatus.OWNER
        if user.get("is_admin"):
            return MembershipStatus.ADMIN
        return MembershipStatus.MEMBER

    def _in_channel(self, user_id: str) -> bool:
        cursor: Optional[str] = None
        while True:
            kwargs = {"channel": self.channel_id, "limit": _MEMBERS_PAGE_SIZE}
            if cursor:
                kwargs["cursor"] = cursor
            resp = self._client.conversations_members(**kwargs)
            if user_id in (resp.get("members") or []):
                return True
            cursor = (resp.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return False


class SlackFileResolver:
    """Turns a Slack file ID into an authenticated download locator."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def __call__(self, file_reference: str) -> DownloadLocator:
        resp = self._client.files_info(file=file_reference)
        file_data = resp.get("file", {}) or {}
        url = file_data.get("url_private_download") or file_data.get("url_private")
        if not url:
            raise LookupError("Slack returned no download URL for {}".format(file_reference))
        return DownloadLocator(
            url=url,
            headers={"Authorization": "Bearer {}".format(self._client.token)},
        )


class SlackNotifier:
    """Sends replies into the conversation a video came from."""

    def __init__(self, client: Any, required_channel_id: str = "") -> None:
        self._client = client
        self.required_channel_id = required_channel_id

    def send_text(self, chat: ChatRef, text: str) -> Optional[str]:
        resp = self._client.chat_postMessage(
            channel=chat.channel,
            thread_ts=chat.thread_ts,
            text=text,
        )
        return resp.get("ts")

    def edit_text(self, chat: ChatRef, message_ref: str, text: str) -> None:
        self._client.chat_update(channel=chat.channel, ts=message_ref, text=text)

    def send_audio(self, chat: ChatRef, file_path: Path, caption: str) -> None:
        file_path = Path(file_path)
        self._client.files_upload_v2(
            channel=chat.channel,
            thread_ts=chat.thread_ts,
            file=str(file_path),
            filename=file_path.name,
            title=file_path.name,
            initial_comment=caption or None,
        )

    def send_join_prompt(self, chat: ChatRef) -> None:
        self._client.chat_postMessage(
            channel=chat.channel,
            thread_ts=chat.thread_ts,
            blocks=build_join_prompt_blocks(self.required_channel_id),
            text=replies.JOIN_PROMPT,
        )

    def send_ephemeral(self, chat: ChatRef, text: str) -> None:
        """Post a message only ``chat.user_id`` can see."""
        self._client.chat_postEphemeral(
            channel=chat.channel,
            user=chat.user_id,
            text=text,
        )
