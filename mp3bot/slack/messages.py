"""Block Kit builders and file-type checks for the Slack bot.

WHY: The join prompt needs a link button and an "I have joined" button;
keeping block construction here keeps bot.py focused on event handling.

HOW: Functions return lists of Block Kit block dicts ready to be passed to
chat_postMessage(blocks=...) or chat_update(blocks=...).

RULES:
- action_id values must match the handler registrations in bot.py
- The join link uses Slack's app_redirect URL for the required channel
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from mp3bot import replies
from mp3bot.config import VIDEO_EXTENSIONS

# Action IDs, must match app.action() registrations in bot.py
ACTION_JOIN_CHANNEL = "join_channel"
ACTION_CHECK_MEMBERSHIP = "check_membership"

SLASH_COMMAND = "/mp3"


def channel_url(channel_id: str) -> str:
    """Deep link that opens ``channel_id`` in the Slack client."""
    return "https://slack.com/app_redirect?channel={}".format(channel_id)


def build_join_prompt_blocks(channel_id: str) -> List[Dict[str, Any]]:
    """Build the "join our channel first" message with its two buttons."""
    return [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": replies.JOIN_PROMPT},
        },
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Join Channel"},
                    "action_id": ACTION_JOIN_CHANNEL,
                    "url": channel_url(channel_id),
                },
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "I have joined"},
                    "style": "primary",
                    "action_id": ACTION_CHECK_MEMBERSHIP,
                    "value": channel_id,
                },
            ],
        },
    ]


def build_text_blocks(text: str) -> List[Dict[str, Any]]:
    """Single mrkdwn section; used when replacing the join prompt."""
    return [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]


def is_video_file(filename: str, mimetype: Optional[str] = None) -> bool:
    """Check whether a shared file is a video the bot should convert.

    RULES:
    - A video/* mimetype is enough
    - Otherwise the extension decides (case-insensitive)
    """
    if mimetype and mimetype.lower().startswith("video/"):
        return True
    dot_idx = filename.rfind(".")
    if dot_idx < 0:
        return False
    return filename[dot_idx:].lower() in VIDEO_EXTENSIONS
