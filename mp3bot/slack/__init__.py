"""Slack integration for mp3bot.

WHY: Slack is the messaging platform users share videos on. This package
adapts Slack events and Web API calls to the platform-neutral service.

HOW: bot.py holds the Bolt app and listeners, platform.py the gate,
resolver and notifier adapters, messages.py the Block Kit builders.

RULES:
- Socket Mode requires SLACK_BOT_TOKEN and SLACK_APP_TOKEN
- The bot needs files:read, files:write, chat:write, channels:read,
  groups:read, users:read and commands scopes
"""
