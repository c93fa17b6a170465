"""Operator notifications for evictions, guild churn and failed passes.

Alerts go to the configured report channel and/or report webhook. They are
never shown to end users, and delivery problems are logged, not raised.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Literal

import discord
from discord.ext.commands import Bot

from .. import bot_config as cfg
from .http import get_async_session

log = logging.getLogger(f"tzbot.{__name__}")

WEBHOOK_USERNAME = "Timezone Bot"

Severity = Literal["error", "warning", "info"]

SEVERITY_EMOJI: dict[Severity, str] = {
    "error": "\U0001f6a8",  # 🚨
    "warning": "\u26a0\ufe0f",  # ⚠️
    "info": "\u2139\ufe0f",  # ℹ️
}


def format_alert(
    title: str,
    message: str,
    severity: Severity = "error",
    *,
    context: dict[str, str] | None = None,
    now: datetime | None = None,
) -> str:
    """Build the alert text, truncated to fit in a Discord message."""
    emoji = SEVERITY_EMOJI.get(severity, SEVERITY_EMOJI["info"])
    timestamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S UTC")

    lines = [f"{emoji} **{title}**", "", message]
    if context:
        lines.append("")
        for key, value in context.items():
            lines.append(f"• {key}: `{value}`")
    lines.append("")
    lines.append(f"*{timestamp}*")

    alert_text = "\n".join(lines)
    if len(alert_text) > 1900:
        alert_text = alert_text[:1900] + "\n... (truncated)"
    return alert_text


async def _send_to_channel(bot: Bot, text: str) -> bool:
    channel = bot.get_channel(cfg.REPORT_CHANNEL_ID)
    if channel is None:
        log.warning("Report channel %s not found", cfg.REPORT_CHANNEL_ID)
        return False
    try:
        await channel.send(text)
        return True
    except discord.Forbidden:
        log.warning("Cannot post in report channel %s", cfg.REPORT_CHANNEL_ID)
    except discord.HTTPException as exc:
        log.warning("Failed to post alert in report channel: %s", exc)
    return False


async def _send_to_webhook(url: str, text: str) -> bool:
    try:
        async with get_async_session() as session:
            webhook = discord.Webhook.from_url(url, session=session)
            await webhook.send(text, username=WEBHOOK_USERNAME)
        return True
    except (discord.HTTPException, ValueError) as exc:
        log.warning("Failed to execute report webhook: %s", exc)
    except Exception:
        log.exception("Unexpected error executing report webhook")
    return False


async def send_alert(
    bot: Bot,
    title: str,
    message: str,
    severity: Severity = "error",
    *,
    context: dict[str, str] | None = None,
) -> int:
    """Send an alert to the operator channel and webhook.

    Returns:
        Number of destinations that accepted the alert.

    Example::

        await send_alert(
            bot,
            "Left a dead server",
            "I left server **Foo** (`123`) to get back below 100 servers.",
            severity="info",
        )
    """
    if not is_alerting_enabled():
        log.debug("No alert destination configured; skipping alert: %s", title)
        return 0

    text = format_alert(title, message, severity, context=context)
    sent = 0
    if cfg.REPORT_CHANNEL_ID and await _send_to_channel(bot, text):
        sent += 1
    if cfg.REPORT_WEBHOOK_URL and await _send_to_webhook(cfg.REPORT_WEBHOOK_URL, text):
        sent += 1

    if sent == 0:
        log.warning("Failed to deliver alert anywhere: %s", title)
    return sent


async def alert_task_failure(
    bot: Bot,
    task_name: str,
    error: Exception | str,
    *,
    context: dict[str, str] | None = None,
) -> int:
    """Convenience wrapper for reporting a failed background task."""
    error_msg = str(error)
    if len(error_msg) > 500:
        error_msg = error_msg[:500] + "..."

    full_context = {"task": task_name}
    if context:
        full_context.update(context)

    return await send_alert(
        bot,
        f"Task Failed: {task_name}",
        f"```\n{error_msg}\n```",
        severity="error",
        context=full_context,
    )


def is_alerting_enabled() -> bool:
    """Return True if at least one alert destination is configured."""
    return bool(cfg.REPORT_CHANNEL_ID or cfg.REPORT_WEBHOOK_URL)
