"""Ops alerts posted to a Telegram chat."""

import os
import re
from typing import Optional

import httpx

from orderdesk.logging_config import get_logger

logger = get_logger("alert_service")

ALERT_BOT_TOKEN = os.environ.get("ALERT_BOT_TOKEN")
ALERT_CHAT_ID = os.environ.get("ALERT_CHAT_ID")

# Legacy Telegram Markdown rejects unpaired entity characters outside code blocks.
MARKDOWN_SPECIAL = re.compile(r"([_*`\[])")


def escape_markdown(text: str) -> str:
    return MARKDOWN_SPECIAL.sub(r"\\\1", text)


async def send_alert(
    level: str,
    message: str,
    context: Optional[dict] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """Send alert to Telegram.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict

    Returns:
        True if sent successfully
    """
    if not ALERT_BOT_TOKEN or not ALERT_CHAT_ID:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False

    emoji = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}

    text = f"{emoji.get(level, '📢')} *{level}*\n\n{escape_markdown(message)}"

    if context:
        context_str = "\n".join(f"  {k}: {v}" for k, v in context.items()).replace("`", "'")
        text += f"\n\n```\n{context_str}\n```"

    try:
        async with httpx.AsyncClient(timeout=10, transport=transport) as client:
            response = await client.post(
                f"https://api.telegram.org/bot{ALERT_BOT_TOKEN}/sendMessage",
                json={"chat_id": ALERT_CHAT_ID, "text": text, "parse_mode": "Markdown"},
            )
            return response.status_code == 200
    except httpx.HTTPError as e:
        logger.error(f"Failed to send alert: {e}")
        return False


async def alert_dispatch_failure(
    business_id: str,
    channel: str,
    correlation_id: str,
    kind: str,
    error: Optional[str],
    attempts: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """A reply unit was lost after retries or could not be sent at all."""
    return await send_alert(
        "ERROR",
        f"Outbound {kind} was not delivered",
        {
            "channel": channel,
            "business_id": business_id,
            "correlation_id": correlation_id,
            "attempts": attempts,
            "error": error or "unknown",
        },
        transport=transport,
    )
