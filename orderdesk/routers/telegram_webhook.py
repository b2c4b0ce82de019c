import json
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from orderdesk.database import get_db
from orderdesk.logging_config import get_logger
from orderdesk.schemas.webhook import WebhookResponse
from orderdesk.services.ingestion import parse_telegram
from orderdesk.services.pipeline import InboundPipeline, get_pipeline

logger = get_logger("telegram_webhook")

router = APIRouter(tags=["webhooks"])


async def parse_telegram_update(request: Request) -> Optional[dict]:
    """
    Parse Telegram update with tolerant decoding to avoid utf-8 crashes.
    Returns dict or None.
    """
    raw = await request.body()
    try:
        payload = json.loads(raw.decode("utf-8", errors="replace"))
    except ValueError:
        logger.error("Failed to decode Telegram webhook payload")
        return None
    return payload if isinstance(payload, dict) else None


@router.post("/webhook/telegram/{bot_key}", response_model=WebhookResponse)
async def handle_telegram_webhook(
    bot_key: str,
    request: Request,
    db: Session = Depends(get_db),
    pipeline: InboundPipeline = Depends(get_pipeline),
):
    """One webhook per tenant bot; bot_key is the integration's external id."""
    body = await parse_telegram_update(request)
    if body is None:
        return WebhookResponse(success=False, message="Invalid telegram payload")

    try:
        message = parse_telegram(body, bot_key)
    except ValueError as e:
        logger.warning(f"Unrecognised Telegram update: {e}")
        return WebhookResponse(success=False, message="Invalid telegram payload")

    if message is None:
        return WebhookResponse(success=True, message="No actionable content")

    await pipeline.process(db, message)
    return WebhookResponse(success=True, processed=1)
