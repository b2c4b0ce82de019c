from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from orderdesk.config import settings
from orderdesk.database import get_db
from orderdesk.logging_config import get_logger
from orderdesk.routers.webhook import read_signed_json, verify_subscription
from orderdesk.schemas.webhook import WebhookResponse
from orderdesk.services.ingestion import parse_messenger
from orderdesk.services.pipeline import InboundPipeline, get_pipeline

logger = get_logger("facebook_webhook")

router = APIRouter(tags=["webhooks"])


@router.get("/webhook/facebook", response_class=PlainTextResponse)
async def verify_facebook_webhook(
    mode: str | None = Query(None, alias="hub.mode"),
    token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
):
    return verify_subscription(mode, token, challenge, settings.facebook_verify_token)


@router.post("/webhook/facebook", response_model=WebhookResponse)
async def handle_facebook_webhook(
    request: Request,
    db: Session = Depends(get_db),
    pipeline: InboundPipeline = Depends(get_pipeline),
):
    payload = await read_signed_json(request, settings.facebook_app_secret)
    if payload is None:
        return WebhookResponse(success=False, message="Invalid payload")
    if payload.get("object") != "page":
        return WebhookResponse(success=True, message="Not a page event")

    try:
        messages = parse_messenger(payload)
    except ValueError as e:
        logger.warning(f"Unrecognised Messenger payload: {e}")
        return WebhookResponse(success=False, message="Invalid payload")

    for message in messages:
        await pipeline.process(db, message)

    return WebhookResponse(success=True, processed=len(messages))
