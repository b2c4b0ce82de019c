import json

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from starlette.requests import ClientDisconnect

from orderdesk.config import settings
from orderdesk.database import get_db
from orderdesk.logging_config import get_logger
from orderdesk.schemas.webhook import WebhookResponse
from orderdesk.services.ingestion import parse_meta_whatsapp, verify_signature
from orderdesk.services.pipeline import InboundPipeline, get_pipeline

logger = get_logger("webhook")

router = APIRouter(tags=["webhooks"])


def verify_subscription(mode: str | None, token: str | None, challenge: str | None, expected: str) -> str:
    """Meta hub.* handshake; returns the challenge to echo back."""
    if mode == "subscribe" and expected and token == expected:
        return challenge or ""
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


async def read_signed_json(request: Request, secret: str) -> dict | None:
    """Body as JSON after X-Hub-Signature-256 check. None when unreadable."""
    try:
        raw = await request.body()
    except ClientDisconnect:
        logger.warning("Client disconnected before webhook body was read")
        return None
    if not verify_signature(raw, request.headers.get("X-Hub-Signature-256"), secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
    try:
        payload = json.loads(raw)
    except ValueError as e:
        logger.warning(f"Webhook body is not JSON: {e}")
        return None
    return payload if isinstance(payload, dict) else None


@router.get("/webhook/whatsapp", response_class=PlainTextResponse)
async def verify_whatsapp_webhook(
    mode: str | None = Query(None, alias="hub.mode"),
    token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
):
    return verify_subscription(mode, token, challenge, settings.whatsapp_verify_token)


@router.post("/webhook/whatsapp", response_model=WebhookResponse)
async def handle_whatsapp_webhook(
    request: Request,
    db: Session = Depends(get_db),
    pipeline: InboundPipeline = Depends(get_pipeline),
):
    """WhatsApp Cloud API deliveries. Always 200 once authenticated so Meta does not retry."""
    payload = await read_signed_json(request, settings.whatsapp_webhook_secret)
    if payload is None:
        return WebhookResponse(success=False, message="Invalid payload")

    try:
        messages = parse_meta_whatsapp(payload)
    except ValueError as e:
        logger.warning(f"Unrecognised WhatsApp payload: {e}")
        return WebhookResponse(success=False, message="Invalid payload")

    for message in messages:
        await pipeline.process(db, message)

    return WebhookResponse(success=True, processed=len(messages))
