from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from orderdesk.database import get_db
from orderdesk.logging_config import get_logger
from orderdesk.services.ingestion import parse_twilio
from orderdesk.services.pipeline import InboundPipeline, get_pipeline

logger = get_logger("twilio_webhook")

router = APIRouter(tags=["webhooks"])

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


@router.post("/webhook/twilio")
async def handle_twilio_webhook(
    request: Request,
    db: Session = Depends(get_db),
    pipeline: InboundPipeline = Depends(get_pipeline),
):
    """Replies go out through the REST API, so the TwiML answer is always empty."""
    form = await request.form()
    message = parse_twilio({key: str(value) for key, value in form.items()})
    if message is not None:
        await pipeline.process(db, message)
    return Response(content=EMPTY_TWIML, media_type="application/xml")
