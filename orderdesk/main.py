import os

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from orderdesk.config import settings
from orderdesk.database import get_db
from orderdesk.logging_config import setup_logging
from orderdesk.models import ChatSession, MessageLog, Order
from orderdesk.routers import (
    carts,
    chat_sessions,
    facebook_webhook,
    messages,
    reservations,
    telegram_webhook,
    twilio_webhook,
    webhook,
)
from orderdesk.services.conversation_store import CART_STATUS

setup_logging(settings.log_level)

app = FastAPI(
    title="OrderDesk API",
    description="Inbound message pipeline for conversational ordering",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(twilio_webhook.router)
app.include_router(telegram_webhook.router)
app.include_router(facebook_webhook.router)
app.include_router(carts.router)
app.include_router(chat_sessions.router)
app.include_router(reservations.router)
app.include_router(messages.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    return {
        "status": "ok",
        "open_carts": db.query(Order).filter(Order.status == CART_STATUS).count(),
        "sessions": db.query(ChatSession).count(),
        "messages": db.query(MessageLog).count(),
    }
