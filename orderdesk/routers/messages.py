from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from orderdesk.database import get_db
from orderdesk.models import MessageLog
from orderdesk.schemas.message_log import MessageLogItem, MessageLogResponse

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("", response_model=MessageLogResponse)
def list_messages(
    business_id: UUID = Query(...),
    customer_channel_id: str = Query(...),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Conversation transcript, oldest first."""
    rows = (
        db.query(MessageLog)
        .filter(MessageLog.business_id == business_id, MessageLog.customer_channel_id == customer_channel_id)
        .order_by(MessageLog.created_at.desc())
        .limit(limit)
        .all()
    )
    items = [MessageLogItem.model_validate(row) for row in reversed(rows)]
    return MessageLogResponse(count=len(items), messages=items)
