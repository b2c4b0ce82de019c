from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from orderdesk.database import get_db
from orderdesk.schemas.chat_session import SessionLockRequest, SessionReleaseRequest, SessionResponse
from orderdesk.services.conversation_store import ConversationKey, ConversationStateStore
from orderdesk.services.pipeline import InboundPipeline, get_pipeline

router = APIRouter(prefix="/sessions", tags=["sessions"])


def get_state_store(pipeline: InboundPipeline = Depends(get_pipeline)) -> ConversationStateStore:
    return pipeline.store


@router.post("/lock", response_model=SessionResponse)
def lock_session(
    request: SessionLockRequest,
    db: Session = Depends(get_db),
    store: ConversationStateStore = Depends(get_state_store),
):
    """Hand the conversation to a human agent; automated replies stop."""
    key = ConversationKey(request.business_id, request.customer_channel_id)
    result = store.lock_session(db, key, request.employee_id)
    if not result.ok:
        code = status.HTTP_409_CONFLICT if result.error_code == "already_assigned" else status.HTTP_400_BAD_REQUEST
        raise HTTPException(status_code=code, detail=result.error)
    return SessionResponse(
        business_id=request.business_id,
        customer_channel_id=request.customer_channel_id,
        assigned_employee_id=result.value.assigned_employee_id,
        locked=result.value.locked,
    )


@router.post("/release", response_model=SessionResponse)
def release_session(
    request: SessionReleaseRequest,
    db: Session = Depends(get_db),
    store: ConversationStateStore = Depends(get_state_store),
):
    key = ConversationKey(request.business_id, request.customer_channel_id)
    result = store.release_session(db, key)
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)
    return SessionResponse(
        business_id=request.business_id,
        customer_channel_id=request.customer_channel_id,
        assigned_employee_id=None,
        locked=False,
    )
