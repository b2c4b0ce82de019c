from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from orderdesk.database import get_db
from orderdesk.schemas.reservation import ReservationRequest, ReservationResponse
from orderdesk.services.reservation_service import (
    ReservationConflictError,
    ReservationGuard,
    ResourceNotFoundError,
)

router = APIRouter(prefix="/reservations", tags=["reservations"])

_guard = ReservationGuard()


def get_reservation_guard() -> ReservationGuard:
    return _guard


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    request: ReservationRequest,
    db: Session = Depends(get_db),
    guard: ReservationGuard = Depends(get_reservation_guard),
):
    try:
        reservation = await guard.reserve(
            db,
            business_id=request.business_id,
            resource_id=request.resource_id,
            start_at=request.start_at,
            end_at=request.end_at,
            customer_channel_id=request.customer_channel_id,
            customer_name=request.customer_name,
            party_size=request.party_size,
        )
    except ResourceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ReservationConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return ReservationResponse(
        id=reservation.id,
        resource_id=reservation.resource_id,
        start_at=reservation.start_at,
        end_at=reservation.end_at,
        status=reservation.status,
    )
