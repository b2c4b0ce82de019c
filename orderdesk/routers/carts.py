"""Dashboard cart endpoints. Expiry is computed the same way the pipeline does."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from orderdesk.database import get_db
from orderdesk.schemas.cart import CartCancelRequest, CartCancelResponse, CartListResponse, CartResponse
from orderdesk.services.conversation_store import (
    CartState,
    cancel_cart,
    get_cart,
    list_active_carts,
    minutes_since_update,
    utc_now,
)

router = APIRouter(prefix="/carts", tags=["carts"])


def to_response(cart: CartState, now: datetime) -> CartResponse:
    return CartResponse(
        id=cart.id,
        business_id=cart.business_id,
        branch_id=cart.branch_id,
        customer_channel_id=cart.customer_channel_id,
        status=cart.status,
        line_items=cart.line_items,
        delivery_type=cart.delivery_type,
        scheduled_for=cart.scheduled_for,
        updated_at=cart.updated_at,
        minutes_since_update=minutes_since_update(cart.updated_at, now),
        minutes_until_timeout=cart.minutes_until_timeout(now),
        expired=cart.is_expired(now),
    )


@router.get("", response_model=CartListResponse)
def list_carts(business_id: UUID = Query(...), db: Session = Depends(get_db)):
    now = utc_now()
    carts = list_active_carts(db, business_id, now)
    return CartListResponse(count=len(carts), carts=[to_response(cart, now) for cart in carts])


@router.get("/{cart_id}", response_model=CartResponse)
def read_cart(cart_id: UUID, business_id: UUID = Query(...), db: Session = Depends(get_db)):
    cart: Optional[CartState] = get_cart(db, business_id, cart_id)
    if cart is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cart not found")
    return to_response(cart, utc_now())


@router.post("/{cart_id}/cancel", response_model=CartCancelResponse)
def cancel(cart_id: UUID, request: CartCancelRequest, db: Session = Depends(get_db)):
    result = cancel_cart(db, request.business_id, cart_id, request.changed_by)
    if result.is_not_found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.error)
    return CartCancelResponse(success=True, cart_id=cart_id, status=result.value.status, message="Cart cancelled")
