"""Reservation double-booking guard."""

import uuid
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from orderdesk.logging_config import get_logger
from orderdesk.models import DiningTable, Reservation
from orderdesk.services.conversation_store import as_utc, utc_now
from orderdesk.services.keyed_lock import KeyedLocks

logger = get_logger("reservation_service")

CONFIRMED_STATUS = "confirmed"


class ReservationConflictError(Exception):
    """The resource is already booked for part of the requested window."""

    code = "reservation_conflict"

    def __init__(self, resource_id: UUID, conflicting_id: Optional[UUID] = None):
        self.resource_id = resource_id
        self.conflicting_id = conflicting_id
        super().__init__(f"Resource {resource_id} is already reserved for this time")


class ResourceNotFoundError(Exception):
    code = "not_found"


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open intervals: touching windows do not overlap."""
    return as_utc(start_a) < as_utc(end_b) and as_utc(start_b) < as_utc(end_a)


class ReservationGuard:
    def __init__(self, locks: Optional[KeyedLocks] = None, clock: Callable[[], datetime] = utc_now):
        self.locks = locks or KeyedLocks()
        self.clock = clock

    async def reserve(
        self,
        db: Session,
        business_id: UUID,
        resource_id: UUID,
        start_at: datetime,
        end_at: datetime,
        customer_channel_id: Optional[str] = None,
        customer_name: Optional[str] = None,
        party_size: Optional[int] = None,
    ) -> Reservation:
        """Check and insert atomically per resource.

        Raises ReservationConflictError on overlap and ResourceNotFoundError when
        the resource does not belong to the business.
        """
        start_at, end_at = as_utc(start_at), as_utc(end_at)
        if end_at <= start_at:
            raise ValueError("end_at must be after start_at")

        async with self.locks.hold(("resource", resource_id)):
            try:
                resource = (
                    db.query(DiningTable)
                    .filter(DiningTable.id == resource_id, DiningTable.business_id == business_id)
                    .with_for_update()
                    .first()
                )
                if resource is None:
                    raise ResourceNotFoundError(f"Resource {resource_id} not found")

                # Coarse window filter in SQL, exact half-open check below.
                candidates = (
                    db.query(Reservation)
                    .populate_existing()
                    .filter(
                        Reservation.resource_id == resource_id,
                        Reservation.status == CONFIRMED_STATUS,
                        Reservation.start_at < end_at,
                        Reservation.end_at > start_at,
                    )
                    .all()
                )
                for existing in candidates:
                    if overlaps(existing.start_at, existing.end_at, start_at, end_at):
                        raise ReservationConflictError(resource_id, existing.id)

                reservation = Reservation(
                    id=uuid.uuid4(),
                    business_id=business_id,
                    resource_id=resource_id,
                    customer_channel_id=customer_channel_id,
                    customer_name=customer_name,
                    party_size=party_size,
                    start_at=start_at,
                    end_at=end_at,
                    status=CONFIRMED_STATUS,
                    created_at=self.clock(),
                )
                db.add(reservation)
                db.commit()
            except Exception:
                db.rollback()
                raise

        logger.info(
            "Reservation confirmed",
            extra={
                "context": {
                    "reservation_id": str(reservation.id),
                    "resource_id": str(resource_id),
                    "start_at": start_at.isoformat(),
                    "end_at": end_at.isoformat(),
                }
            },
        )
        return reservation
