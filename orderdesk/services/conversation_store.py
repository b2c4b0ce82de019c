"""Per-conversation cart and session state.

Carts expire at read time: nothing sweeps them. Every reader, the dashboard
included, uses CART_TTL_MINUTES and minutes_until_timeout() so that both sides
agree on what "expired" means. The first writer to see an expired cart moves
the row out of "cart" status.
"""

import copy
import inspect
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from orderdesk.logging_config import get_logger
from orderdesk.models import ChatSession, Order, OrderStatusHistory
from orderdesk.services.keyed_lock import KeyedLocks
from orderdesk.services.result import Result

logger = get_logger("conversation_store")

CART_TTL_MINUTES = 120
CART_STATUS = "cart"
CHECKED_OUT_STATUS = "pending"
REJECTED_STATUS = "rejected"

TIMEOUT_NOTE = "Cart abandoned - no activity for 2 hours"
CANCELLED_NOTE = "Cart cancelled by business"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def minutes_since_update(updated_at: datetime, now: datetime) -> int:
    """Whole minutes elapsed, truncated like SQL TIMESTAMPDIFF(MINUTE, ...)."""
    elapsed = as_utc(now) - as_utc(updated_at)
    return int(elapsed.total_seconds() // 60)


def minutes_until_timeout(updated_at: datetime, now: datetime) -> int:
    return CART_TTL_MINUTES - minutes_since_update(updated_at, now)


def is_cart_expired(updated_at: datetime, now: datetime) -> bool:
    return minutes_until_timeout(updated_at, now) < 0


@dataclass(frozen=True)
class ConversationKey:
    business_id: UUID
    customer_channel_id: str


@dataclass
class CartState:
    business_id: UUID
    customer_channel_id: str
    branch_id: Optional[UUID] = None
    id: Optional[UUID] = None
    channel: Optional[str] = None
    status: str = CART_STATUS
    line_items: list[dict[str, Any]] = field(default_factory=list)
    delivery_type: Optional[str] = None
    delivery_address: Optional[dict[str, Any]] = None
    scheduled_for: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> ConversationKey:
        return ConversationKey(self.business_id, self.customer_channel_id)

    @property
    def is_new(self) -> bool:
        return self.id is None

    def minutes_until_timeout(self, now: datetime) -> int:
        if self.updated_at is None:
            return CART_TTL_MINUTES
        return minutes_until_timeout(self.updated_at, now)

    def is_expired(self, now: datetime) -> bool:
        return self.minutes_until_timeout(now) < 0

    def copy(self) -> "CartState":
        return copy.deepcopy(self)

    @classmethod
    def from_row(cls, row: Order) -> "CartState":
        return cls(
            id=row.id,
            business_id=row.business_id,
            branch_id=row.branch_id,
            customer_channel_id=row.customer_channel_id,
            channel=row.channel,
            status=row.status,
            line_items=copy.deepcopy(row.line_items or []),
            delivery_type=row.delivery_type,
            delivery_address=copy.deepcopy(row.delivery_address),
            scheduled_for=as_utc(row.scheduled_for),
            notes=row.notes,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )


@dataclass(frozen=True)
class SessionState:
    assigned_employee_id: Optional[str] = None
    locked: bool = False

    @property
    def handed_over(self) -> bool:
        """True while a human agent owns the conversation."""
        return self.locked or self.assigned_employee_id is not None


@dataclass(frozen=True)
class CartMutation:
    op: str  # add_item, remove_item, set_quantity, set_delivery, set_schedule, set_notes, clear
    payload: dict[str, Any] = field(default_factory=dict)


class CartConflictError(Exception):
    """The cart left "cart" status while a customer turn was in flight."""

    code = "cart_conflict"

    def __init__(self, cart_id: Optional[UUID], message: str = "Cart is no longer active"):
        self.cart_id = cart_id
        super().__init__(message)


def apply_mutation(cart: CartState, mutation: CartMutation) -> CartState:
    """Apply one engine-issued mutation to cart in place and return it."""
    op = mutation.op
    data = mutation.payload

    if op == "add_item":
        quantity = int(data.get("quantity", 1))
        for line in cart.line_items:
            if line.get("item_id") == data.get("item_id") and line.get("notes") == data.get("notes"):
                line["quantity"] = int(line.get("quantity", 0)) + quantity
                break
        else:
            cart.line_items.append(
                {
                    "item_id": data.get("item_id"),
                    "name": data.get("name"),
                    "quantity": quantity,
                    "unit_price": data.get("unit_price"),
                    "notes": data.get("notes"),
                }
            )
    elif op == "remove_item":
        cart.line_items = [line for line in cart.line_items if line.get("item_id") != data.get("item_id")]
    elif op == "set_quantity":
        quantity = int(data.get("quantity", 0))
        if quantity <= 0:
            cart.line_items = [line for line in cart.line_items if line.get("item_id") != data.get("item_id")]
        else:
            for line in cart.line_items:
                if line.get("item_id") == data.get("item_id"):
                    line["quantity"] = quantity
    elif op == "set_delivery":
        cart.delivery_type = data.get("delivery_type")
        cart.delivery_address = data.get("address")
    elif op == "set_schedule":
        scheduled_for = data.get("scheduled_for")
        if isinstance(scheduled_for, str):
            scheduled_for = datetime.fromisoformat(scheduled_for)
        cart.scheduled_for = as_utc(scheduled_for)
    elif op == "set_notes":
        cart.notes = data.get("notes")
    elif op == "clear":
        cart.line_items = []
        cart.delivery_type = None
        cart.delivery_address = None
        cart.scheduled_for = None
    else:
        raise ValueError(f"Unknown cart mutation: {op}")
    return cart


def _add_history(db: Session, order_id: UUID, status: str, changed_by: str, now: datetime) -> None:
    db.add(OrderStatusHistory(id=uuid.uuid4(), order_id=order_id, status=status, changed_by=changed_by, changed_at=now))


def _transition_out_of_cart(
    db: Session, order_id: UUID, status: str, changed_by: str, now: datetime, notes: Optional[str] = None
) -> bool:
    """Conditional status change; returns False if the row already left "cart"."""
    values: dict[str, Any] = {"status": status, "updated_at": now}
    if notes is not None:
        values["notes"] = notes
    updated = (
        db.query(Order)
        .filter(Order.id == order_id, Order.status == CART_STATUS)
        .update(values, synchronize_session=False)
    )
    if not updated:
        db.rollback()
        return False
    _add_history(db, order_id, status, changed_by, now)
    db.commit()
    return True


CartFn = Callable[[CartState], Union[CartState, Awaitable[CartState]]]


class ConversationStateStore:
    def __init__(self, locks: Optional[KeyedLocks] = None, clock: Callable[[], datetime] = utc_now):
        self.locks = locks or KeyedLocks()
        self.clock = clock

    def lock(self, key: ConversationKey):
        """Critical section for one conversation; other keys are unaffected."""
        return self.locks.hold(("conversation", key))

    def _active_row(self, db: Session, key: ConversationKey) -> Optional[Order]:
        return (
            db.query(Order)
            .populate_existing()
            .filter(
                Order.business_id == key.business_id,
                Order.customer_channel_id == key.customer_channel_id,
                Order.status == CART_STATUS,
            )
            .order_by(Order.updated_at.desc())
            .first()
        )

    def get_or_create_cart(
        self, db: Session, key: ConversationKey, branch_id: Optional[UUID] = None, channel: Optional[str] = None
    ) -> CartState:
        """Live cart for key, or a fresh unsaved one. Persisted on first save."""
        now = self.clock()
        row = self._active_row(db, key)
        if row is not None:
            cart = CartState.from_row(row)
            if not cart.is_expired(now):
                return cart
            if _transition_out_of_cart(db, row.id, REJECTED_STATUS, "system", now, notes=TIMEOUT_NOTE):
                logger.info(
                    "Cart timed out and rejected",
                    extra={
                        "context": {
                            "cart_id": str(row.id),
                            "business_id": str(key.business_id),
                            "minutes_since_update": minutes_since_update(cart.updated_at, now),
                        }
                    },
                )
        return CartState(
            business_id=key.business_id,
            customer_channel_id=key.customer_channel_id,
            branch_id=branch_id,
            channel=channel,
        )

    def save_cart(self, db: Session, cart: CartState) -> CartState:
        """Persist cart. Caller must hold the conversation lock."""
        now = self.clock()
        if cart.is_new:
            cart_id = uuid.uuid4()
            db.add(
                Order(
                    id=cart_id,
                    business_id=cart.business_id,
                    branch_id=cart.branch_id,
                    customer_channel_id=cart.customer_channel_id,
                    channel=cart.channel,
                    status=CART_STATUS,
                    line_items=copy.deepcopy(cart.line_items),
                    delivery_type=cart.delivery_type,
                    delivery_address=copy.deepcopy(cart.delivery_address),
                    scheduled_for=cart.scheduled_for,
                    notes=cart.notes,
                    created_at=now,
                    updated_at=now,
                )
            )
            db.commit()
            return replace(cart, id=cart_id, created_at=now, updated_at=now)

        updated = (
            db.query(Order)
            .filter(Order.id == cart.id, Order.status == CART_STATUS)
            .update(
                {
                    "line_items": copy.deepcopy(cart.line_items),
                    "delivery_type": cart.delivery_type,
                    "delivery_address": copy.deepcopy(cart.delivery_address),
                    "scheduled_for": cart.scheduled_for,
                    "notes": cart.notes,
                    "updated_at": now,
                },
                synchronize_session=False,
            )
        )
        if not updated:
            db.rollback()
            raise CartConflictError(cart.id)
        db.commit()
        return replace(cart, updated_at=now)

    def apply_mutations(self, db: Session, cart: CartState, mutations: Iterable[CartMutation]) -> CartState:
        """Apply and persist mutations. Caller must hold the conversation lock."""
        updated = cart.copy()
        for mutation in mutations:
            apply_mutation(updated, mutation)
        return self.save_cart(db, updated)

    async def mutate_cart(
        self, db: Session, key: ConversationKey, fn: CartFn, branch_id: Optional[UUID] = None
    ) -> CartState:
        """Read-modify-write the cart for key under its lock."""
        async with self.lock(key):
            cart = self.get_or_create_cart(db, key, branch_id=branch_id)
            updated = fn(cart.copy())
            if inspect.isawaitable(updated):
                updated = await updated
            return self.save_cart(db, updated)

    def checkout(self, db: Session, cart: CartState, changed_by: str = "customer") -> bool:
        if cart.is_new:
            return False
        return _transition_out_of_cart(db, cart.id, CHECKED_OUT_STATUS, changed_by, self.clock())

    def _session_row(self, db: Session, key: ConversationKey) -> Optional[ChatSession]:
        return (
            db.query(ChatSession)
            .populate_existing()
            .filter(
                ChatSession.business_id == key.business_id,
                ChatSession.customer_channel_id == key.customer_channel_id,
            )
            .first()
        )

    def get_session(self, db: Session, key: ConversationKey) -> SessionState:
        """Fresh read of the handover state; never served from a previous turn."""
        row = self._session_row(db, key)
        if row is None:
            return SessionState()
        return SessionState(assigned_employee_id=row.assigned_employee_id, locked=bool(row.locked))

    def lock_session(
        self, db: Session, key: ConversationKey, employee_id: str, platform: Optional[str] = None
    ) -> Result[SessionState]:
        """Hand the conversation to a human agent."""
        if not employee_id:
            return Result.failure("employee_id is required", "invalid_request")
        now = self.clock()
        row = self._session_row(db, key)
        if row is None:
            row = ChatSession(
                business_id=key.business_id,
                customer_channel_id=key.customer_channel_id,
                platform=platform,
                created_at=now,
            )
            db.add(row)
        elif row.assigned_employee_id and row.assigned_employee_id != employee_id:
            return Result.failure(f"Session already assigned to {row.assigned_employee_id}", "already_assigned")
        row.assigned_employee_id = employee_id
        row.locked = True
        row.updated_at = now
        db.commit()
        logger.info(f"Session handed over to employee {employee_id}: business={key.business_id}")
        return Result.success(SessionState(assigned_employee_id=employee_id, locked=True))

    def release_session(self, db: Session, key: ConversationKey) -> Result[SessionState]:
        """Return the conversation to the automated engine."""
        row = self._session_row(db, key)
        if row is None:
            return Result.not_found("Session")
        row.assigned_employee_id = None
        row.locked = False
        row.updated_at = self.clock()
        db.commit()
        logger.info(f"Session returned to bot: business={key.business_id}")
        return Result.success(SessionState())


def cancel_cart(
    db: Session, business_id: UUID, cart_id: UUID, changed_by: str, now: Optional[datetime] = None
) -> Result[CartState]:
    """Business operator cancels a cart.

    Does not take the conversation lock: the conditional update always wins and
    an in-flight customer turn sees the status change when it tries to save.
    """
    row = (
        db.query(Order)
        .populate_existing()
        .filter(Order.id == cart_id, Order.business_id == business_id)
        .first()
    )
    if row is None:
        return Result.not_found("Cart")
    if row.status != CART_STATUS:
        return Result.failure(f"Cart status is {row.status}", "invalid_state")

    now = now or utc_now()
    if not _transition_out_of_cart(db, cart_id, REJECTED_STATUS, changed_by, now, notes=CANCELLED_NOTE):
        return Result.failure("Cart is no longer active", "invalid_state")

    logger.info(
        "Cart cancelled by business",
        extra={"context": {"cart_id": str(cart_id), "business_id": str(business_id), "changed_by": changed_by}},
    )
    row = db.query(Order).populate_existing().filter(Order.id == cart_id).first()
    return Result.success(CartState.from_row(row))


def list_active_carts(db: Session, business_id: UUID, now: Optional[datetime] = None) -> list[CartState]:
    """Carts still in "cart" status and inside the TTL window."""
    now = now or utc_now()
    rows = (
        db.query(Order)
        .filter(Order.business_id == business_id, Order.status == CART_STATUS)
        .order_by(Order.updated_at.desc())
        .all()
    )
    carts = [CartState.from_row(row) for row in rows]
    return [cart for cart in carts if not cart.is_expired(now)]


def get_cart(db: Session, business_id: UUID, cart_id: UUID) -> Optional[CartState]:
    row = db.query(Order).filter(Order.id == cart_id, Order.business_id == business_id).first()
    return CartState.from_row(row) if row else None
