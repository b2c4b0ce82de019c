import asyncio
import uuid

import pytest

from orderdesk.models import Order, OrderStatusHistory
from orderdesk.services.conversation_store import (
    CART_TTL_MINUTES,
    CartConflictError,
    CartMutation,
    CartState,
    ConversationKey,
    ConversationStateStore,
    apply_mutation,
    cancel_cart,
    list_active_carts,
    minutes_since_update,
    minutes_until_timeout,
)


def add_item(item_id, quantity=1, **extra):
    return CartMutation("add_item", {"item_id": item_id, "name": item_id, "quantity": quantity, **extra})


@pytest.fixture
def key(make_business):
    return ConversationKey(make_business().id, "+15550001")


@pytest.fixture
def store(clock):
    return ConversationStateStore(clock=clock)


class TestTimeoutArithmetic:
    def test_minutes_are_floored(self, clock):
        start = clock()
        clock.advance(minutes=120, seconds=30)
        assert minutes_since_update(start, clock()) == 120
        assert minutes_until_timeout(start, clock()) == 0

    def test_ttl_constant(self):
        assert CART_TTL_MINUTES == 120


class TestApplyMutation:
    def test_add_merges_same_item(self, key):
        cart = CartState(business_id=key.business_id, customer_channel_id=key.customer_channel_id)
        apply_mutation(cart, add_item("pizza"))
        apply_mutation(cart, add_item("pizza", 2))
        assert cart.line_items[0]["quantity"] == 3

    def test_set_quantity_zero_removes(self, key):
        cart = CartState(business_id=key.business_id, customer_channel_id=key.customer_channel_id)
        apply_mutation(cart, add_item("pizza"))
        apply_mutation(cart, CartMutation("set_quantity", {"item_id": "pizza", "quantity": 0}))
        assert cart.line_items == []

    def test_unknown_op_raises(self, key):
        cart = CartState(business_id=key.business_id, customer_channel_id=key.customer_channel_id)
        with pytest.raises(ValueError):
            apply_mutation(cart, CartMutation("explode"))


class TestGetOrCreateCart:
    def test_new_cart_is_not_persisted_until_saved(self, db_session, store, key):
        cart = store.get_or_create_cart(db_session, key)
        assert cart.is_new
        assert db_session.query(Order).count() == 0

    def test_returns_live_cart(self, db_session, store, key):
        saved = store.apply_mutations(db_session, store.get_or_create_cart(db_session, key), [add_item("pizza")])
        cart = store.get_or_create_cart(db_session, key)
        assert cart.id == saved.id
        assert cart.line_items[0]["item_id"] == "pizza"

    def test_cart_alive_just_inside_window(self, db_session, store, key, clock):
        saved = store.apply_mutations(db_session, store.get_or_create_cart(db_session, key), [add_item("pizza")])
        clock.advance(minutes=120, seconds=30)

        cart = store.get_or_create_cart(db_session, key)

        assert cart.id == saved.id

    def test_expired_cart_is_rejected_and_replaced(self, db_session, store, key, clock):
        saved = store.apply_mutations(db_session, store.get_or_create_cart(db_session, key), [add_item("pizza")])
        clock.advance(minutes=121)

        cart = store.get_or_create_cart(db_session, key)

        assert cart.is_new
        row = db_session.query(Order).filter(Order.id == saved.id).one()
        assert row.status == "rejected"
        assert row.notes == "Cart abandoned - no activity for 2 hours"
        history = db_session.query(OrderStatusHistory).filter(OrderStatusHistory.order_id == saved.id).all()
        assert [(h.status, h.changed_by) for h in history] == [("rejected", "system")]

    def test_dashboard_agrees_on_expiry(self, db_session, store, key, clock):
        store.apply_mutations(db_session, store.get_or_create_cart(db_session, key), [add_item("pizza")])
        clock.advance(minutes=121)

        assert list_active_carts(db_session, key.business_id, clock()) == []
        assert store.get_or_create_cart(db_session, key).is_new

    def test_dashboard_lists_cart_inside_window(self, db_session, store, key, clock):
        store.apply_mutations(db_session, store.get_or_create_cart(db_session, key), [add_item("pizza")])
        clock.advance(minutes=120, seconds=30)

        carts = list_active_carts(db_session, key.business_id, clock())

        assert len(carts) == 1
        assert carts[0].minutes_until_timeout(clock()) == 0


class TestMutateCart:
    @pytest.mark.asyncio
    async def test_concurrent_turns_on_same_key_are_serialized(self, db_session, store, key):
        async def add_slowly(cart):
            await asyncio.sleep(0)
            return apply_mutation(cart, add_item("pizza"))

        await asyncio.gather(*(store.mutate_cart(db_session, key, add_slowly) for _ in range(5)))

        rows = db_session.query(Order).filter(Order.status == "cart").all()
        assert len(rows) == 1
        assert rows[0].line_items[0]["quantity"] == 5

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block_each_other(self, db_session, store, key):
        other = ConversationKey(key.business_id, "+15550002")
        entered = asyncio.Event()
        release = asyncio.Event()

        async def hold(cart):
            entered.set()
            await release.wait()
            return cart

        blocked = asyncio.create_task(store.mutate_cart(db_session, key, hold))
        await entered.wait()

        assert store.locks.is_locked(("conversation", key))
        assert not store.locks.is_locked(("conversation", other))

        release.set()
        await blocked

    @pytest.mark.asyncio
    async def test_sync_function_accepted(self, db_session, store, key):
        cart = await store.mutate_cart(db_session, key, lambda c: apply_mutation(c, add_item("soda")))
        assert cart.line_items[0]["item_id"] == "soda"
        assert not cart.is_new

    @pytest.mark.asyncio
    async def test_locks_are_released(self, db_session, store, key):
        await store.mutate_cart(db_session, key, lambda c: c)
        assert len(store.locks) == 0


class TestCancellation:
    def test_operator_cancel_then_customer_save_conflicts(self, db_session, store, key):
        cart = store.apply_mutations(db_session, store.get_or_create_cart(db_session, key), [add_item("pizza")])

        result = cancel_cart(db_session, key.business_id, cart.id, "employee-7")
        assert result.ok
        assert result.value.status == "rejected"

        with pytest.raises(CartConflictError):
            store.apply_mutations(db_session, cart, [add_item("soda")])

        row = db_session.query(Order).filter(Order.id == cart.id).one()
        assert row.status == "rejected"
        assert row.notes == "Cart cancelled by business"
        assert len(row.line_items) == 1

    def test_cancel_unknown_cart(self, db_session, key):
        assert cancel_cart(db_session, key.business_id, uuid.uuid4(), "employee-7").is_not_found

    def test_cancel_twice_is_invalid_state(self, db_session, store, key):
        cart = store.apply_mutations(db_session, store.get_or_create_cart(db_session, key), [add_item("pizza")])
        cancel_cart(db_session, key.business_id, cart.id, "employee-7")

        result = cancel_cart(db_session, key.business_id, cart.id, "employee-7")

        assert result.error_code == "invalid_state"

    def test_cancel_scoped_to_business(self, db_session, store, key):
        cart = store.apply_mutations(db_session, store.get_or_create_cart(db_session, key), [add_item("pizza")])
        assert cancel_cart(db_session, uuid.uuid4(), cart.id, "employee-7").is_not_found


class TestCheckout:
    def test_checkout_moves_cart_to_pending(self, db_session, store, key):
        cart = store.apply_mutations(db_session, store.get_or_create_cart(db_session, key), [add_item("pizza")])

        assert store.checkout(db_session, cart) is True

        row = db_session.query(Order).filter(Order.id == cart.id).one()
        assert row.status == "pending"
        assert store.get_or_create_cart(db_session, key).is_new

    def test_unsaved_cart_cannot_checkout(self, db_session, store, key):
        assert store.checkout(db_session, store.get_or_create_cart(db_session, key)) is False


class TestSessionHandover:
    def test_no_session_means_bot_active(self, db_session, store, key):
        assert store.get_session(db_session, key).handed_over is False

    def test_lock_and_release(self, db_session, store, key):
        assert store.lock_session(db_session, key, "emp-1").ok
        assert store.get_session(db_session, key).handed_over is True

        assert store.release_session(db_session, key).ok
        assert store.get_session(db_session, key).handed_over is False

    def test_second_employee_cannot_take_assigned_session(self, db_session, store, key):
        store.lock_session(db_session, key, "emp-1")
        result = store.lock_session(db_session, key, "emp-2")
        assert result.error_code == "already_assigned"

    def test_release_unknown_session(self, db_session, store, key):
        assert store.release_session(db_session, key).is_not_found

    def test_handover_seen_through_another_session(self, session_factory, store, key):
        reader = session_factory()
        writer = session_factory()
        try:
            assert store.get_session(reader, key).handed_over is False
            store.lock_session(writer, key, "emp-1")
            assert store.get_session(reader, key).handed_over is True
        finally:
            reader.close()
            writer.close()
