from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from storefront.core.errors import Conflict, InvalidInput, NotFound
from storefront.db.models import Coupon, Order, OrderItem, OrderStatus, Product
from storefront.schemas import OrderCreate, OrderFilters
from storefront.security.utils import now_utc
from storefront.services import orders as order_service

RATE = Decimal("0.10")


def place(db, user, *lines, coupon_code=None):
    payload = OrderCreate(
        user_id=user.id,
        items=[{"product_id": p.id, "quantity": q} for p, q in lines],
        coupon_code=coupon_code,
    )
    return order_service.create_order(db, payload, tax_rate=RATE)


def order_count(db):
    return db.execute(select(func.count(Order.id))).scalar_one()


def test_create_order_prices_and_takes_stock(db, make_user, make_product):
    user = make_user()
    product = make_product(price="99.99", stock=10)
    order = place(db, user, (product, 2))

    assert order.status == OrderStatus.PENDING
    assert order.order_number.startswith(f"ORD-{now_utc().year}-")
    assert order.subtotal == Decimal("199.98")
    assert order.tax_amount == Decimal("20.00")
    assert order.discount_amount == Decimal("0.00")
    assert order.total_amount == Decimal("219.98")
    assert len(order.items) == 1
    assert order.items[0].unit_price == Decimal("99.99")
    assert order.items[0].total_price == Decimal("199.98")
    assert order.items[0].license_key is None
    assert db.get(Product, product.id).stock_quantity == 8


def test_create_order_with_coupon_counts_usage(db, make_user, make_product, make_coupon):
    user = make_user()
    product = make_product(price="99.99")
    coupon = make_coupon(code="SAVE20", value="20", minimum_order="50")
    order = place(db, user, (product, 2), coupon_code="SAVE20")

    assert order.coupon_id == coupon.id
    assert order.discount_amount == Decimal("40.00")
    assert order.tax_amount == Decimal("16.00")
    assert order.total_amount == Decimal("175.98")
    assert db.get(Coupon, coupon.id).used_count == 1


def test_totals_stay_consistent(db, make_user, make_product, make_coupon):
    user = make_user()
    a = make_product(name="A", price="12.34", stock=50)
    b = make_product(name="B", price="0.99", stock=50)
    make_coupon(code="ODD", value="33")
    order = place(db, user, (a, 3), (b, 7), coupon_code="ODD")
    assert order.total_amount == order.subtotal + order.tax_amount - order.discount_amount
    assert order.subtotal == sum(i.total_price for i in order.items)


def test_unusable_coupon_does_not_block_checkout(db, make_user, make_product, make_coupon):
    user = make_user()
    product = make_product(price="20.00")
    exhausted = make_coupon(code="USED", usage_limit=1, used_count=1)

    order = place(db, user, (product, 1), coupon_code="NOPE")
    assert order.coupon_id is None
    assert order.discount_amount == Decimal("0.00")

    order = place(db, user, (product, 1), coupon_code="USED")
    assert order.coupon_id is None
    assert db.get(Coupon, exhausted.id).used_count == 1


def test_insufficient_stock_writes_nothing(db, make_user, make_product):
    user = make_user()
    product = make_product(name="Icon Set", stock=10)
    with pytest.raises(Conflict) as exc:
        place(db, user, (product, 15))
    assert "Icon Set" in exc.value.message
    assert order_count(db) == 0
    assert db.execute(select(func.count(OrderItem.id))).scalar_one() == 0
    assert db.get(Product, product.id).stock_quantity == 10


def test_failure_on_second_line_rolls_back_first(db, make_user, make_product, make_coupon):
    user = make_user()
    plenty = make_product(name="Plenty", stock=10)
    scarce = make_product(name="Scarce", stock=1)
    coupon = make_coupon(code="SAVE20")
    with pytest.raises(Conflict):
        place(db, user, (plenty, 2), (scarce, 2), coupon_code="SAVE20")
    assert db.get(Product, plenty.id).stock_quantity == 10
    assert db.get(Coupon, coupon.id).used_count == 0
    assert order_count(db) == 0


def test_stock_decrement_is_conditional(db, make_product):
    product = make_product(stock=1)
    with pytest.raises(Conflict):
        order_service._take_stock(db, product, 2)
    db.rollback()
    assert db.get(Product, product.id).stock_quantity == 1


def test_inactive_or_missing_product_is_invalid(db, make_user, make_product):
    user = make_user()
    retired = make_product(is_active=False)
    with pytest.raises(InvalidInput):
        place(db, user, (retired, 1))
    payload = OrderCreate(user_id=user.id, items=[{"product_id": 999, "quantity": 1}])
    with pytest.raises(InvalidInput):
        order_service.create_order(db, payload, tax_rate=RATE)
    assert order_count(db) == 0


def test_unknown_or_inactive_user(db, make_user, make_product):
    product = make_product()
    payload = OrderCreate(user_id=4242, items=[{"product_id": product.id, "quantity": 1}])
    with pytest.raises(NotFound):
        order_service.create_order(db, payload, tax_rate=RATE)
    disabled = make_user(email="gone@example.com", is_active=False)
    with pytest.raises(NotFound):
        place(db, disabled, (product, 1))


def test_order_number_collision_is_retried(db, make_user, make_product, monkeypatch):
    user = make_user()
    product = make_product(stock=10)
    first = place(db, user, (product, 1))
    numbers = iter([first.order_number, "ORD-2099-000001"])
    monkeypatch.setattr(order_service, "generate_order_number", lambda now=None: next(numbers))

    second = place(db, user, (product, 1))
    assert second.order_number == "ORD-2099-000001"
    assert order_count(db) == 2
    assert db.get(Product, product.id).stock_quantity == 8


def test_payment_issues_license_keys(db, make_user, make_product):
    user = make_user()
    order = place(db, user, (make_product(name="A"), 1), (make_product(name="B"), 2))
    outcome = order_service.process_order_payment(db, order.id, "card", "ch_123")

    assert outcome.success
    assert outcome.order.status == OrderStatus.PAID
    assert outcome.order.payment_method == "card"
    assert outcome.order.payment_reference == "ch_123"
    items = db.execute(select(OrderItem).where(OrderItem.order_id == order.id)).scalars().all()
    keys = [i.license_key for i in items]
    assert all(k and k.startswith("LIC-") for k in keys)
    assert len(set(keys)) == len(keys)
    for item in items:
        remaining = item.download_expires_at - now_utc()
        assert timedelta(days=29) < remaining <= timedelta(days=30)


def test_payment_rejections(db, make_user, make_product):
    user = make_user()
    order = place(db, user, (make_product(), 1))
    assert order_service.process_order_payment(db, 999, "card", "x").error == "Order not found"
    assert order_service.process_order_payment(db, order.id, "card", "x").success
    again = order_service.process_order_payment(db, order.id, "card", "y")
    assert not again.success
    assert again.error == "Order is not pending payment"
    assert db.get(Order, order.id).payment_reference == "x"


def test_license_key_generation_is_idempotent(db, make_user, make_product):
    user = make_user()
    order = place(db, user, (make_product(), 1))
    order_service.process_order_payment(db, order.id, "card", "ref")
    item = db.execute(select(OrderItem).where(OrderItem.order_id == order.id)).scalar_one()
    key = item.license_key

    assert order_service.generate_license_keys(db, order.id) is True
    db.refresh(item)
    assert item.license_key == key
    assert order_service.generate_license_keys(db, 999) is True


def test_pending_order_gets_no_license_keys(db, make_user, make_product):
    user = make_user()
    order = place(db, user, (make_product(), 2))
    assert order_service.generate_license_keys(db, order.id) is True
    items = db.execute(select(OrderItem).where(OrderItem.order_id == order.id)).scalars().all()
    assert [i.license_key for i in items] == [None]
    assert items[0].download_expires_at is None


def test_refunded_order_stays_without_license_keys(db, make_user, make_product):
    user = make_user()
    order = place(db, user, (make_product(), 1))
    order_service.process_order_payment(db, order.id, "card", "ref")
    order_service.refund_order(db, order.id)

    assert order_service.generate_license_keys(db, order.id) is True
    item = db.execute(select(OrderItem).where(OrderItem.order_id == order.id)).scalar_one()
    assert item.license_key is None
    assert item.download_expires_at is None


def test_refund_restores_stock_and_revokes_keys(db, make_user, make_product):
    user = make_user()
    product = make_product(stock=5)
    order = place(db, user, (product, 3))
    order_service.process_order_payment(db, order.id, "card", "ref")
    assert db.get(Product, product.id).stock_quantity == 2

    refunded = order_service.refund_order(db, order.id, reason="customer request")
    assert refunded.status == OrderStatus.REFUNDED
    assert db.get(Product, product.id).stock_quantity == 5
    item = db.execute(select(OrderItem).where(OrderItem.order_id == order.id)).scalar_one()
    assert item.license_key is None
    assert item.download_expires_at is None


def test_refund_of_pending_order_is_rejected(db, make_user, make_product):
    user = make_user()
    order = place(db, user, (make_product(), 1))
    with pytest.raises(Conflict):
        order_service.refund_order(db, order.id)
    assert db.get(Order, order.id).status == OrderStatus.PENDING
    with pytest.raises(NotFound):
        order_service.refund_order(db, 999)


def test_completed_order_can_be_refunded(db, make_user, make_product):
    user = make_user()
    order = place(db, user, (make_product(), 1))
    order_service.process_order_payment(db, order.id, "card", "ref")
    order_service.update_order_status(db, order.id, OrderStatus.COMPLETED)
    assert order_service.refund_order(db, order.id).status == OrderStatus.REFUNDED
    with pytest.raises(Conflict):
        order_service.refund_order(db, order.id)


@pytest.mark.parametrize("path,target", [
    ([], OrderStatus.COMPLETED),
    ([], OrderStatus.REFUNDED),
    ([OrderStatus.PAID], OrderStatus.PENDING),
    ([OrderStatus.PAID], OrderStatus.CANCELLED),
    ([OrderStatus.PAID, OrderStatus.COMPLETED], OrderStatus.PAID),
    ([OrderStatus.CANCELLED], OrderStatus.PAID),
    ([OrderStatus.PAID, OrderStatus.REFUNDED], OrderStatus.COMPLETED),
])
def test_illegal_transitions_are_rejected(db, make_user, make_product, path, target):
    user = make_user()
    order = place(db, user, (make_product(), 1))
    for step in path:
        order_service.update_order_status(db, order.id, step)
    with pytest.raises(Conflict):
        order_service.update_order_status(db, order.id, target)
    assert db.get(Order, order.id).status == (path[-1] if path else OrderStatus.PENDING)


def test_cancel_returns_stock(db, make_user, make_product):
    user = make_user()
    product = make_product(stock=4)
    order = place(db, user, (product, 4))
    assert db.get(Product, product.id).stock_quantity == 0
    cancelled = order_service.update_order_status(db, order.id, OrderStatus.CANCELLED)
    assert cancelled.status == OrderStatus.CANCELLED
    assert db.get(Product, product.id).stock_quantity == 4


def test_status_update_of_unknown_order(db):
    with pytest.raises(NotFound):
        order_service.update_order_status(db, 12345, OrderStatus.PAID)


def test_listing_and_statistics(db, make_user, make_product):
    alice = make_user(email="alice@example.com")
    bob = make_user(email="bob@example.com")
    product = make_product(price="10.00", stock=100)
    a1 = place(db, alice, (product, 1))
    a2 = place(db, alice, (product, 2))
    b1 = place(db, bob, (product, 3))
    order_service.process_order_payment(db, a1.id, "card", "r1")
    order_service.process_order_payment(db, b1.id, "card", "r2")
    order_service.update_order_status(db, b1.id, OrderStatus.COMPLETED)

    orders, total = order_service.list_orders(db, OrderFilters(user_id=alice.id))
    assert total == 2
    assert {o.id for o in orders} == {a1.id, a2.id}
    orders, total = order_service.list_orders(db, OrderFilters(status=OrderStatus.PENDING))
    assert [o.id for o in orders] == [a2.id]
    _, total = order_service.list_orders(db, OrderFilters(limit=1, page=2))
    assert total == 3
    assert len(order_service.list_orders_for_user(db, bob.id)) == 1

    stats = order_service.order_statistics(db)
    assert stats["total_orders"] == 3
    assert stats["pending_orders"] == 1
    assert stats["completed_orders"] == 1
    assert stats["total_revenue"] == Decimal("44.00")
    assert stats["monthly_revenue"] == Decimal("44.00")
