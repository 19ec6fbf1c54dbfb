from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.core.errors import Conflict, InvalidInput, NotFound
from storefront.db.models import Coupon, DiscountType, Order, OrderStatus
from storefront.schemas import CouponCreate, CouponUpdate, OrderCreate
from storefront.security.utils import now_utc
from storefront.services import coupons as coupon_service
from storefront.services import orders as order_service

RATE = Decimal("0.10")


@pytest.fixture
def pending_order(db, make_user, make_product):
    user = make_user()
    product = make_product(price="99.99", stock=10)
    payload = OrderCreate(user_id=user.id, items=[{"product_id": product.id, "quantity": 2}])
    return order_service.create_order(db, payload, tax_rate=RATE)


def test_exhausted_coupon_is_invalid(db, make_coupon):
    make_coupon(code="ONCE", usage_limit=1, used_count=1)
    result = coupon_service.validate_coupon(db, "ONCE", Decimal("100"))
    assert result.is_valid is False
    assert "usage limit" in result.error


def test_validate_returns_discount(db, make_coupon):
    make_coupon(code="TENOFF", discount_type=DiscountType.FIXED, value="10", minimum_order="25")
    result = coupon_service.validate_coupon(db, "TENOFF", Decimal("25.00"))
    assert result.is_valid
    assert result.coupon.code == "TENOFF"
    assert result.discount == Decimal("10.00")


@pytest.mark.parametrize("kwargs,total,error", [
    ({"is_active": False}, "100", "Coupon is not active"),
    ({"expires_at": "past"}, "100", "Coupon has expired"),
    ({"minimum_order": "50"}, "49.99", "Minimum order amount of $50.00 required"),
])
def test_validate_messages(db, make_coupon, kwargs, total, error):
    if kwargs.get("expires_at") == "past":
        kwargs["expires_at"] = now_utc() - timedelta(days=1)
    make_coupon(code="CODE", **kwargs)
    result = coupon_service.validate_coupon(db, "CODE", Decimal(total))
    assert not result.is_valid
    assert result.error == error
    assert coupon_service.validate_coupon(db, "MISSING", Decimal(total)).error == "Coupon not found"


def test_apply_coupon_reprices_pending_order(db, make_coupon, pending_order):
    coupon = make_coupon(code="SAVE20", value="20")
    result = coupon_service.apply_coupon(db, "SAVE20", pending_order.id, tax_rate=RATE)
    assert result.success
    assert result.discount == Decimal("40.00")

    order = db.get(Order, pending_order.id)
    db.refresh(order)
    assert order.coupon_id == coupon.id
    assert order.discount_amount == Decimal("40.00")
    assert order.tax_amount == Decimal("16.00")
    assert order.total_amount == Decimal("175.98")
    assert db.get(Coupon, coupon.id).used_count == 1

    again = coupon_service.apply_coupon(db, "SAVE20", pending_order.id, tax_rate=RATE)
    assert not again.success
    assert again.error == "Order already has a coupon applied"


def test_apply_coupon_rejections(db, make_coupon, pending_order):
    make_coupon(code="SAVE20")
    assert coupon_service.apply_coupon(db, "SAVE20", 999).error == "Order not found"
    assert coupon_service.apply_coupon(db, "NOPE", pending_order.id).error == "Coupon not found"

    order_service.process_order_payment(db, pending_order.id, "card", "ref")
    result = coupon_service.apply_coupon(db, "SAVE20", pending_order.id)
    assert not result.success
    assert result.error == "Order is not pending payment"
    assert db.get(Order, pending_order.id).status == OrderStatus.PAID


def test_claim_respects_usage_limit(db, make_coupon):
    coupon = make_coupon(code="TWICE", usage_limit=2, used_count=1)
    coupon_service.claim_coupon(db, coupon.id)
    db.commit()
    with pytest.raises(Conflict):
        coupon_service.claim_coupon(db, coupon.id)
    db.rollback()
    assert db.get(Coupon, coupon.id).used_count == 2


def test_create_and_update_coupon(db):
    coupon = coupon_service.create_coupon(db, CouponCreate(
        code="SPRING", discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("15"),
    ))
    assert coupon.used_count == 0
    assert coupon.is_active

    with pytest.raises(Conflict):
        coupon_service.create_coupon(db, CouponCreate(
            code="SPRING", discount_type=DiscountType.FIXED, discount_value=Decimal("5"),
        ))
    with pytest.raises(InvalidInput):
        coupon_service.create_coupon(db, CouponCreate(
            code="HUGE", discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("150"),
        ))

    updated = coupon_service.update_coupon(db, coupon.id, CouponUpdate(usage_limit=5, description="spring sale"))
    assert updated.usage_limit == 5
    assert updated.description == "spring sale"
    with pytest.raises(InvalidInput):
        coupon_service.update_coupon(db, coupon.id, CouponUpdate(discount_value=Decimal("101")))
    with pytest.raises(NotFound):
        coupon_service.get_coupon(db, 999)


def test_active_listing_skips_unusable_coupons(db, make_coupon):
    make_coupon(code="LIVE")
    make_coupon(code="OFF", is_active=False)
    make_coupon(code="OLD", expires_at=now_utc() - timedelta(hours=1))
    make_coupon(code="DONE", usage_limit=1, used_count=1)
    assert [c.code for c in coupon_service.list_active_coupons(db)] == ["LIVE"]
    assert len(coupon_service.list_coupons(db)) == 4


def test_delete_used_coupon_only_deactivates(db, make_coupon, pending_order):
    used = make_coupon(code="SAVE20")
    coupon_service.apply_coupon(db, "SAVE20", pending_order.id, tax_rate=RATE)
    unused = make_coupon(code="SPARE")

    coupon_service.delete_coupon(db, used.id)
    coupon_service.delete_coupon(db, unused.id)

    assert db.get(Coupon, used.id).is_active is False
    assert db.get(Coupon, unused.id) is None


def test_usage_limit_cannot_drop_below_usage(db, make_coupon):
    coupon = make_coupon(code="BUSY", usage_limit=10, used_count=5)
    with pytest.raises(InvalidInput):
        coupon_service.update_coupon(db, coupon.id, CouponUpdate(usage_limit=2))
    assert db.get(Coupon, coupon.id).usage_limit == 10

    assert coupon_service.update_coupon(db, coupon.id, CouponUpdate(usage_limit=5)).usage_limit == 5
    assert coupon_service.update_coupon(db, coupon.id, CouponUpdate(usage_limit=None)).usage_limit is None
