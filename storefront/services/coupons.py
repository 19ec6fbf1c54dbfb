import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update, or_
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.errors import NotFound, InvalidInput, Conflict
from storefront.db.models import Coupon, DiscountType, Order, OrderStatus
from storefront.schemas import CouponCreate, CouponUpdate
from storefront.security.utils import now_utc, to_naive_utc
from storefront.services import pricing
from storefront.services.tx import atomic

logger = logging.getLogger(__name__)

@dataclass
class CouponValidation:
    is_valid: bool
    coupon: Optional[Coupon] = None
    discount: Optional[Decimal] = None
    error: Optional[str] = None

@dataclass
class CouponApplication:
    success: bool
    discount: Optional[Decimal] = None
    error: Optional[str] = None

def get_coupon_by_code(db: Session, code: str) -> Optional[Coupon]:
    return db.execute(select(Coupon).where(Coupon.code == code)).scalar_one_or_none()

def claim_coupon(db: Session, coupon_id: int) -> None:
    """Count one use of the coupon, refusing to go past its usage limit."""
    res = db.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
        )
        .values(used_count=Coupon.used_count + 1, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise Conflict("Coupon usage limit reached")

def validate_coupon(db: Session, code: str, order_total: Decimal) -> CouponValidation:
    coupon = get_coupon_by_code(db, code)
    error = pricing.coupon_rejection(coupon, order_total, now_utc())
    if error:
        return CouponValidation(is_valid=False, error=error)
    return CouponValidation(is_valid=True, coupon=coupon, discount=pricing.coupon_discount(coupon, order_total))

def apply_coupon(db: Session, code: str, order_id: int, tax_rate: Optional[Decimal] = None) -> CouponApplication:
    """Attach a coupon to a pending order and re-price it."""
    tax_rate = settings.TAX_RATE if tax_rate is None else tax_rate
    order = db.get(Order, order_id)
    if not order:
        return CouponApplication(success=False, error="Order not found")
    if order.status != OrderStatus.PENDING:
        return CouponApplication(success=False, error="Order is not pending payment")
    if order.coupon_id is not None:
        return CouponApplication(success=False, error="Order already has a coupon applied")

    validation = validate_coupon(db, code, order.subtotal)
    if not validation.is_valid:
        logger.info("coupon %s rejected for order %s: %s", code, order_id, validation.error)
        return CouponApplication(success=False, error=validation.error)

    tax = pricing.tax_for(order.subtotal, validation.discount, tax_rate)
    quote = pricing.PriceQuote(
        subtotal=order.subtotal,
        discount=validation.discount,
        tax=tax,
        total=order.subtotal + tax - validation.discount,
        coupon_id=validation.coupon.id,
    ).rounded()
    try:
        with atomic(db):
            claim_coupon(db, validation.coupon.id)
            res = db.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == OrderStatus.PENDING, Order.coupon_id.is_(None))
                .values(
                    coupon_id=validation.coupon.id,
                    discount_amount=quote.discount,
                    tax_amount=quote.tax,
                    total_amount=quote.total,
                    updated_at=now_utc(),
                )
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 0:
                raise Conflict("Order was modified concurrently")
    except Conflict as exc:
        return CouponApplication(success=False, error=exc.message)

    logger.info("coupon %s applied to order %s, discount %s", code, order_id, quote.discount)
    return CouponApplication(success=True, discount=quote.discount)

# --- administration ---

def _check_discount(discount_type: DiscountType, discount_value: Decimal):
    if discount_value <= 0:
        raise InvalidInput("Discount value must be greater than 0")
    if discount_type == DiscountType.PERCENTAGE and discount_value > 100:
        raise InvalidInput("Percentage discount cannot exceed 100%")

def create_coupon(db: Session, payload: CouponCreate) -> Coupon:
    if get_coupon_by_code(db, payload.code):
        raise Conflict("Coupon code already exists")
    _check_discount(payload.discount_type, payload.discount_value)
    data = payload.model_dump()
    data["expires_at"] = to_naive_utc(payload.expires_at)
    obj = Coupon(**data, used_count=0, is_active=True)
    with atomic(db):
        db.add(obj)
    db.refresh(obj)
    return obj

def list_coupons(db: Session) -> List[Coupon]:
    return db.execute(select(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc())).scalars().all()

def list_active_coupons(db: Session) -> List[Coupon]:
    now = now_utc()
    stmt = (
        select(Coupon)
        .where(
            Coupon.is_active.is_(True),
            or_(Coupon.expires_at.is_(None), Coupon.expires_at > now),
            or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
        )
        .order_by(Coupon.created_at.desc(), Coupon.id.desc())
    )
    return db.execute(stmt).scalars().all()

def get_coupon(db: Session, coupon_id: int) -> Coupon:
    obj = db.get(Coupon, coupon_id)
    if not obj:
        raise NotFound("Coupon not found")
    return obj

def update_coupon(db: Session, coupon_id: int, payload: CouponUpdate) -> Coupon:
    obj = get_coupon(db, coupon_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("code") and data["code"] != obj.code and get_coupon_by_code(db, data["code"]):
        raise Conflict("Coupon code already exists")
    if "discount_type" in data or "discount_value" in data:
        _check_discount(data.get("discount_type") or obj.discount_type, data.get("discount_value") or obj.discount_value)
    limit = data.get("usage_limit", obj.usage_limit)
    if limit is not None and limit < obj.used_count:
        raise InvalidInput(f"Usage limit cannot be lower than current usage ({obj.used_count})")
    if "expires_at" in data:
        data["expires_at"] = to_naive_utc(data["expires_at"])
    with atomic(db):
        for k, v in data.items(): setattr(obj, k, v)
        obj.updated_at = now_utc()
    db.refresh(obj)
    return obj

def delete_coupon(db: Session, coupon_id: int) -> None:
    """Deactivate a coupon that orders reference, remove it otherwise."""
    obj = get_coupon(db, coupon_id)
    used = db.execute(select(Order.id).where(Order.coupon_id == coupon_id).limit(1)).first()
    with atomic(db):
        if used:
            obj.is_active = False
            obj.updated_at = now_utc()
        else:
            db.delete(obj)
