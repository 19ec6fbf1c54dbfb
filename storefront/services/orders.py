"""Order workflow: checkout, status transitions, payment, license keys, refunds.

Every operation that writes more than one row runs inside ``atomic`` so a
failure at any step leaves no partial order, stock change or coupon use
behind. Stock and coupon counters only move through conditional UPDATEs,
never read-then-write.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.errors import StoreError, NotFound, InvalidInput, Conflict, Internal
from storefront.db.models import Order, OrderItem, OrderStatus, Product, User
from storefront.kafka.producer import emit_order_event
from storefront.schemas import OrderCreate, OrderFilters
from storefront.security.utils import now_utc, generate_license_key, to_naive_utc
from storefront.services import pricing
from storefront.services.coupons import get_coupon_by_code, claim_coupon
from storefront.services.tx import atomic

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.COMPLETED, OrderStatus.REFUNDED},
    OrderStatus.COMPLETED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

LICENSED_STATUSES = (OrderStatus.PAID, OrderStatus.COMPLETED)

@dataclass
class PaymentOutcome:
    success: bool
    order: Optional[Order] = None
    error: Optional[str] = None

def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or now_utc()
    return f"ORD-{now.year:04d}-{secrets.randbelow(1_000_000):06d}"

def get_order(db: Session, order_id: int) -> Order:
    order = db.get(Order, order_id)
    if not order:
        raise NotFound("Order not found")
    return order

# --- checkout ---

def create_order(db: Session, payload: OrderCreate, tax_rate: Optional[Decimal] = None) -> Order:
    """Price and persist an order, taking stock and coupon usage in the same transaction."""
    tax_rate = settings.TAX_RATE if tax_rate is None else tax_rate
    attempts = max(1, settings.ORDER_NUMBER_RETRIES)
    for attempt in range(1, attempts + 1):
        try:
            order = _place_order(db, payload, tax_rate)
            db.commit()
        except StoreError as exc:
            db.rollback()
            logger.warning("order for user %s rejected: %s", payload.user_id, exc.message)
            raise
        except IntegrityError as exc:
            db.rollback()
            if "order_number" in str(exc.orig) and attempt < attempts:
                logger.warning("order number collision, retrying (attempt %s of %s)", attempt, attempts)
                continue
            logger.exception("order creation failed for user %s", payload.user_id)
            raise Internal("Internal error") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("order creation failed for user %s", payload.user_id)
            raise Internal("Internal error") from exc
        db.refresh(order)
        logger.info("order %s created for user %s, total %s", order.order_number, order.user_id, order.total_amount)
        emit_order_event("order.created", order, coupon_id=order.coupon_id)
        return order
    raise Internal("Internal error")

def _place_order(db: Session, payload: OrderCreate, tax_rate: Decimal) -> Order:
    now = now_utc()
    user = db.get(User, payload.user_id)
    if not user or not user.is_active:
        raise NotFound("User not found")

    product_ids = [it.product_id for it in payload.items]
    products = {
        p.id: p
        for p in db.execute(
            select(Product).where(Product.id.in_(product_ids), Product.is_active.is_(True))
        ).scalars()
    }
    if len(products) != len(set(product_ids)):
        raise InvalidInput("One or more products not found or inactive")

    for it in payload.items:
        product = products[it.product_id]
        if product.stock_quantity < it.quantity:
            raise Conflict(f"Insufficient stock for product {product.name}")

    coupon = get_coupon_by_code(db, payload.coupon_code) if payload.coupon_code else None
    quote = pricing.quote_order(
        [(products[it.product_id].price, it.quantity) for it in payload.items],
        coupon, tax_rate, now,
    )
    if payload.coupon_code and not quote.coupon_applied:
        # unusable codes do not block checkout
        logger.info("coupon %s ignored at checkout: %s", payload.coupon_code, quote.coupon_error or "Coupon not found")
    quote = quote.rounded()

    order = Order(
        user_id=user.id,
        order_number=generate_order_number(now),
        status=OrderStatus.PENDING,
        subtotal=quote.subtotal,
        tax_amount=quote.tax,
        discount_amount=quote.discount,
        total_amount=quote.total,
        coupon_id=quote.coupon_id,
        created_at=now,
        updated_at=now,
    )
    db.add(order)
    db.flush()

    for it in payload.items:
        product = products[it.product_id]
        db.add(OrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=it.quantity,
            unit_price=product.price,
            total_price=product.price * it.quantity,
            created_at=now,
        ))

    if quote.coupon_applied:
        claim_coupon(db, quote.coupon_id)

    for it in payload.items:
        _take_stock(db, products[it.product_id], it.quantity)

    db.flush()
    return order

def _take_stock(db: Session, product: Product, quantity: int):
    res = db.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise Conflict(f"Insufficient stock for product {product.name}")

def _restore_stock(db: Session, order_id: int):
    items = db.execute(select(OrderItem).where(OrderItem.order_id == order_id)).scalars().all()
    for item in items:
        db.execute(
            update(Product)
            .where(Product.id == item.product_id)
            .values(stock_quantity=Product.stock_quantity + item.quantity, updated_at=now_utc())
            .execution_options(synchronize_session=False)
        )

# --- transitions ---

def _move(db: Session, order: Order, target: OrderStatus, **values):
    """Switch ``order`` to ``target`` if the transition table allows it and nobody beat us to it."""
    current = OrderStatus(order.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise Conflict(f"Cannot change order status from {current.value} to {target.value}")
    res = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == current)
        .values(status=target, updated_at=now_utc(), **values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise Conflict("Order was modified concurrently")
    if target == OrderStatus.PAID:
        _issue_license_keys(db, order.id)
    elif target == OrderStatus.REFUNDED:
        _revoke_license_keys(db, order.id)
        _restore_stock(db, order.id)
    elif target == OrderStatus.CANCELLED:
        _restore_stock(db, order.id)

def update_order_status(db: Session, order_id: int, status: OrderStatus) -> Order:
    order = get_order(db, order_id)
    target = OrderStatus(status)
    with atomic(db):
        _move(db, order, target)
    db.refresh(order)
    logger.info("order %s moved to %s", order.order_number, target.value)
    emit_order_event(f"order.{target.value}", order)
    return order

def process_order_payment(db: Session, order_id: int, payment_method: str, payment_reference: str) -> PaymentOutcome:
    """Mark a pending order paid and issue its license keys.

    Business rejections come back as ``PaymentOutcome(success=False)``;
    only storage failures raise.
    """
    order = db.get(Order, order_id)
    if not order:
        return PaymentOutcome(success=False, error="Order not found")
    if order.status != OrderStatus.PENDING:
        return PaymentOutcome(success=False, error="Order is not pending payment")
    try:
        with atomic(db):
            _move(db, order, OrderStatus.PAID, payment_method=payment_method, payment_reference=payment_reference)
    except Conflict as exc:
        logger.warning("payment for order %s rejected: %s", order_id, exc.message)
        return PaymentOutcome(success=False, error=exc.message)
    db.refresh(order)
    logger.info("order %s paid via %s", order.order_number, payment_method)
    emit_order_event("order.paid", order, payment_method=payment_method)
    return PaymentOutcome(success=True, order=order)

def refund_order(db: Session, order_id: int, reason: Optional[str] = None) -> Order:
    order = get_order(db, order_id)
    if order.status not in (OrderStatus.PAID, OrderStatus.COMPLETED):
        raise Conflict("Order cannot be refunded")
    with atomic(db):
        _move(db, order, OrderStatus.REFUNDED)
    db.refresh(order)
    logger.info("order %s refunded (reason: %s)", order.order_number, reason or "none given")
    emit_order_event("order.refunded", order, reason=reason)
    return order

# --- license keys ---

def _issue_license_keys(db: Session, order_id: int) -> int:
    expires = now_utc() + timedelta(days=settings.LICENSE_DOWNLOAD_DAYS)
    licensed = select(Order.id).where(Order.id == order_id, Order.status.in_(LICENSED_STATUSES))
    pending = db.execute(
        select(OrderItem.id).where(OrderItem.order_id == order_id, OrderItem.license_key.is_(None))
    ).scalars().all()
    issued = 0
    for item_id in pending:
        res = db.execute(
            update(OrderItem)
            .where(OrderItem.id == item_id, OrderItem.license_key.is_(None), OrderItem.order_id.in_(licensed))
            .values(license_key=generate_license_key(), download_expires_at=expires)
            .execution_options(synchronize_session=False)
        )
        issued += res.rowcount
    return issued

def _revoke_license_keys(db: Session, order_id: int):
    db.execute(
        update(OrderItem)
        .where(OrderItem.order_id == order_id)
        .values(license_key=None, download_expires_at=None)
        .execution_options(synchronize_session=False)
    )

def generate_license_keys(db: Session, order_id: int) -> bool:
    """Give every item still missing a key a fresh one. Safe to call repeatedly.

    Only paid or completed orders carry keys; for any other order (or an
    unknown id) there is nothing to issue, which still counts as success.
    """
    order = db.get(Order, order_id)
    if order is None:
        logger.warning("license keys requested for unknown order %s", order_id)
        return True
    if order.status not in LICENSED_STATUSES:
        logger.warning("license keys requested for %s order %s, none issued", order.status.value, order.order_number)
        return True
    try:
        with atomic(db):
            issued = _issue_license_keys(db, order_id)
    except Internal:
        return False
    logger.info("issued %s license keys for order %s", issued, order_id)
    return True

# --- queries ---

def list_orders(db: Session, filters: OrderFilters):
    conditions = []
    if filters.status is not None: conditions.append(Order.status == filters.status)
    if filters.user_id is not None: conditions.append(Order.user_id == filters.user_id)
    if filters.date_from is not None: conditions.append(Order.created_at >= to_naive_utc(filters.date_from))
    if filters.date_to is not None: conditions.append(Order.created_at <= to_naive_utc(filters.date_to))

    stmt = (
        select(Order).where(*conditions)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((filters.page - 1) * filters.limit).limit(filters.limit)
    )
    total = db.execute(select(func.count(Order.id)).where(*conditions)).scalar_one()
    return db.execute(stmt).scalars().all(), total

def list_orders_for_user(db: Session, user_id: int) -> List[Order]:
    stmt = select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc(), Order.id.desc())
    return db.execute(stmt).scalars().all()

def order_statistics(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or now_utc()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    next_month = (month_start + timedelta(days=32)).replace(day=1)
    earning = Order.status.in_([OrderStatus.PAID, OrderStatus.COMPLETED])

    def count(*where):
        return db.execute(select(func.count(Order.id)).where(*where)).scalar_one()

    def revenue(*where):
        value = db.execute(select(func.coalesce(func.sum(Order.total_amount), 0)).where(*where)).scalar_one()
        return Decimal(str(value))

    return {
        "total_orders": count(),
        "pending_orders": count(Order.status == OrderStatus.PENDING),
        "completed_orders": count(Order.status == OrderStatus.COMPLETED),
        "total_revenue": revenue(earning),
        "monthly_revenue": revenue(earning, Order.created_at >= month_start, Order.created_at < next_month),
    }
