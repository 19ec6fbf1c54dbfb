"""Product reviews.

Only buyers can review: the user needs a paid or completed order that
contains the product, and gets one review per product. New reviews wait
for moderation and stay out of the public listing and the stats until an
admin approves them.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from storefront.core.errors import NotFound, InvalidInput, Conflict
from storefront.db.models import Order, OrderItem, Product, Review, User
from storefront.schemas import ReviewCreate
from storefront.security.utils import now_utc
from storefront.services.orders import LICENSED_STATUSES
from storefront.services.tx import atomic

logger = logging.getLogger(__name__)

NOT_PURCHASED = "User has not purchased this product"
ALREADY_REVIEWED = "User has already reviewed this product"

@dataclass
class ReviewEligibility:
    can_review: bool
    reason: Optional[str] = None

def _has_purchased(db: Session, user_id: int, product_id: int) -> bool:
    stmt = (
        select(Order.id)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .where(
            Order.user_id == user_id,
            OrderItem.product_id == product_id,
            Order.status.in_(LICENSED_STATUSES),
        )
        .limit(1)
    )
    return db.execute(stmt).first() is not None

def _has_reviewed(db: Session, user_id: int, product_id: int) -> bool:
    stmt = select(Review.id).where(Review.user_id == user_id, Review.product_id == product_id).limit(1)
    return db.execute(stmt).first() is not None

def can_user_review(db: Session, user_id: int, product_id: int) -> ReviewEligibility:
    if not _has_purchased(db, user_id, product_id):
        return ReviewEligibility(can_review=False, reason=NOT_PURCHASED)
    if _has_reviewed(db, user_id, product_id):
        return ReviewEligibility(can_review=False, reason=ALREADY_REVIEWED)
    return ReviewEligibility(can_review=True)

def create_review(db: Session, payload: ReviewCreate) -> Review:
    if db.get(Product, payload.product_id) is None:
        raise NotFound("Product not found")
    if db.get(User, payload.user_id) is None:
        raise NotFound("User not found")
    eligibility = can_user_review(db, payload.user_id, payload.product_id)
    if not eligibility.can_review:
        logger.warning("review by user %s for product %s rejected: %s", payload.user_id, payload.product_id, eligibility.reason)
        if eligibility.reason == ALREADY_REVIEWED:
            raise Conflict(ALREADY_REVIEWED)
        raise InvalidInput("User must purchase the product before reviewing")

    now = now_utc()
    obj = Review(**payload.model_dump(), is_approved=False, created_at=now, updated_at=now)
    with atomic(db):
        db.add(obj)
        try:
            db.flush()
        except IntegrityError:
            # lost a race with a concurrent submission for the same product
            raise Conflict(ALREADY_REVIEWED)
    db.refresh(obj)
    logger.info("review %s by user %s for product %s awaits moderation", obj.id, obj.user_id, obj.product_id)
    return obj

def _with_relations(stmt):
    return stmt.options(selectinload(Review.user), selectinload(Review.product))

def list_product_reviews(db: Session, product_id: int) -> List[Review]:
    stmt = (
        select(Review)
        .where(Review.product_id == product_id, Review.is_approved.is_(True))
        .order_by(Review.created_at.desc(), Review.id.desc())
    )
    return db.execute(_with_relations(stmt)).scalars().all()

def list_reviews(db: Session) -> List[Review]:
    stmt = select(Review).order_by(Review.created_at.desc(), Review.id.desc())
    return db.execute(_with_relations(stmt)).scalars().all()

def list_pending_reviews(db: Session) -> List[Review]:
    """Oldest first, so moderation works through the queue in order."""
    stmt = select(Review).where(Review.is_approved.is_(False)).order_by(Review.created_at.asc(), Review.id.asc())
    return db.execute(_with_relations(stmt)).scalars().all()

def list_user_reviews(db: Session, user_id: int) -> List[Review]:
    stmt = select(Review).where(Review.user_id == user_id).order_by(Review.created_at.desc(), Review.id.desc())
    return db.execute(_with_relations(stmt)).scalars().all()

def get_review(db: Session, review_id: int) -> Review:
    obj = db.get(Review, review_id)
    if not obj:
        raise NotFound("Review not found")
    return obj

def moderate_review(db: Session, review_id: int, is_approved: bool) -> Review:
    obj = get_review(db, review_id)
    with atomic(db):
        obj.is_approved = is_approved
        obj.updated_at = now_utc()
    db.refresh(obj)
    logger.info("review %s %s", review_id, "approved" if is_approved else "rejected")
    return obj

def delete_review(db: Session, review_id: int) -> None:
    obj = get_review(db, review_id)
    with atomic(db):
        db.delete(obj)

def review_stats(db: Session, product_id: int) -> dict:
    approved = (Review.product_id == product_id, Review.is_approved.is_(True))
    average, total = db.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(*approved)
    ).one()
    distribution = {rating: 0 for rating in range(1, 6)}
    rows = db.execute(
        select(Review.rating, func.count(Review.id)).where(*approved).group_by(Review.rating)
    ).all()
    for rating, n in rows:
        distribution[rating] = n
    return {
        "average_rating": float(average) if average is not None else 0.0,
        "total_reviews": total,
        "rating_distribution": distribution,
    }
