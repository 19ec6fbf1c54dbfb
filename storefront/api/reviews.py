from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from typing import List
from storefront.api.deps import get_db, require_admin
from storefront.schemas import ReviewCreate, ReviewModeration, ReviewRead, ReviewStats, ReviewEligibility
from storefront.services import reviews as review_service

router = APIRouter()

@router.post('/', response_model=ReviewRead, status_code=201)
def create_review(payload: ReviewCreate, db: Session = Depends(get_db)):
    return review_service.create_review(db, payload)

@router.get('/', response_model=List[ReviewRead], dependencies=[Depends(require_admin)])
def list_reviews(db: Session = Depends(get_db)):
    return review_service.list_reviews(db)

@router.get('/pending', response_model=List[ReviewRead], dependencies=[Depends(require_admin)])
def list_pending_reviews(db: Session = Depends(get_db)):
    return review_service.list_pending_reviews(db)

@router.get('/product/{product_id}', response_model=List[ReviewRead])
def list_product_reviews(product_id: int, db: Session = Depends(get_db)):
    return review_service.list_product_reviews(db, product_id)

@router.get('/product/{product_id}/stats', response_model=ReviewStats)
def product_review_stats(product_id: int, db: Session = Depends(get_db)):
    return review_service.review_stats(db, product_id)

@router.get('/product/{product_id}/eligibility', response_model=ReviewEligibility)
def can_user_review(product_id: int, user_id: int, db: Session = Depends(get_db)):
    result = review_service.can_user_review(db, user_id, product_id)
    return ReviewEligibility(can_review=result.can_review, reason=result.reason)

@router.get('/user/{user_id}', response_model=List[ReviewRead])
def list_user_reviews(user_id: int, db: Session = Depends(get_db)):
    return review_service.list_user_reviews(db, user_id)

@router.patch('/{review_id}/moderation', response_model=ReviewRead, dependencies=[Depends(require_admin)])
def moderate_review(review_id: int, payload: ReviewModeration, db: Session = Depends(get_db)):
    return review_service.moderate_review(db, review_id, payload.is_approved)

@router.delete('/{review_id}', status_code=204, dependencies=[Depends(require_admin)])
def delete_review(review_id: int, db: Session = Depends(get_db)):
    review_service.delete_review(db, review_id)
    return Response(status_code=204)
