from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from typing import List
from storefront.api.deps import get_db, require_admin
from storefront.schemas import (
    CouponCreate, CouponUpdate, CouponRead,
    CouponValidateRequest, CouponValidationRead,
    CouponApplyRequest, CouponApplyResult,
)
from storefront.services import coupons as coupon_service

router = APIRouter()

@router.get('/', response_model=List[CouponRead], dependencies=[Depends(require_admin)])
def list_coupons(db: Session = Depends(get_db)):
    return coupon_service.list_coupons(db)

@router.get('/active', response_model=List[CouponRead])
def list_active_coupons(db: Session = Depends(get_db)):
    return coupon_service.list_active_coupons(db)

@router.post('/validate', response_model=CouponValidationRead)
def validate_coupon(payload: CouponValidateRequest, db: Session = Depends(get_db)):
    result = coupon_service.validate_coupon(db, payload.code, payload.order_total)
    return CouponValidationRead(
        is_valid=result.is_valid,
        coupon=CouponRead.model_validate(result.coupon) if result.coupon else None,
        discount=result.discount,
        error=result.error,
    )

@router.post('/apply', response_model=CouponApplyResult)
def apply_coupon(payload: CouponApplyRequest, db: Session = Depends(get_db)):
    result = coupon_service.apply_coupon(db, payload.code, payload.order_id)
    return CouponApplyResult(success=result.success, discount=result.discount, error=result.error)

@router.get('/{coupon_id}', response_model=CouponRead, dependencies=[Depends(require_admin)])
def get_coupon(coupon_id: int, db: Session = Depends(get_db)):
    return coupon_service.get_coupon(db, coupon_id)

@router.post('/', response_model=CouponRead, status_code=201, dependencies=[Depends(require_admin)])
def create_coupon(payload: CouponCreate, db: Session = Depends(get_db)):
    return coupon_service.create_coupon(db, payload)

@router.patch('/{coupon_id}', response_model=CouponRead, dependencies=[Depends(require_admin)])
def update_coupon(coupon_id: int, payload: CouponUpdate, db: Session = Depends(get_db)):
    return coupon_service.update_coupon(db, coupon_id, payload)

@router.delete('/{coupon_id}', status_code=204, dependencies=[Depends(require_admin)])
def delete_coupon(coupon_id: int, db: Session = Depends(get_db)):
    coupon_service.delete_coupon(db, coupon_id)
    return Response(status_code=204)
