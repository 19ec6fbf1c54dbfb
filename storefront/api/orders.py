from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Annotated, List
from storefront.api.deps import get_db, require_admin
from storefront.core.errors import NotFound, Conflict
from storefront.schemas import (
    OrderCreate, OrderRead, OrderDetail, OrderPage, OrderFilters, OrderStatistics,
    OrderStatusUpdate, PaymentRequest, PaymentResult, LicenseKeyResult,
    RefundRequest, RefundResult,
)
from storefront.services import orders as order_service

router = APIRouter()

@router.post('/', response_model=OrderRead, status_code=201)
def create_order(payload: OrderCreate, db: Session = Depends(get_db)):
    return order_service.create_order(db, payload)

@router.get('/', response_model=OrderPage, dependencies=[Depends(require_admin)])
def list_orders(filters: Annotated[OrderFilters, Query()], db: Session = Depends(get_db)):
    orders, total = order_service.list_orders(db, filters)
    return {'orders': orders, 'total': total, 'page': filters.page, 'limit': filters.limit}

@router.get('/statistics', response_model=OrderStatistics, dependencies=[Depends(require_admin)])
def order_statistics(db: Session = Depends(get_db)):
    return order_service.order_statistics(db)

@router.get('/user/{user_id}', response_model=List[OrderRead])
def list_user_orders(user_id: int, db: Session = Depends(get_db)):
    return order_service.list_orders_for_user(db, user_id)

@router.get('/{order_id}', response_model=OrderDetail)
def get_order(order_id: int, db: Session = Depends(get_db)):
    return order_service.get_order(db, order_id)

@router.patch('/{order_id}/status', response_model=OrderRead, dependencies=[Depends(require_admin)])
def update_order_status(order_id: int, payload: OrderStatusUpdate, db: Session = Depends(get_db)):
    return order_service.update_order_status(db, order_id, payload.status)

@router.post('/{order_id}/payment', response_model=PaymentResult)
def process_payment(order_id: int, payload: PaymentRequest, db: Session = Depends(get_db)):
    outcome = order_service.process_order_payment(db, order_id, payload.payment_method, payload.payment_reference)
    return PaymentResult(
        success=outcome.success,
        order=OrderRead.model_validate(outcome.order) if outcome.order else None,
        error=outcome.error,
    )

@router.post('/{order_id}/license-keys', response_model=LicenseKeyResult)
def generate_license_keys(order_id: int, db: Session = Depends(get_db)):
    return LicenseKeyResult(success=order_service.generate_license_keys(db, order_id))

@router.post('/{order_id}/refund', response_model=RefundResult, dependencies=[Depends(require_admin)])
def refund_order(order_id: int, payload: RefundRequest, db: Session = Depends(get_db)):
    try:
        order_service.refund_order(db, order_id, payload.reason)
    except (NotFound, Conflict) as exc:
        return RefundResult(success=False, error=exc.message)
    return RefundResult(success=True)
