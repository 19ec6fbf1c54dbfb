from fastapi import APIRouter, Depends, HTTPException, Query, Response
from typing import Annotated
from sqlalchemy.orm import Session
from sqlalchemy import select, func, or_
from storefront.api.deps import get_db, require_admin
from storefront.db import models
from storefront.schemas import ProductCreate, ProductUpdate, ProductRead, ProductPage, ProductFilters
from storefront.security.utils import now_utc

router = APIRouter()

SORT_COLUMNS = {
    'name': models.Product.name,
    'price': models.Product.price,
    'created_at': models.Product.created_at,
}

@router.get('/', response_model=ProductPage)
def list_products(filters: Annotated[ProductFilters, Query()], db: Session = Depends(get_db)):
    conditions = []
    if filters.active_only: conditions.append(models.Product.is_active.is_(True))
    if filters.category_id is not None: conditions.append(models.Product.category_id == filters.category_id)
    if filters.min_price is not None: conditions.append(models.Product.price >= filters.min_price)
    if filters.max_price is not None: conditions.append(models.Product.price <= filters.max_price)
    if filters.search:
        q_like = f"%{filters.search.lower()}%"
        conditions.append(or_(models.Product.name.ilike(q_like), models.Product.description.ilike(q_like)))

    column = SORT_COLUMNS[filters.sort_by]
    order = column.asc() if filters.sort_order == 'asc' else column.desc()
    stmt = (
        select(models.Product).where(*conditions)
        .order_by(order, models.Product.id)
        .offset((filters.page - 1) * filters.limit).limit(filters.limit)
    )
    total = db.execute(select(func.count(models.Product.id)).where(*conditions)).scalar_one()
    return {
        'products': db.execute(stmt).scalars().all(),
        'total': total,
        'page': filters.page,
        'limit': filters.limit,
    }

@router.get('/{product_id}', response_model=ProductRead)
def get_product(product_id: int, db: Session = Depends(get_db)):
    obj = db.get(models.Product, product_id)
    if not obj: raise HTTPException(status_code=404, detail='Product not found')
    return obj

@router.post('/', response_model=ProductRead, status_code=201, dependencies=[Depends(require_admin)])
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    if not db.get(models.Category, payload.category_id):
        raise HTTPException(status_code=404, detail='Category not found')
    obj = models.Product(**payload.model_dump(), is_active=True)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.patch('/{product_id}', response_model=ProductRead, dependencies=[Depends(require_admin)])
def update_product(product_id: int, payload: ProductUpdate, db: Session = Depends(get_db)):
    obj = db.get(models.Product, product_id)
    if not obj: raise HTTPException(status_code=404, detail='Product not found')
    data = payload.model_dump(exclude_unset=True)
    if data.get('category_id') is not None and not db.get(models.Category, data['category_id']):
        raise HTTPException(status_code=404, detail='Category not found')
    for k, v in data.items(): setattr(obj, k, v)
    obj.updated_at = now_utc()
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.delete('/{product_id}', status_code=204, dependencies=[Depends(require_admin)])
def delete_product(product_id: int, db: Session = Depends(get_db)):
    obj = db.get(models.Product, product_id)
    if not obj: raise HTTPException(status_code=404, detail='Product not found')
    # products that were sold stay in the table for order history
    if db.query(models.OrderItem).filter(models.OrderItem.product_id == product_id).first():
        obj.is_active = False
        obj.updated_at = now_utc()
        db.add(obj)
    else:
        db.delete(obj)
    db.commit()
    return Response(status_code=204)
