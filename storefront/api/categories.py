from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session
from typing import List
from storefront.api.deps import get_db, require_admin
from storefront.db.models import Category, Product
from storefront.schemas import CategoryCreate, CategoryUpdate, CategoryRead
from storefront.security.utils import now_utc

router = APIRouter()

@router.get('/', response_model=List[CategoryRead])
def list_categories(active: bool = False, db: Session = Depends(get_db)):
    q = db.query(Category)
    if active: q = q.filter(Category.is_active.is_(True))
    return q.order_by(Category.name).all()

@router.get('/{category_id}', response_model=CategoryRead)
def get_category(category_id: int, db: Session = Depends(get_db)):
    obj = db.get(Category, category_id)
    if not obj: raise HTTPException(status_code=404, detail='Category not found')
    return obj

@router.post('/', response_model=CategoryRead, status_code=201, dependencies=[Depends(require_admin)])
def create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    if db.query(Category).filter(Category.slug == payload.slug).first():
        raise HTTPException(status_code=409, detail='Category already exists')
    obj = Category(**payload.model_dump(), is_active=True)
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.patch('/{category_id}', response_model=CategoryRead, dependencies=[Depends(require_admin)])
def update_category(category_id: int, payload: CategoryUpdate, db: Session = Depends(get_db)):
    obj = db.get(Category, category_id)
    if not obj: raise HTTPException(status_code=404, detail='Category not found')
    data = payload.model_dump(exclude_unset=True)
    if data.get('slug') and data['slug'] != obj.slug and db.query(Category).filter(Category.slug == data['slug']).first():
        raise HTTPException(status_code=409, detail='Category already exists')
    for k, v in data.items(): setattr(obj, k, v)
    obj.updated_at = now_utc()
    db.add(obj); db.commit(); db.refresh(obj)
    return obj

@router.delete('/{category_id}', status_code=204, dependencies=[Depends(require_admin)])
def delete_category(category_id: int, db: Session = Depends(get_db)):
    obj = db.get(Category, category_id)
    if not obj: raise HTTPException(status_code=404, detail='Category not found')
    if db.query(Product).filter(Product.category_id == category_id).first():
        raise HTTPException(status_code=409, detail='Cannot delete category with associated products')
    db.delete(obj); db.commit()
    return Response(status_code=204)
