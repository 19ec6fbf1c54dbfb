from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from storefront.api.deps import get_db, get_current_user
from storefront.db.models import User, UserRole
from storefront.schemas import RegisterPayload, LoginPayload, TokenResponse, UserRead
from storefront.security.utils import hash_password, verify_password, create_access_token, now_utc

router = APIRouter()  # main.py mounts at /store/v1/auth


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, db: Session = Depends(get_db)) -> Any:
    # Prevent duplicate email
    if db.query(User).filter(User.email == str(payload.email)).first():
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(
        email=str(payload.email),
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=UserRole.CUSTOMER,
        is_active=True,
        created_at=now_utc(),
        updated_at=now_utc(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginPayload, db: Session = Depends(get_db)) -> Any:
    user = db.query(User).filter(User.email == str(payload.email)).first()
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")

    access, _ = create_access_token(user.id, user.email, user.role.value)
    return {"access_token": access, "token_type": "bearer", "user": user}


@router.get("/me", response_model=UserRead)
def me(user: User = Depends(get_current_user)) -> Any:
    return user
