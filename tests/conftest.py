import os
from decimal import Decimal

import pytest

# Set test environment variables before anything reads settings
os.environ["POSTGRES_DSN"] = "sqlite://"
os.environ["KAFKA_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["TAX_RATE"] = "0.10"

from storefront.db.session import Base, engine, SessionLocal
from storefront.db.models import User, UserRole, Category, Product, Coupon, DiscountType
from storefront.security.utils import hash_password, create_access_token


@pytest.fixture(autouse=True)
def schema():
    """Fresh tables for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from storefront.main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    def _make(email="buyer@example.com", role=UserRole.CUSTOMER, is_active=True):
        user = User(
            email=email,
            password_hash=hash_password("secret-pass"),
            first_name="Test",
            last_name="User",
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def category(db):
    obj = Category(name="Plugins", slug="plugins", is_active=True)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@pytest.fixture
def make_product(db, category):
    def _make(name="Theme Pack", price="99.99", stock=10, is_active=True):
        obj = Product(
            name=name,
            description=f"{name} description",
            price=Decimal(price),
            category_id=category.id,
            stock_quantity=stock,
            is_active=is_active,
        )
        db.add(obj)
        db.commit()
        db.refresh(obj)
        return obj
    return _make


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE20", discount_type=DiscountType.PERCENTAGE, value="20",
              minimum_order=None, usage_limit=None, used_count=0, expires_at=None, is_active=True):
        obj = Coupon(
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(value),
            minimum_order=Decimal(minimum_order) if minimum_order is not None else None,
            usage_limit=usage_limit,
            used_count=used_count,
            expires_at=expires_at,
            is_active=is_active,
        )
        db.add(obj)
        db.commit()
        db.refresh(obj)
        return obj
    return _make


@pytest.fixture
def admin_headers(make_user):
    admin = make_user(email="admin@example.com", role=UserRole.ADMIN)
    token, _ = create_access_token(admin.id, admin.email, admin.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_headers(make_user):
    user = make_user(email="customer@example.com")
    token, _ = create_access_token(user.id, user.email, user.role.value)
    return {"Authorization": f"Bearer {token}"}
