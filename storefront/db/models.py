from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, Numeric, UniqueConstraint, Enum as SAEnum
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from storefront.db.session import Base
from storefront.security.utils import now_utc

class UserRole(str, Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"

class LicenseType(str, Enum):
    SINGLE = "single"
    MULTI = "multi"
    UNLIMITED = "unlimited"

class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"

class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

def _values(enum_cls):
    return [m.value for m in enum_cls]

Money = Numeric(12, 2, asdecimal=True)

class User(Base):
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    role: Mapped[UserRole] = mapped_column(SAEnum(UserRole, name='user_role', values_callable=_values), default=UserRole.CUSTOMER)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc())
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc())
    orders = relationship('Order', back_populates='user')

class Category(Base):
    __tablename__ = 'categories'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc())
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc())
    products = relationship('Product', back_populates='category')

class Product(Base):
    __tablename__ = 'products'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(240), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    short_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False, index=True)
    category_id: Mapped[int] = mapped_column(ForeignKey('categories.id'), nullable=False, index=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    download_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    version: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    license_type: Mapped[Optional[LicenseType]] = mapped_column(SAEnum(LicenseType, name='license_type', values_callable=_values), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc())
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc())
    category = relationship('Category', back_populates='products')

class Coupon(Base):
    __tablename__ = 'coupons'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    discount_type: Mapped[DiscountType] = mapped_column(SAEnum(DiscountType, name='discount_type', values_callable=_values), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Money, nullable=False)
    minimum_order: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc())
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc())
    orders = relationship('Order', back_populates='coupon')

class Order(Base):
    __tablename__ = 'orders'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    status: Mapped[OrderStatus] = mapped_column(SAEnum(OrderStatus, name='order_status', values_callable=_values), default=OrderStatus.PENDING, index=True)
    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    discount_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal('0'))
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    coupon_id: Mapped[Optional[int]] = mapped_column(ForeignKey('coupons.id'), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc(), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc())

    user = relationship('User', back_populates='orders')
    coupon = relationship('Coupon', back_populates='orders')
    items = relationship('OrderItem', back_populates='order', order_by='OrderItem.id')

class OrderItem(Base):
    __tablename__ = 'order_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey('orders.id'), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id'), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    license_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    download_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc())

    order = relationship('Order', back_populates='items')
    product = relationship('Product')

class Review(Base):
    __tablename__ = 'reviews'
    __table_args__ = (UniqueConstraint('user_id', 'product_id', name='uq_reviews_user_product'),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id'), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc())
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: now_utc())

    product = relationship('Product')
    user = relationship('User')
