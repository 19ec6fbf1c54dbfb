from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Dict, Optional, List, Literal
from datetime import datetime
from decimal import Decimal
from storefront.db.models import UserRole, LicenseType, DiscountType, OrderStatus

def _reject_null(value):
    # PATCH fields may be left out, but not cleared
    if value is None:
        raise ValueError("may not be null")
    return value

# --- users ---

class RegisterPayload(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)

class LoginPayload(BaseModel):
    email: EmailStr
    password: str

class UserRead(BaseModel):
    id: int
    email: EmailStr
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool
    created_at: datetime
    class Config: from_attributes = True

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'
    user: UserRead

# --- catalog ---

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    slug: str = Field(min_length=1)
class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    slug: Optional[str] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None

    @field_validator("name", "slug", "is_active")
    @classmethod
    def not_null(cls, value):
        return _reject_null(value)
class CategoryRead(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    slug: str
    is_active: bool
    class Config: from_attributes = True

class ProductBase(BaseModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    short_description: Optional[str] = None
    price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    category_id: int
    image_url: Optional[str] = None
    download_url: Optional[str] = None
    file_size: Optional[int] = None
    version: Optional[str] = None
    license_type: Optional[LicenseType] = None
    stock_quantity: int = Field(default=0, ge=0)
class ProductCreate(ProductBase): pass
class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    short_description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    category_id: Optional[int] = None
    image_url: Optional[str] = None
    download_url: Optional[str] = None
    file_size: Optional[int] = None
    version: Optional[str] = None
    license_type: Optional[LicenseType] = None
    is_active: Optional[bool] = None
    stock_quantity: Optional[int] = Field(default=None, ge=0)

    @field_validator("name", "description", "price", "category_id", "is_active", "stock_quantity")
    @classmethod
    def not_null(cls, value):
        return _reject_null(value)
class ProductRead(BaseModel):
    id: int
    name: str
    description: str
    short_description: Optional[str] = None
    price: float
    category_id: int
    image_url: Optional[str] = None
    download_url: Optional[str] = None
    file_size: Optional[int] = None
    version: Optional[str] = None
    license_type: Optional[LicenseType] = None
    is_active: bool
    stock_quantity: int
    created_at: datetime
    class Config: from_attributes = True
class ProductPage(BaseModel):
    products: List[ProductRead]
    total: int
    page: int
    limit: int

# --- coupons ---

class CouponCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    minimum_order: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    usage_limit: Optional[int] = Field(default=None, ge=0)
    expires_at: Optional[datetime] = None
class CouponUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    minimum_order: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    usage_limit: Optional[int] = Field(default=None, ge=0)
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None

    @field_validator("code", "discount_type", "discount_value", "is_active")
    @classmethod
    def not_null(cls, value):
        return _reject_null(value)
class CouponRead(BaseModel):
    id: int
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: float
    minimum_order: Optional[float] = None
    usage_limit: Optional[int] = None
    used_count: int
    expires_at: Optional[datetime] = None
    is_active: bool
    created_at: datetime
    class Config: from_attributes = True

class CouponValidateRequest(BaseModel):
    code: str
    order_total: Decimal = Field(ge=0)
class CouponValidationRead(BaseModel):
    is_valid: bool
    coupon: Optional[CouponRead] = None
    discount: Optional[float] = None
    error: Optional[str] = None

class CouponApplyRequest(BaseModel):
    code: str
    order_id: int
class CouponApplyResult(BaseModel):
    success: bool
    discount: Optional[float] = None
    error: Optional[str] = None

# --- orders ---

class OrderItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    # client-side price is informational; checkout always uses the catalog price
    price: Optional[Decimal] = Field(default=None, gt=0)

class OrderCreate(BaseModel):
    user_id: int
    items: List[OrderItemIn] = Field(min_length=1)
    coupon_code: Optional[str] = None

    @field_validator('items')
    @classmethod
    def unique_products(cls, items):
        ids = [it.product_id for it in items]
        if len(ids) != len(set(ids)):
            raise ValueError('each product may appear only once per order')
        return items

class OrderItemRead(BaseModel):
    id: int
    order_id: int
    product_id: int
    quantity: int
    unit_price: float
    total_price: float
    license_key: Optional[str] = None
    download_expires_at: Optional[datetime] = None
    created_at: datetime
    class Config: from_attributes = True

class OrderRead(BaseModel):
    id: int
    user_id: int
    order_number: str
    status: OrderStatus
    subtotal: float
    tax_amount: float
    discount_amount: float
    total_amount: float
    coupon_id: Optional[int] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    class Config: from_attributes = True

class OrderDetail(OrderRead):
    items: List[OrderItemRead] = []

class OrderFilters(BaseModel):
    status: Optional[OrderStatus] = None
    user_id: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

class OrderPage(BaseModel):
    orders: List[OrderRead]
    total: int
    page: int
    limit: int

class OrderStatusUpdate(BaseModel):
    status: OrderStatus

class PaymentRequest(BaseModel):
    payment_method: str = Field(min_length=1)
    payment_reference: str = Field(min_length=1)
class PaymentResult(BaseModel):
    success: bool
    order: Optional[OrderRead] = None
    error: Optional[str] = None

class LicenseKeyResult(BaseModel):
    success: bool

class RefundRequest(BaseModel):
    reason: Optional[str] = None
class RefundResult(BaseModel):
    success: bool
    error: Optional[str] = None

# --- reviews ---

class ReviewCreate(BaseModel):
    product_id: int
    user_id: int
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None

class ReviewModeration(BaseModel):
    is_approved: bool

class ReviewAuthor(BaseModel):
    first_name: str
    last_name: str
    class Config: from_attributes = True

class ReviewProduct(BaseModel):
    name: str
    class Config: from_attributes = True

class ReviewRead(BaseModel):
    id: int
    product_id: int
    user_id: int
    rating: int
    comment: Optional[str] = None
    is_approved: bool
    created_at: datetime
    updated_at: datetime
    user: Optional[ReviewAuthor] = None
    product: Optional[ReviewProduct] = None
    class Config: from_attributes = True

class ReviewStats(BaseModel):
    average_rating: float
    total_reviews: int
    rating_distribution: Dict[int, int]

class ReviewEligibility(BaseModel):
    can_review: bool
    reason: Optional[str] = None

# --- order statistics ---

class OrderStatistics(BaseModel):
    total_orders: int
    pending_orders: int
    completed_orders: int
    total_revenue: float
    monthly_revenue: float

class ProductFilters(BaseModel):
    category_id: Optional[int] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    search: Optional[str] = None
    sort_by: Literal['name', 'price', 'created_at'] = 'created_at'
    sort_order: Literal['asc', 'desc'] = 'desc'
    active_only: bool = False
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
