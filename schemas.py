"""
Database Schemas for the SnapShop API

Each Pydantic model maps to a MongoDB collection (lowercased class name).

Collections:
- user
- product
- order
- coupon
- cart
- wishlist
- notification
- settings
- counter (order numbers, managed by database.next_sequence)

Request bodies used by the routes live at the bottom of this module.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


Category = Literal["electronics", "clothing", "home", "sports", "books", "beauty", "other"]
DiscountType = Literal["percentage", "fixed"]
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentMethod = Literal["credit_card", "paypal", "cash_on_delivery"]
PaymentStatus = Literal["pending", "completed", "failed", "refunded"]
CurrencyCode = Literal["USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY", "INR", "PKR"]


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    Admins and customers share this collection; ``role`` tells them apart.
    """
    name: str = Field(..., min_length=2, description="Full name")
    email: EmailStr = Field(..., description="Lowercased email address")
    password_hash: str = Field(..., description="BCrypt password hash")
    role: Literal["admin", "customer"] = "customer"
    is_active: bool = True
    phone: Optional[str] = None
    address: Optional[Address] = None
    last_login: Optional[datetime] = None


class ProductDiscount(BaseModel):
    type: DiscountType
    value: float = Field(..., gt=0)
    max_discount: Optional[float] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    title: str = Field(..., min_length=1, description="Product title")
    description: str = Field(..., description="Product description")
    price: float = Field(..., ge=0, description="Base price in the store currency")
    category: Category
    stock: int = Field(0, ge=0, description="Units in stock")
    image_url: str = ""
    tags: List[str] = Field(default_factory=list)
    discount: Optional[ProductDiscount] = None
    is_active: bool = True
    created_by: Optional[str] = None


class OrderItem(BaseModel):
    product_id: str
    title: str
    price: float = Field(..., ge=0, description="Final unit price at purchase time")
    original_price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    image_url: Optional[str] = None


class CustomerInfo(BaseModel):
    name: str
    email: EmailStr
    phone: str
    address: Address


class AppliedCoupon(BaseModel):
    code: str
    type: DiscountType
    discount: float
    applied_discount: float


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    Line items and customer info are frozen copies taken at purchase time.
    """
    order_number: int
    user_id: str
    products: List[OrderItem]
    subtotal: float = Field(..., ge=0)
    discount: float = Field(0, ge=0)
    total_price: float = Field(..., ge=0)
    coupon: Optional[AppliedCoupon] = None
    status: OrderStatus = "pending"
    customer_info: CustomerInfo
    payment_method: PaymentMethod = "credit_card"
    payment_status: PaymentStatus = "pending"


class Coupon(BaseModel):
    """
    Coupons collection schema
    Collection name: "coupon"
    """
    code: str
    discount: float = Field(..., gt=0)
    type: DiscountType
    min_amount: float = Field(0, ge=0)
    max_discount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    used_count: int = Field(0, ge=0)
    expiry_date: Optional[datetime] = None
    is_active: bool = True


class CartItem(BaseModel):
    user_id: str
    product_id: str
    quantity: int = Field(1, ge=1)


class WishlistItem(BaseModel):
    user_id: str
    product_id: str


class Notification(BaseModel):
    message: str
    type: Literal["info", "warning", "success", "error", "sale", "order"] = "info"
    related_id: Optional[str] = None
    related_model: Optional[Literal["Product", "Order", "User"]] = None
    is_read: bool = False


# ----------------------- Request bodies -----------------------

class SignupRequest(BaseModel):
    name: str
    email: EmailStr
    password: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class VerifyCodeRequest(BaseModel):
    email: EmailStr
    code: str


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    reset_token: str
    new_password: str


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str


class ProductCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: str
    price: float = Field(..., ge=0)
    category: Category
    stock: int = Field(0, ge=0)
    image_url: str = ""
    tags: List[str] = Field(default_factory=list)
    discount: Optional[ProductDiscount] = None
    is_active: bool = True


class ProductUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[Category] = None
    stock: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None
    discount: Optional[ProductDiscount] = None
    remove_discount: bool = False


class SaleRequest(BaseModel):
    discount_percent: float = Field(..., gt=0, le=100)
    max_discount: Optional[float] = Field(None, ge=0)
    sale_start: Optional[datetime] = None
    sale_end: Optional[datetime] = None


class OrderStatusRequest(BaseModel):
    status: OrderStatus


class PurchaseLine(BaseModel):
    product_id: str
    qty: int = Field(..., ge=1)


class CouponCode(BaseModel):
    code: str


class CheckoutAddress(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    # the storefront sends zipCode
    zip_code: Optional[str] = Field(None, alias="zipCode")
    country: Optional[str] = None


class CheckoutCustomer(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    address: CheckoutAddress


class PurchaseRequest(BaseModel):
    products: List[PurchaseLine] = Field(default_factory=list)
    customer_info: Optional[CheckoutCustomer] = None
    coupon: Optional[CouponCode] = None
    payment_method: PaymentMethod = "credit_card"


class CartQuantityRequest(BaseModel):
    quantity: int = Field(1, ge=1)


class CouponRequest(BaseModel):
    code: str = Field(..., min_length=1)
    discount: float = Field(..., gt=0)
    type: DiscountType
    min_amount: Optional[float] = Field(None, ge=0)
    max_discount: Optional[float] = Field(None, ge=0)
    usage_limit: Optional[int] = Field(None, ge=1)
    expiry_date: Optional[datetime] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        code = v.strip().upper()
        if not code:
            raise ValueError("Coupon code is required")
        return code


class SettingsUpdateRequest(BaseModel):
    store_name: str = Field(..., min_length=1)
    store_description: Optional[str] = None
    currency: CurrencyCode
    tax_rate: float = Field(..., ge=0, le=100)
    shipping_fee: float = Field(..., ge=0)
    free_shipping_threshold: float = Field(..., ge=0)
