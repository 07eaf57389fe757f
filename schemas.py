"""
Database Schemas for the PhoneMart marketplace

Each Pydantic model corresponds to one MongoDB collection.
Collection name is the lowercase of the class name.
Embedded and request-only models live alongside them.
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Role = Literal["user", "admin"]
Condition = Literal["new", "like-new", "good", "fair", "poor"]
Storage = Literal["32GB", "64GB", "128GB", "256GB", "512GB", "1TB"]
PaymentMethod = Literal["cod", "gateway"]
PaymentStatus = Literal["pending", "paid"]
OrderStatusValue = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "returned"]
SortKey = Literal["newest", "price_asc", "price_desc", "rating"]


class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1, le=10)


class User(BaseModel):
    name: str = Field(..., min_length=2, max_length=50, description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password")
    phone: Optional[str] = None
    role: Role = "user"
    is_active: bool = True
    cart: List[CartItem] = []
    wishlist: List[str] = []


class Product(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    brand: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    description: str = Field(..., min_length=10, max_length=1000)
    price: float = Field(..., ge=0)
    original_price: float = Field(0, ge=0, description="Shown struck through for discounts")
    category: str = Field(..., description="Category id")
    condition: Condition
    storage: Storage
    color: str = Field(..., min_length=1)
    images: List[str] = Field(..., min_length=1)
    specifications: Dict[str, str] = {}
    issues: List[str] = []
    warranty: str = "No warranty"
    seller_id: Optional[str] = Field(None, description="Absent for admin-created listings")
    is_approved: bool = False
    is_active: bool = True
    is_featured: bool = False
    stock: int = Field(1, ge=0)
    sold_count: int = 0
    rating: float = Field(0, ge=0, le=5)
    review_count: int = 0
    tags: List[str] = []


class ProductCreate(BaseModel):
    """Fields a caller may supply when listing a phone."""
    name: str = Field(..., min_length=2, max_length=100)
    brand: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    description: str = Field(..., min_length=10, max_length=1000)
    price: float = Field(..., ge=0)
    original_price: float = Field(0, ge=0)
    category: str
    condition: Condition
    storage: Storage
    color: str = Field(..., min_length=1)
    images: List[str] = Field(..., min_length=1)
    specifications: Dict[str, str] = {}
    issues: List[str] = []
    warranty: str = "No warranty"
    is_featured: bool = False
    stock: int = Field(1, ge=0)
    tags: List[str] = []


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    brand: Optional[str] = Field(None, min_length=1)
    model: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=10, max_length=1000)
    price: Optional[float] = Field(None, ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    condition: Optional[Condition] = None
    storage: Optional[Storage] = None
    color: Optional[str] = Field(None, min_length=1)
    images: Optional[List[str]] = Field(None, min_length=1)
    specifications: Optional[Dict[str, str]] = None
    issues: Optional[List[str]] = None
    warranty: Optional[str] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    stock: Optional[int] = Field(None, ge=0)


class ProductFilter(BaseModel):
    search: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    condition: Optional[Condition] = None
    storage: Optional[Storage] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)


class Category(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    image: str = ""
    parent_id: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0
    product_count: int = 0


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    image: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class ShippingAddress(BaseModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., pattern=r"^\+?[0-9][0-9 \-]{6,14}[0-9]$")
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)


class LineItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class OrderItem(BaseModel):
    product_id: str
    name: str
    price: float
    quantity: int
    image: Optional[str] = None


class Order(BaseModel):
    user_id: str
    order_number: str
    items: List[OrderItem]
    subtotal: float
    tax: float
    shipping: float
    total_amount: float
    shipping_address: ShippingAddress
    payment_method: PaymentMethod = "cod"
    payment_status: PaymentStatus = "pending"
    payment_reference: Optional[str] = None
    order_status: OrderStatusValue = "pending"
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    notes: Optional[str] = None


class ListingRejection(BaseModel):
    product_id: str
    seller_id: Optional[str] = None
    reason: str
    rejected_by: str
    listing: dict = {}


class PaymentEvent(BaseModel):
    payment_id: str
    order_number: str
    event: str
