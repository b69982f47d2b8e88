"""
Database Schemas for the storefront

Each Pydantic model corresponds to a MongoDB collection. The collection name is
the snake_case form of the class name.

Example: class CartProduct -> collection "cart_product"
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Size(str, Enum):
    XS = "xs"
    SM = "sm"
    MD = "md"
    LG = "lg"
    XL = "xl"
    XXL = "xxl"


SIZES = [s.value for s in Size]


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class OrderStatus(str, Enum):
    REVIEWING = "REVIEWING"
    SHIPPING = "SHIPPING"
    RECEIVED = "RECEIVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    RETURN = "RETURN"
    REFUND = "REFUND"


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, use_enum_values=True, validate_default=True)


# Core domain models

class Image(BaseModel):
    url: str
    public_id: str


class User(Document):
    google_id: Optional[str] = None
    email: EmailStr
    display_name: str
    first_name: str = ""
    last_name: str = ""
    username: Optional[str] = None
    image: Optional[str] = None
    role: Role = Role.USER
    is_banned: bool = False


class Product(Document):
    name: str
    description: str
    price: float = Field(..., ge=0)
    images: List[Image] = Field(default_factory=list)
    active: bool = True
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None


class Stocks(Document):
    product_id: ObjectId
    xs: int = Field(0, ge=0)
    sm: int = Field(0, ge=0)
    md: int = Field(0, ge=0)
    lg: int = Field(0, ge=0)
    xl: int = Field(0, ge=0)
    xxl: int = Field(0, ge=0)


class Category(Document):
    name: str
    description: Optional[str] = None
    show_in_menu: bool = False


class CategoryProduct(Document):
    category_id: ObjectId
    product_id: ObjectId


class CartProduct(Document):
    user_id: ObjectId
    product_id: ObjectId
    size: Size
    quantity: int = Field(1, ge=1)


class Address(Document):
    user_id: ObjectId
    first_name: str
    last_name: str
    region: str
    province: str
    city: str
    address: str
    postal_code: str
    address_label: str
    phone_number: str
    is_default: bool = False


class OrderAddress(BaseModel):
    first_name: str
    last_name: str
    region: str
    province: str
    city: str
    address: str
    postal_code: str
    address_label: str
    phone_number: str


class OrderTimestamps(BaseModel):
    reviewed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None


class Order(Document):
    user_id: ObjectId
    address: OrderAddress
    status: OrderStatus = OrderStatus.REVIEWING
    timestamps: OrderTimestamps = Field(default_factory=OrderTimestamps)
    shipping_fee: float = 0
    is_rated: bool = False


class OrderProduct(Document):
    order_id: ObjectId
    product_id: ObjectId
    name: str
    description: str
    price: float
    quantity: int = Field(..., ge=1)
    size: Size


class Rating(Document):
    user_id: ObjectId
    order_product_id: ObjectId
    product_id: ObjectId
    stars: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class HomeCarousel(Document):
    images: List[Image] = Field(default_factory=list)
