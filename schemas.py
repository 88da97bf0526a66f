"""
Database Schemas for the Canteen Ordering System

Each record model below corresponds to one collection in the record store
(User -> "users", Shop -> "shops", Item -> "items", Order -> "orders").
Request models accept the camelCase field names the UI sends as well as the
snake_case names.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

TIME_PATTERN = r"^([01]\d|2[0-3]):([0-5]\d)$"
DEFAULT_IMAGE = "https://via.placeholder.com/150"


class Role(str, Enum):
    USER = "USER"
    SHOP_ADMIN = "SHOP_ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class OrderType(str, Enum):
    DINE_IN = "DINE_IN"
    DELIVERY = "DELIVERY"


class OrderStatus(str, Enum):
    PLACED = "PLACED"
    PREPARING = "PREPARING"
    READY = "READY"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


TERMINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.COMPLETED, OrderStatus.REJECTED)


class PaymentStatus(str, Enum):
    NOT_REQUIRED = "NOT_REQUIRED"
    SIMULATED_PAID = "SIMULATED_PAID"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


# ===================== Records =====================
class User(BaseModel):
    id: str
    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Unique email address")
    password: Optional[str] = Field(None, description="BCrypt hash, absent for provider accounts")
    role: Role = Role.USER
    created_at: str


class Shop(BaseModel):
    id: str
    name: str = Field(..., min_length=2, max_length=100)
    admin_id: Optional[str] = Field(None, description="Owning shop admin user id")
    is_open: bool = True
    opening_time: str = Field(..., pattern=TIME_PATTERN)
    closing_time: str = Field(..., pattern=TIME_PATTERN)
    image: str = DEFAULT_IMAGE


class Item(BaseModel):
    id: str
    shop_id: str
    name: str = Field(..., min_length=2, max_length=100)
    category: str = Field(..., min_length=2, max_length=50)
    price: float = Field(..., gt=0)
    is_veg: bool = False
    quantity: int = Field(..., ge=0, description="Units in stock")
    is_available: bool
    image: str = DEFAULT_IMAGE
    created_at: str


class OrderLine(BaseModel):
    item_id: str
    name: str = Field(..., description="Item name snapshot")
    price: float = Field(..., description="Unit price snapshot")
    quantity: int = Field(..., ge=1)


class Order(BaseModel):
    id: str
    token_number: str
    user_id: str
    user_name: str
    shop_id: str
    shop_name: str
    order_type: OrderType
    delivery_slot: Optional[str] = None
    delivery_address: Optional[str] = None
    items: List[OrderLine]
    total_amount: float
    status: OrderStatus = OrderStatus.PLACED
    payment_status: PaymentStatus
    rejection_reason: Optional[str] = None
    created_at: str
    updated_at: str


# ===================== Requests =====================
class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(RequestModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginRequest(RequestModel):
    email: EmailStr
    password: str


class OrderLineRequest(RequestModel):
    item_id: str
    quantity: int = Field(..., ge=1)


class PlaceOrderRequest(RequestModel):
    shop_id: str
    items: List[OrderLineRequest] = Field(..., min_length=1)
    order_type: OrderType
    delivery_slot: Optional[str] = None
    delivery_address: Optional[str] = None


class OrderStatusRequest(RequestModel):
    status: str


class RejectOrderRequest(RequestModel):
    reason: str = ""


class CreateShopRequest(RequestModel):
    name: str = Field(..., min_length=2, max_length=100)
    admin_email: EmailStr
    opening_time: str = Field(..., pattern=TIME_PATTERN)
    closing_time: str = Field(..., pattern=TIME_PATTERN)
    image: Optional[str] = None


class UpdateShopRequest(RequestModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    opening_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    closing_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    image: Optional[str] = None


class ShopStatusRequest(RequestModel):
    is_open: bool


class RoleChangeRequest(RequestModel):
    role: str
    shop_id: Optional[str] = None


class CreateItemRequest(RequestModel):
    name: str = Field(..., min_length=2, max_length=100)
    category: str = Field(..., min_length=2, max_length=50)
    price: float = Field(..., gt=0)
    quantity: int = Field(..., ge=0)
    is_veg: bool = False
    image: Optional[str] = None
    shop_id: Optional[str] = None


class UpdateItemRequest(RequestModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    category: Optional[str] = Field(None, min_length=2, max_length=50)
    price: Optional[float] = Field(None, gt=0)
    quantity: Optional[int] = Field(None, ge=0)
    is_veg: Optional[bool] = None
    is_available: Optional[bool] = None
    image: Optional[str] = None

