"""
Request models for the resource handlers.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ScenarioRequest(BaseModel):
    """Optional bottleneck to run before the write is applied."""

    model_config = ConfigDict(populate_by_name=True)

    scenario: Optional[str] = None
    scenario_param: Optional[float] = Field(default=None, alias="scenarioParam")


class UserProfile(BaseModel):
    age: Optional[int] = None
    location: Optional[str] = None
    preferences: Dict[str, Any] = Field(default_factory=dict)


class UserCreate(ScenarioRequest):
    username: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)
    profile: UserProfile = Field(default_factory=UserProfile)


class ProductCreate(ScenarioRequest):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: float = Field(ge=0)
    category: Optional[str] = None
    stock: int = Field(default=0, ge=0)
    tags: List[str] = Field(default_factory=list)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    quantity: int = Field(gt=0)


class ShippingAddress(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    street: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = Field(default=None, alias="zipCode")
    country: Optional[str] = None


class OrderCreate(ScenarioRequest):
    user_id: str = Field(alias="userId")
    items: List[OrderItem] = Field(min_length=1)
    shipping_address: Optional[ShippingAddress] = Field(default=None, alias="shippingAddress")


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
