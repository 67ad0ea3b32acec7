from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, ConfigDict
from pydantic.alias_generators import to_camel

Role = Literal["user", "decorator", "admin"]


class CamelModel(BaseModel):
    # JSON on the wire is camelCase; python attributes stay snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- users ---

class UserIn(CamelModel):
    email: EmailStr
    name: str | None = None
    photo_url: str | None = None
    role: Role = "user"
    status: str | None = None


class UserUpdate(CamelModel):
    name: str | None = None
    photo_url: str | None = None
    role: Role | None = None
    status: str | None = None


class RoleUpdate(CamelModel):
    role: Role | None = None


class StatusUpdate(CamelModel):
    status: str | None = None


class RoleOut(CamelModel):
    role: str


class UserOut(CamelModel):
    id: int
    email: str
    name: str | None = None
    photo_url: str | None = None
    role: str
    status: str | None = None
    created_at: datetime | None = None


# --- catalog ---

class ServiceIn(CamelModel):
    service_name: str = Field(min_length=1, max_length=200)
    category: str = Field(min_length=1, max_length=100)
    cost: float = Field(ge=0)
    unit: str | None = None
    description: str = ""
    image: str | None = None
    created_by_email: EmailStr | None = None


class ServiceUpdate(CamelModel):
    service_name: str | None = Field(default=None, min_length=1, max_length=200)
    category: str | None = Field(default=None, min_length=1, max_length=100)
    cost: float | None = Field(default=None, ge=0)
    unit: str | None = None
    description: str | None = None
    image: str | None = None


class ServiceOut(CamelModel):
    id: int
    service_name: str
    category: str
    cost: float
    unit: str | None = None
    description: str = ""
    image: str | None = None
    created_by_email: str | None = None
    tracking_id: str
    created_at: datetime | None = None


# --- bookings ---

class BookingIn(CamelModel):
    service_id: int | None = None
    service_name: str = Field(min_length=1, max_length=200)
    category: str | None = None
    cost: float = Field(ge=0)
    user_email: EmailStr
    user_name: str | None = None
    location: str | None = None
    date: datetime | None = None


class BookingUpdate(CamelModel):
    service_name: str | None = Field(default=None, min_length=1, max_length=200)
    category: str | None = None
    cost: float | None = Field(default=None, ge=0)
    user_name: str | None = None
    location: str | None = None
    date: datetime | None = None
    delivery_status: str | None = None


class DecoratorAssign(CamelModel):
    decorator_name: str = Field(min_length=1)
    decorator_email: EmailStr
    decorator_status: str | None = None


class DeliveryStatusUpdate(CamelModel):
    delivery_status: str | None = None


class BookingOut(CamelModel):
    id: int
    service_id: int | None = None
    service_name: str
    category: str | None = None
    cost: float
    user_email: str
    user_name: str | None = None
    location: str | None = None
    date: datetime
    tracking_id: str
    delivery_status: str
    payment_status: str | None = None
    decorator_name: str | None = None
    decorator_email: str | None = None
    decorator_status: str | None = None
    assigned_at: datetime | None = None
    ratings: int | None = None
    created_at: datetime | None = None


# --- payments ---

class CheckoutSessionIn(CamelModel):
    booking_id: int
    tracking_id: str | None = None
    cost: float | None = Field(default=None, gt=0)
    customer_email: EmailStr
    service_name: str = Field(min_length=1)


class CheckoutSessionOut(CamelModel):
    url: str


class PaymentOut(CamelModel):
    id: int
    transaction_id: str
    booking_id: int
    tracking_id: str
    service_name: str | None = None
    amount: float
    currency: str
    customer_email: str | None = None
    payment_status: str
    paid_at: datetime


class SettlementOut(CamelModel):
    success: bool
    duplicate: bool = False
    needs_review: bool = False
    message: str
    booking: BookingOut | None = None
    payment: PaymentOut | None = None
    tracking_id: str | None = None
    transaction_id: str | None = None
