from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Text, Numeric, Integer, DateTime, func, Index
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    photo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    role: Mapped[str] = mapped_column(String(50), default="user", nullable=False)
    # Only decorators carry a status: pending | approved | rejected | disabled
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


Index("ix_users_role_status", User.role, User.status)


class Service(Base):
    __tablename__ = "services"

    id: Mapped[int] = mapped_column(primary_key=True)

    service_name: Mapped[str] = mapped_column(String(200), index=True)
    category: Mapped[str] = mapped_column(String(100), index=True)

    # money => NUMERIC, not FLOAT
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    unit: Mapped[str | None] = mapped_column(String(50), nullable=True)

    description: Mapped[str] = mapped_column(Text, default="")
    image: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_by_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    tracking_id: Mapped[str] = mapped_column(String(32), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True)

    service_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    service_name: Mapped[str] = mapped_column(String(200))
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))

    user_email: Mapped[str] = mapped_column(String(255), index=True)
    user_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    tracking_id: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    delivery_status: Mapped[str] = mapped_column(String(50), default="assigned", index=True)
    payment_status: Mapped[str] = mapped_column(String(50), default="unpaid")  # unpaid | paid

    decorator_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    decorator_email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    decorator_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ratings: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)

    # External payment reference; the one settlement key
    transaction_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    booking_id: Mapped[int] = mapped_column(Integer, index=True)
    tracking_id: Mapped[str] = mapped_column(String(32))
    service_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    currency: Mapped[str] = mapped_column(String(10), default="usd")
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    payment_status: Mapped[str] = mapped_column(String(50))
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
