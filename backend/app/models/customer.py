from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db import Base
from app.models.common import TimestampMixin


class CustomerStatus(str, enum.Enum):
    active = "active"
    expired = "expired"
    suspended = "suspended"
    pending = "pending"
    cancelled = "cancelled"


class IspPackage(Base, TimestampMixin):
    __tablename__ = "isp_packages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    price: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)  # per validity period
    validity_days: Mapped[int] = mapped_column(Integer, default=30, nullable=False)


class Customer(Base, TimestampMixin):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    # walk-in customers have no reseller
    reseller_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("resellers.id"), index=True, nullable=True)
    package_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("isp_packages.id"), nullable=True)

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_code: Mapped[str | None] = mapped_column(String(32), nullable=True)

    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    monthly_bill: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    due_amount: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    status: Mapped[CustomerStatus] = mapped_column(Enum(CustomerStatus), default=CustomerStatus.pending, nullable=False)
