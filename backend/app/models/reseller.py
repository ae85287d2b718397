from __future__ import annotations

import enum
from decimal import Decimal

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Enum, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db import Base
from app.models.common import TimestampMixin


class ResellerRole(str, enum.Enum):
    reseller = "reseller"
    sub_reseller = "sub_reseller"
    sub_sub_reseller = "sub_sub_reseller"


class CommissionType(str, enum.Enum):
    percentage = "percentage"
    flat = "flat"


class RateType(str, enum.Enum):
    discount = "discount"      # reseller pays price minus commission
    full_price = "full_price"  # reseller pays full price, commission tracked only


class Reseller(Base, TimestampMixin):
    __tablename__ = "resellers"
    __table_args__ = (
        UniqueConstraint("tenant_id", "username", name="uq_reseller_tenant_username"),
        CheckConstraint("balance >= 0", name="ck_reseller_balance_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)

    parent_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("resellers.id"), index=True, nullable=True)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    role: Mapped[ResellerRole] = mapped_column(Enum(ResellerRole), default=ResellerRole.reseller, nullable=False)

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Minor currency units. Written only by app.services.ledger.
    balance: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    # Ledger sequence: bumped together with balance on every ledger entry.
    version: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_collections: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    commission_type: Mapped[CommissionType] = mapped_column(
        Enum(CommissionType), default=CommissionType.percentage, nullable=False
    )
    commission_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    rate_type: Mapped[RateType] = mapped_column(Enum(RateType), default=RateType.discount, nullable=False)
    customer_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)  # legacy flat fallback

    can_create_sub_reseller: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_add_customers: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_edit_customers: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_delete_customers: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_recharge_customers: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_view_sub_customers: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_transfer_balance: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # None = unlimited
    max_sub_resellers: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_customers: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
