from sqlalchemy import BigInteger, Boolean, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from app.core.db import Base
from app.models.common import TimestampMixin
import enum

class RechargeStatus(str, enum.Enum):
    completed = "completed"
    failed = "failed"

class CustomerRecharge(Base, TimestampMixin):
    """Customer billing history entry; independent of the reseller ledger."""

    __tablename__ = "customer_recharges"
    __table_args__ = (UniqueConstraint("tenant_id", "idempotency_key", name="uq_recharge_idempotency"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("customers.id"), index=True, nullable=False)
    reseller_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("resellers.id"), index=True, nullable=True)

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    months: Mapped[int] = mapped_column(Integer, nullable=False)
    discount: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)

    old_expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    new_expiry: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[RechargeStatus] = mapped_column(Enum(RechargeStatus), default=RechargeStatus.completed, nullable=False)

    collected_by_type: Mapped[str] = mapped_column(String(32), nullable=False)
    collected_by_name: Mapped[str] = mapped_column(String(128), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # reseller settlement snapshot
    commission: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    reseller_charged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)

class CustomerPayment(Base, TimestampMixin):
    __tablename__ = "customer_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("customers.id"), index=True, nullable=False)

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(255), nullable=True)
