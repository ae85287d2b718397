from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Enum, ForeignKey, Index, Integer, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db import Base


class TransactionType(str, enum.Enum):
    recharge = "recharge"
    deduction = "deduction"
    commission = "commission"
    refund = "refund"
    transfer_in = "transfer_in"
    transfer_out = "transfer_out"
    customer_payment = "customer_payment"
    deposit = "deposit"
    withdrawal = "withdrawal"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResellerTransaction(Base):
    """Append-only ledger row. One row per balance mutation."""

    __tablename__ = "reseller_transactions"
    __table_args__ = (
        UniqueConstraint("reseller_id", "sequence", name="uq_reseller_tx_sequence"),
        UniqueConstraint("reseller_id", "idempotency_key", name="uq_reseller_tx_idempotency"),
        Index("ix_reseller_tx_reseller_created", "reseller_id", "created_at"),
        CheckConstraint("balance_after = balance_before + amount", name="ck_reseller_tx_arithmetic"),
        CheckConstraint("amount <> 0", name="ck_reseller_tx_amount_non_zero"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    reseller_id: Mapped[int] = mapped_column(Integer, ForeignKey("resellers.id"), index=True, nullable=False)

    type: Mapped[TransactionType] = mapped_column(Enum(TransactionType), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)  # positive = credit, negative = debit
    balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reference_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    customer_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("customers.id"), index=True, nullable=True)
    from_reseller_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("resellers.id"), nullable=True)
    to_reseller_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("resellers.id"), nullable=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


class LedgerImmutableError(RuntimeError):
    pass


@event.listens_for(ResellerTransaction, "before_update")
def _refuse_update(mapper, connection, target):
    raise LedgerImmutableError(f"ledger row {target.id} is immutable")


@event.listens_for(ResellerTransaction, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise LedgerImmutableError(f"ledger row {target.id} cannot be deleted")
