from __future__ import annotations

import enum

from sqlalchemy import BigInteger, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db import Base
from app.models.common import TimestampMixin


class CollectionItemStatus(str, enum.Enum):
    completed = "completed"
    failed = "failed"


class MultiCollection(Base, TimestampMixin):
    __tablename__ = "multi_collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)

    # requested totals; succeeded/failed are filled in after the items run
    total_amount: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_customers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    succeeded_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    collected_amount: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(255), nullable=True)
    collected_by_name: Mapped[str | None] = mapped_column(String(128), nullable=True)


class MultiCollectionItem(Base, TimestampMixin):
    __tablename__ = "multi_collection_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    multi_collection_id: Mapped[int] = mapped_column(Integer, ForeignKey("multi_collections.id"), index=True, nullable=False)
    customer_id: Mapped[int] = mapped_column(Integer, nullable=False)

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    months: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[CollectionItemStatus] = mapped_column(Enum(CollectionItemStatus), nullable=False)
    error: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recharge_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("customer_recharges.id"), nullable=True)
