"""Best-effort batch collection.

The header is committed first, then every item is recharged in its own
ledger unit. A failed item is recorded on its row and the batch moves on;
the header ends up with the succeeded/failed counts.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import LedgerError, ValidationError
from app.models.collection import CollectionItemStatus, MultiCollection, MultiCollectionItem
from app.services.ledger import run_ledger_unit
from app.services.settlement import recharge_customer

logger = logging.getLogger(__name__)


@dataclass
class CollectionItemResult:
    customer_id: int
    amount: int
    months: int
    status: CollectionItemStatus
    error: str | None = None
    recharge_id: int | None = None
    reseller_charged: bool = False


@dataclass
class CollectionResult:
    collection_id: int
    total_amount: int
    total_customers: int
    succeeded_count: int = 0
    failed_count: int = 0
    collected_amount: int = 0
    items: list[CollectionItemResult] = field(default_factory=list)


def _normalize_items(items: Sequence[Mapping[str, Any]]) -> list[dict]:
    if not items:
        raise ValidationError("At least one item is required")
    out = []
    for i, item in enumerate(items):
        try:
            customer_id = int(item["customer_id"])
            amount = int(item["amount"])
            months = int(item.get("months") or 1)
        except (KeyError, TypeError, ValueError):
            raise ValidationError(f"Invalid collection item at position {i}")
        if amount <= 0 or months < 1:
            raise ValidationError(f"Invalid collection item at position {i}")
        out.append({"customer_id": customer_id, "amount": amount, "months": months})
    return out


async def create_multi_collection(
    db: AsyncSession,
    tenant_id: int,
    items: Sequence[Mapping[str, Any]],
    payment_method: str,
    notes: str | None = None,
    collected_by_name: str = "Tenant Admin",
    *,
    idempotency_key: str | None = None,
    created_by: str | None = None,
) -> CollectionResult:
    """Recharge many customers. Commits as it goes; do not wrap in ``run_ledger_unit``."""
    rows = _normalize_items(items)
    payment_method = (payment_method or "").strip()
    if not payment_method:
        raise ValidationError("payment_method is required")

    async def _header(s: AsyncSession) -> int:
        header = MultiCollection(
            tenant_id=tenant_id,
            total_amount=sum(r["amount"] for r in rows),
            total_customers=len(rows),
            payment_method=payment_method,
            notes=notes,
            collected_by_name=collected_by_name,
        )
        s.add(header)
        await s.flush()
        return header.id

    collection_id = await run_ledger_unit(db, _header)
    result = CollectionResult(
        collection_id=collection_id,
        total_amount=sum(r["amount"] for r in rows),
        total_customers=len(rows),
    )

    for i, row in enumerate(rows):
        item_key = f"{idempotency_key}:{i}" if idempotency_key else None

        async def _item(s: AsyncSession, row=row, item_key=item_key):
            rr = await recharge_customer(
                s,
                tenant_id,
                row["customer_id"],
                row["amount"],
                row["months"],
                payment_method,
                notes=notes,
                collected_by_type="multi_collection",
                collected_by_name=collected_by_name,
                idempotency_key=item_key,
                created_by=created_by,
            )
            s.add(
                MultiCollectionItem(
                    multi_collection_id=collection_id,
                    customer_id=row["customer_id"],
                    amount=row["amount"],
                    months=row["months"],
                    status=CollectionItemStatus.completed,
                    recharge_id=rr.recharge_id,
                )
            )
            await s.flush()
            return rr

        try:
            rr = await run_ledger_unit(db, _item)
        except LedgerError as e:
            logger.warning(
                "collection item failed collection_id=%s customer_id=%s code=%s error=%s",
                collection_id, row["customer_id"], e.code, e.message,
            )

            async def _failed(s: AsyncSession, row=row, message=e.message):
                s.add(
                    MultiCollectionItem(
                        multi_collection_id=collection_id,
                        customer_id=row["customer_id"],
                        amount=row["amount"],
                        months=row["months"],
                        status=CollectionItemStatus.failed,
                        error=message[:255],
                    )
                )
                await s.flush()

            await run_ledger_unit(db, _failed)
            result.failed_count += 1
            result.items.append(
                CollectionItemResult(
                    customer_id=row["customer_id"],
                    amount=row["amount"],
                    months=row["months"],
                    status=CollectionItemStatus.failed,
                    error=e.message,
                )
            )
            continue

        result.succeeded_count += 1
        result.collected_amount += row["amount"]
        result.items.append(
            CollectionItemResult(
                customer_id=row["customer_id"],
                amount=row["amount"],
                months=row["months"],
                status=CollectionItemStatus.completed,
                recharge_id=rr.recharge_id,
                reseller_charged=rr.reseller_charged,
            )
        )

    async def _totals(s: AsyncSession) -> None:
        q = await s.execute(select(MultiCollection).where(MultiCollection.id == collection_id))
        header = q.scalar_one()
        header.succeeded_count = result.succeeded_count
        header.failed_count = result.failed_count
        header.collected_amount = result.collected_amount
        await s.flush()

    await run_ledger_unit(db, _totals)
    logger.info(
        "multi collection done id=%s succeeded=%s failed=%s collected=%s",
        collection_id, result.succeeded_count, result.failed_count, result.collected_amount,
    )
    return result
