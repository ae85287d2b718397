"""Balance movements between resellers and between the ISP and a reseller.

Every leg goes through ``ledger.append_entry``. Two-leg moves lock both
reseller rows in ascending id order before touching either balance, so
opposite transfers between the same pair cannot deadlock. An insufficient
source balance is a hard failure; the caller's ledger unit rolls back.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import PermissionDenied, ValidationError
from app.models.ledger import ResellerTransaction, TransactionType
from app.models.reseller import Reseller
from app.services import hierarchy, ledger

logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    amount: int
    from_reseller_id: int
    to_reseller_id: int
    from_balance: int
    to_balance: int
    from_transaction_id: int
    to_transaction_id: int


def _positive_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("amount must be a positive integer")
    return amount


async def _lock_pair(db: AsyncSession, tenant_id: int, a_id: int, b_id: int) -> dict[int, Reseller]:
    locked = {}
    for rid in sorted((a_id, b_id)):
        locked[rid] = await hierarchy.get_reseller(db, tenant_id, rid, for_update=True)
    return locked


async def _move(
    db: AsyncSession,
    tenant_id: int,
    source: Reseller,
    dest: Reseller,
    amount: int,
    *,
    source_type: TransactionType,
    dest_type: TransactionType,
    source_description: str,
    dest_description: str,
    idempotency_key: str | None,
    created_by: str | None,
) -> TransferResult:
    out_tx: ResellerTransaction = await ledger.append_entry(
        db,
        tenant_id=tenant_id,
        reseller_id=source.id,
        type=source_type,
        amount=-amount,
        to_reseller_id=dest.id,
        reference_type="transfer",
        description=source_description[:255],
        idempotency_key=idempotency_key,
        created_by=created_by,
    )
    in_tx: ResellerTransaction = await ledger.append_entry(
        db,
        tenant_id=tenant_id,
        reseller_id=dest.id,
        type=dest_type,
        amount=amount,
        from_reseller_id=source.id,
        reference_id=str(out_tx.id),
        reference_type="transfer",
        description=dest_description[:255],
        idempotency_key=idempotency_key,
        created_by=created_by,
    )
    logger.info(
        "balance moved from=%s to=%s amount=%s from_balance=%s to_balance=%s",
        source.id, dest.id, amount, out_tx.balance_after, in_tx.balance_after,
    )
    return TransferResult(
        amount=amount,
        from_reseller_id=source.id,
        to_reseller_id=dest.id,
        from_balance=out_tx.balance_after,
        to_balance=in_tx.balance_after,
        from_transaction_id=out_tx.id,
        to_transaction_id=in_tx.id,
    )


async def transfer_balance(
    db: AsyncSession,
    tenant_id: int,
    from_id: int,
    to_id: int,
    amount: int,
    description: str | None = None,
    *,
    idempotency_key: str | None = None,
    created_by: str | None = None,
) -> TransferResult:
    """Move ``amount`` between any two active resellers of a tenant. Does not commit."""
    amount = _positive_amount(amount)
    if from_id == to_id:
        raise ValidationError("Cannot transfer to the same reseller")

    locked = await _lock_pair(db, tenant_id, from_id, to_id)
    source, dest = locked[from_id], locked[to_id]
    return await _move(
        db,
        tenant_id,
        source,
        dest,
        amount,
        source_type=TransactionType.transfer_out,
        dest_type=TransactionType.transfer_in,
        source_description=description or f"Balance transfer to {dest.name}",
        dest_description=description or f"Balance received from {source.name}",
        idempotency_key=idempotency_key,
        created_by=created_by,
    )


async def _direct_child(db: AsyncSession, tenant_id: int, parent_id: int, child_id: int) -> tuple[Reseller, Reseller]:
    if parent_id == child_id:
        raise ValidationError("Cannot transfer to the same reseller")
    locked = await _lock_pair(db, tenant_id, parent_id, child_id)
    parent, child = locked[parent_id], locked[child_id]
    if child.parent_id != parent.id:
        raise PermissionDenied("Sub-reseller not found or not authorized")
    return parent, child


async def fund_sub_reseller(
    db: AsyncSession,
    tenant_id: int,
    parent_id: int,
    child_id: int,
    amount: int,
    description: str | None = None,
    *,
    idempotency_key: str | None = None,
) -> TransferResult:
    amount = _positive_amount(amount)
    parent, child = await _direct_child(db, tenant_id, parent_id, child_id)
    if not parent.can_transfer_balance:
        raise PermissionDenied("You do not have permission to transfer balance")
    return await _move(
        db,
        tenant_id,
        parent,
        child,
        amount,
        source_type=TransactionType.transfer_out,
        dest_type=TransactionType.transfer_in,
        source_description=description or f"Balance transfer to {child.name}",
        dest_description=description or f"Balance received from {parent.name}",
        idempotency_key=idempotency_key,
        created_by=f"reseller:{parent.id}",
    )


async def deduct_sub_reseller(
    db: AsyncSession,
    tenant_id: int,
    parent_id: int,
    child_id: int,
    amount: int,
    description: str | None = None,
    *,
    idempotency_key: str | None = None,
) -> TransferResult:
    """Pull balance back from a direct child: ``deduction`` on the child, ``transfer_in`` on the parent."""
    amount = _positive_amount(amount)
    parent, child = await _direct_child(db, tenant_id, parent_id, child_id)
    return await _move(
        db,
        tenant_id,
        child,
        parent,
        amount,
        source_type=TransactionType.deduction,
        dest_type=TransactionType.transfer_in,
        source_description=description or f"Balance deducted by {parent.name}",
        dest_description=description or f"Balance deducted from {child.name}",
        idempotency_key=idempotency_key,
        created_by=f"reseller:{parent.id}",
    )


async def deposit_to_parent(
    db: AsyncSession,
    tenant_id: int,
    child_id: int,
    amount: int,
    description: str | None = None,
    *,
    idempotency_key: str | None = None,
) -> TransferResult:
    amount = _positive_amount(amount)
    child = await hierarchy.get_reseller(db, tenant_id, child_id)
    if child.parent_id is None:
        raise ValidationError("Top-level resellers have no parent to deposit to")
    parent, child = await _direct_child(db, tenant_id, child.parent_id, child_id)
    return await _move(
        db,
        tenant_id,
        child,
        parent,
        amount,
        source_type=TransactionType.transfer_out,
        dest_type=TransactionType.transfer_in,
        source_description=description or f"Deposit to {parent.name}",
        dest_description=description or f"Deposit from {child.name}",
        idempotency_key=idempotency_key,
        created_by=f"reseller:{child.id}",
    )


async def credit_reseller(
    db: AsyncSession,
    tenant_id: int,
    reseller_id: int,
    amount: int,
    description: str | None = None,
    *,
    idempotency_key: str | None = None,
    created_by: str | None = None,
) -> ResellerTransaction:
    """ISP tops up a reseller wallet."""
    amount = _positive_amount(amount)
    return await ledger.append_entry(
        db,
        tenant_id=tenant_id,
        reseller_id=reseller_id,
        type=TransactionType.recharge,
        amount=amount,
        reference_type="admin",
        description=(description or "Balance recharge")[:255],
        idempotency_key=idempotency_key,
        created_by=created_by,
    )


async def debit_reseller(
    db: AsyncSession,
    tenant_id: int,
    reseller_id: int,
    amount: int,
    description: str | None = None,
    *,
    idempotency_key: str | None = None,
    created_by: str | None = None,
) -> ResellerTransaction:
    """ISP withdraws from a reseller wallet; InsufficientBalance if it would go negative."""
    amount = _positive_amount(amount)
    return await ledger.append_entry(
        db,
        tenant_id=tenant_id,
        reseller_id=reseller_id,
        type=TransactionType.withdrawal,
        amount=-amount,
        reference_type="admin",
        description=(description or "Balance withdrawal")[:255],
        idempotency_key=idempotency_key,
        created_by=created_by,
    )
