from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Optional

from app.core.db import get_db
from app.api.deps import Principal, idempotency_key, require_admin, require_operator
from app.models.ledger import TransactionType
from app.models.reseller import Reseller
from app.schemas.ledger import AmountRequest, TransactionList, TransactionOut, tx_to_out
from app.schemas.reseller import (
    CreateResellerRequest,
    ResellerList,
    ResellerOut,
    UpdateResellerRequest,
    reseller_to_out,
)
from app.services import hierarchy, ledger, transfer
from app.services.hierarchy import LIMIT_FIELDS
from app.services.ledger import run_ledger_unit

router = APIRouter()


@router.get("", response_model=ResellerList)
async def list_resellers(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_operator),
    parent_id: Optional[int] = Query(None),
    include_inactive: bool = Query(False),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=1000),
):
    base = select(Reseller).where(Reseller.tenant_id == principal.tenant_id)
    if parent_id is not None:
        base = base.where(Reseller.parent_id == parent_id)
    if not include_inactive:
        base = base.where(Reseller.is_active.is_(True))
    total_q = await db.execute(select(func.count()).select_from(base.subquery()))
    total = int(total_q.scalar_one())
    q = await db.execute(base.order_by(Reseller.id.desc()).limit(limit).offset(offset))
    rows = q.scalars().all()
    return ResellerList(items=[reseller_to_out(r) for r in rows], total=total)


@router.get("/{reseller_id}", response_model=ResellerOut)
async def get_reseller(reseller_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(require_operator)):
    r = await hierarchy.get_reseller(db, principal.tenant_id, reseller_id, active_only=False)
    return reseller_to_out(r)


@router.post("", response_model=ResellerOut)
async def create_reseller(
    payload: CreateResellerRequest,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    data = payload.model_dump(exclude_none=True)
    r = await run_ledger_unit(
        db, lambda s: hierarchy.create_reseller(s, admin.tenant_id, data, created_by=admin.actor)
    )
    return reseller_to_out(r)


@router.patch("/{reseller_id}", response_model=ResellerOut)
async def update_reseller(
    reseller_id: int,
    payload: UpdateResellerRequest,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    # an explicit null clears a limit (unlimited); elsewhere null means "leave as is"
    patch = {
        k: v for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k in LIMIT_FIELDS
    }
    r = await run_ledger_unit(db, lambda s: hierarchy.update_reseller(s, admin.tenant_id, reseller_id, patch))
    return reseller_to_out(r)


@router.delete("/{reseller_id}", response_model=ResellerOut)
async def deactivate_reseller(reseller_id: int, db: AsyncSession = Depends(get_db), admin: Principal = Depends(require_admin)):
    r = await run_ledger_unit(db, lambda s: hierarchy.deactivate_reseller(s, admin.tenant_id, reseller_id))
    return reseller_to_out(r)


@router.get("/{reseller_id}/sub-resellers", response_model=ResellerList)
async def sub_resellers(reseller_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(require_operator)):
    rows = await hierarchy.get_sub_resellers(db, principal.tenant_id, reseller_id)
    return ResellerList(items=[reseller_to_out(r) for r in rows], total=len(rows))


@router.get("/{reseller_id}/descendants", response_model=ResellerList)
async def descendants(reseller_id: int, db: AsyncSession = Depends(get_db), principal: Principal = Depends(require_operator)):
    rows = await hierarchy.get_descendants(db, principal.tenant_id, reseller_id)
    return ResellerList(items=[reseller_to_out(r) for r in rows], total=len(rows))


@router.get("/{reseller_id}/transactions", response_model=TransactionList)
async def transactions(
    reseller_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_operator),
    type: Optional[TransactionType] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(200, ge=1, le=1000),
):
    items, total = await ledger.get_transactions(
        db, principal.tenant_id, reseller_id, limit=limit, offset=offset, type=type
    )
    return TransactionList(items=[tx_to_out(t) for t in items], total=total)


@router.post("/{reseller_id}/credit", response_model=TransactionOut)
async def credit(
    reseller_id: int,
    payload: AmountRequest,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
    key: Optional[str] = Depends(idempotency_key),
):
    tx = await run_ledger_unit(
        db,
        lambda s: transfer.credit_reseller(
            s, admin.tenant_id, reseller_id, payload.amount, payload.description,
            idempotency_key=key, created_by=admin.actor,
        ),
    )
    return tx_to_out(tx)


@router.post("/{reseller_id}/debit", response_model=TransactionOut)
async def debit(
    reseller_id: int,
    payload: AmountRequest,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
    key: Optional[str] = Depends(idempotency_key),
):
    tx = await run_ledger_unit(
        db,
        lambda s: transfer.debit_reseller(
            s, admin.tenant_id, reseller_id, payload.amount, payload.description,
            idempotency_key=key, created_by=admin.actor,
        ),
    )
    return tx_to_out(tx)
