from dataclasses import asdict
from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.db import get_db
from app.api.deps import Principal, idempotency_key, require_reseller
from app.models.ledger import TransactionType
from app.schemas.ledger import AmountRequest, TransactionList, TransferOut, tx_to_out
from app.schemas.ops import PayCustomerRequest, RechargeHistoryList, RechargeOut, recharge_to_out
from app.schemas.reseller import CreateSubResellerRequest, ResellerList, ResellerOut, reseller_to_out
from app.services import hierarchy, ledger, transfer
from app.services.ledger import run_ledger_unit
from app.services.settlement import get_recharges, pay_customer

router = APIRouter()


@router.get("/me", response_model=ResellerOut)
async def me(principal: Principal = Depends(require_reseller)):
    return reseller_to_out(principal.reseller)


@router.get("/ledger", response_model=TransactionList)
async def my_ledger(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_reseller),
    type: Optional[TransactionType] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(200, ge=1, le=1000),
):
    items, total = await ledger.get_transactions(
        db, principal.tenant_id, principal.reseller_id, limit=limit, offset=offset, type=type
    )
    return TransactionList(items=[tx_to_out(t) for t in items], total=total)


@router.get("/sub-resellers", response_model=ResellerList)
async def my_sub_resellers(db: AsyncSession = Depends(get_db), principal: Principal = Depends(require_reseller)):
    rows = await hierarchy.get_sub_resellers(db, principal.tenant_id, principal.reseller_id)
    return ResellerList(items=[reseller_to_out(r) for r in rows], total=len(rows))


@router.get("/sub-resellers/{sub_reseller_id}/transactions", response_model=TransactionList)
async def sub_reseller_ledger(
    sub_reseller_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_reseller),
    type: Optional[TransactionType] = Query(None),
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
):
    child = await hierarchy.get_direct_child(db, principal.tenant_id, principal.reseller_id, sub_reseller_id)
    items, total = await ledger.get_transactions(
        db, principal.tenant_id, child.id, limit=limit, offset=offset, type=type
    )
    return TransactionList(items=[tx_to_out(t) for t in items], total=total)


@router.get("/recharges", response_model=RechargeHistoryList)
async def my_recharges(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_reseller),
    source: Optional[str] = Query(None, max_length=32),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    limit: int = Query(500, ge=1, le=1000),
):
    rows = await get_recharges(
        db, principal.tenant_id, principal.reseller_id,
        payment_method=source, date_from=date_from, date_to=date_to, limit=limit,
    )
    return RechargeHistoryList(items=[recharge_to_out(r) for r in rows], total=len(rows))


@router.post("/sub-resellers", response_model=ResellerOut)
async def create_sub_reseller(
    payload: CreateSubResellerRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_reseller),
):
    data = payload.model_dump(exclude_none=True)
    data["parent_id"] = principal.reseller_id
    r = await run_ledger_unit(
        db,
        lambda s: hierarchy.create_reseller(
            s, principal.tenant_id, data, created_via_portal=True, created_by=principal.actor
        ),
    )
    return reseller_to_out(r)


@router.post("/sub-resellers/{sub_reseller_id}/fund", response_model=TransferOut)
async def fund_sub_reseller(
    sub_reseller_id: int,
    payload: AmountRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_reseller),
    key: Optional[str] = Depends(idempotency_key),
):
    res = await run_ledger_unit(
        db,
        lambda s: transfer.fund_sub_reseller(
            s, principal.tenant_id, principal.reseller_id, sub_reseller_id, payload.amount,
            payload.description, idempotency_key=key,
        ),
    )
    return TransferOut(**asdict(res))


@router.post("/sub-resellers/{sub_reseller_id}/deduct", response_model=TransferOut)
async def deduct_sub_reseller(
    sub_reseller_id: int,
    payload: AmountRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_reseller),
    key: Optional[str] = Depends(idempotency_key),
):
    res = await run_ledger_unit(
        db,
        lambda s: transfer.deduct_sub_reseller(
            s, principal.tenant_id, principal.reseller_id, sub_reseller_id, payload.amount,
            payload.description, idempotency_key=key,
        ),
    )
    return TransferOut(**asdict(res))


@router.post("/deposit-to-parent", response_model=TransferOut)
async def deposit_to_parent(
    payload: AmountRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_reseller),
    key: Optional[str] = Depends(idempotency_key),
):
    res = await run_ledger_unit(
        db,
        lambda s: transfer.deposit_to_parent(
            s, principal.tenant_id, principal.reseller_id, payload.amount,
            payload.description, idempotency_key=key,
        ),
    )
    return TransferOut(**asdict(res))


@router.post("/customers/{customer_id}/pay", response_model=RechargeOut)
async def pay(
    customer_id: int,
    payload: PayCustomerRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_reseller),
    key: Optional[str] = Depends(idempotency_key),
):
    res = await run_ledger_unit(
        db,
        lambda s: pay_customer(
            s, principal.tenant_id, principal.reseller_id, customer_id, payload.amount, payload.months,
            idempotency_key=key,
        ),
    )
    return RechargeOut(**asdict(res))
