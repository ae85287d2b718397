from dataclasses import asdict
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.db import get_db
from app.api.deps import Principal, idempotency_key, require_operator
from app.schemas.ops import CollectionItemOut, CollectionOut, MultiCollectionRequest, RechargeOut, RechargeRequest
from app.services.collections import create_multi_collection
from app.services.ledger import run_ledger_unit
from app.services.settlement import recharge_customer

router = APIRouter()


@router.post("", response_model=RechargeOut)
async def recharge(
    payload: RechargeRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_operator),
    key: Optional[str] = Depends(idempotency_key),
):
    res = await run_ledger_unit(
        db,
        lambda s: recharge_customer(
            s,
            principal.tenant_id,
            payload.customer_id,
            payload.amount,
            payload.months,
            payload.payment_method,
            discount=payload.discount,
            notes=payload.notes,
            collected_by_type=f"tenant_{principal.role.value}",
            collected_by_name=principal.display_name,
            idempotency_key=key,
            created_by=principal.actor,
        ),
    )
    return RechargeOut(**asdict(res))


@router.post("/multi-collection", response_model=CollectionOut)
async def multi_collection(
    payload: MultiCollectionRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_operator),
    key: Optional[str] = Depends(idempotency_key),
):
    res = await create_multi_collection(
        db,
        principal.tenant_id,
        [i.model_dump() for i in payload.items],
        payload.payment_method,
        notes=payload.notes,
        collected_by_name=principal.display_name,
        idempotency_key=key,
        created_by=principal.actor,
    )
    return CollectionOut(
        collection_id=res.collection_id,
        total_amount=res.total_amount,
        total_customers=res.total_customers,
        succeeded_count=res.succeeded_count,
        failed_count=res.failed_count,
        collected_amount=res.collected_amount,
        items=[
            CollectionItemOut(
                customer_id=i.customer_id,
                amount=i.amount,
                months=i.months,
                status=i.status.value,
                error=i.error,
                recharge_id=i.recharge_id,
                reseller_charged=i.reseller_charged,
            )
            for i in res.items
        ],
    )
