from dataclasses import asdict
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.db import get_db
from app.api.deps import Principal, idempotency_key, require_admin
from app.schemas.ledger import TransferOut, TransferRequest
from app.services.ledger import run_ledger_unit
from app.services.transfer import transfer_balance

router = APIRouter()


@router.post("", response_model=TransferOut)
async def create_transfer(
    payload: TransferRequest,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
    key: Optional[str] = Depends(idempotency_key),
):
    res = await run_ledger_unit(
        db,
        lambda s: transfer_balance(
            s,
            admin.tenant_id,
            payload.from_reseller_id,
            payload.to_reseller_id,
            payload.amount,
            payload.description,
            idempotency_key=key,
            created_by=admin.actor,
        ),
    )
    return TransferOut(**asdict(res))
