from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.api.deps import Principal, require_admin
from app.schemas.ops import AssignCustomerRequest, CustomerOut
from app.services.hierarchy import assign_customer
from app.services.ledger import run_ledger_unit

router = APIRouter()


@router.put("/{customer_id}/reseller", response_model=CustomerOut)
async def set_customer_reseller(
    customer_id: int,
    payload: AssignCustomerRequest,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    c = await run_ledger_unit(db, lambda s: assign_customer(s, admin.tenant_id, customer_id, payload.reseller_id))
    return CustomerOut(
        id=c.id,
        reseller_id=c.reseller_id,
        name=c.name,
        status=c.status.value,
        expiry_date=c.expiry_date,
    )
