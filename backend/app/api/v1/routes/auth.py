from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core.db import get_db
from app.core.rbac import AccountType, Role
from app.core.security import verify_password, create_access_token
from app.schemas.auth import LoginRequest, TokenResponse
from app.models.reseller import Reseller
from app.models.tenant import Operator, Tenant
from app.api.deps import Principal, get_current_principal

router = APIRouter()

@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    q = await db.execute(select(Tenant).where(Tenant.id == payload.tenant_id, Tenant.is_active.is_(True)))
    if q.scalar_one_or_none() is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    if payload.account_type == AccountType.operator.value:
        q = await db.execute(
            select(Operator).where(Operator.tenant_id == payload.tenant_id, Operator.username == payload.username)
        )
        account = q.scalar_one_or_none()
        role = Role(account.role.value) if account else None
    else:
        q = await db.execute(
            select(Reseller).where(Reseller.tenant_id == payload.tenant_id, Reseller.username == payload.username)
        )
        account = q.scalar_one_or_none()
        role = Role.reseller

    if not account or not verify_password(payload.password, account.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")
    if not account.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    # role comes from the database row, never from the request
    token = create_access_token(
        subject=str(account.id),
        account_type=payload.account_type,
        tenant_id=payload.tenant_id,
        role=role.value,
    )
    return TokenResponse(access_token=token)

@router.get("/me")
async def me(principal: Principal = Depends(get_current_principal)):
    out = {
        "account_type": principal.account_type.value,
        "tenant_id": principal.tenant_id,
        "role": principal.role.value,
        "name": principal.display_name,
    }
    if principal.reseller is not None:
        out.update(reseller_id=principal.reseller.id, level=principal.reseller.level, balance=principal.reseller.balance)
    else:
        out.update(operator_id=principal.operator.id, username=principal.operator.username)
    return out
