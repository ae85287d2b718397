from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import get_db
from app.core.security import ALGORITHM
from app.core.rbac import AccountType, Role
from app.models.reseller import Reseller
from app.models.tenant import Operator, Tenant

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


@dataclass
class Principal:
    """Who is calling.

    The identifying fields are plain values copied at authentication time:
    a rolled-back ledger unit expires the ORM rows in ``operator`` and
    ``reseller``, and a retried unit must still be able to read them.
    """

    account_type: AccountType
    tenant_id: int
    role: Role
    subject_id: int
    actor: str
    display_name: str
    operator: Operator | None = None
    reseller: Reseller | None = None

    @property
    def reseller_id(self) -> int:
        if self.account_type != AccountType.reseller:
            raise ValueError("principal is not a reseller")
        return self.subject_id


def _unauthorized(detail: str = "Invalid token") -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def get_current_principal(
    db: AsyncSession = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> Principal:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        sub = payload.get("sub")
        account_type = AccountType(payload.get("typ"))
        tenant_id = int(payload.get("tid"))
        token_role = payload.get("role")
        if not sub or not token_role:
            raise _unauthorized()
        subject_id = int(sub)
    except (JWTError, ValueError, TypeError):
        raise _unauthorized()

    q = await db.execute(select(Tenant).where(Tenant.id == tenant_id, Tenant.is_active.is_(True)))
    if q.scalar_one_or_none() is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant is inactive")

    # The database is authoritative; the token only says who is asking.
    if account_type == AccountType.operator:
        q = await db.execute(select(Operator).where(Operator.id == subject_id, Operator.tenant_id == tenant_id))
        operator = q.scalar_one_or_none()
        if not operator:
            raise _unauthorized("Account not found")
        if not operator.is_active:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")
        role = Role(operator.role.value)
        if token_role != role.value:
            raise _unauthorized()
        return Principal(
            account_type=account_type,
            tenant_id=tenant_id,
            role=role,
            subject_id=operator.id,
            actor=f"operator:{operator.id}",
            display_name=operator.display_name or operator.username,
            operator=operator,
        )

    q = await db.execute(select(Reseller).where(Reseller.id == subject_id, Reseller.tenant_id == tenant_id))
    reseller = q.scalar_one_or_none()
    if not reseller:
        raise _unauthorized("Account not found")
    if not reseller.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")
    if token_role != Role.reseller.value:
        raise _unauthorized()
    return Principal(
        account_type=account_type,
        tenant_id=tenant_id,
        role=Role.reseller,
        subject_id=reseller.id,
        actor=f"reseller:{reseller.id}",
        display_name=reseller.name,
        reseller=reseller,
    )


async def require_operator(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.account_type != AccountType.operator:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operators only")
    return principal


async def require_admin(principal: Principal = Depends(require_operator)) -> Principal:
    if principal.role != Role.admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins only")
    return principal


async def require_reseller(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.account_type != AccountType.reseller:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Resellers only")
    return principal


def idempotency_key(idempotency_key: str | None = Header(default=None, alias="Idempotency-Key")) -> str | None:
    if idempotency_key is None:
        return None
    key = idempotency_key.strip()
    if not key:
        return None
    if len(key) > 100:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Idempotency-Key too long")
    return key
