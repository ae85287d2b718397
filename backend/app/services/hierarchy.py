from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import LimitExceeded, NotFound, PermissionDenied, ValidationError
from app.core.security import hash_password
from app.models.customer import Customer, CustomerStatus
from app.models.ledger import TransactionType
from app.models.reseller import CommissionType, RateType, Reseller, ResellerRole
from app.models.tenant import Tenant
from app.services import ledger

logger = logging.getLogger(__name__)

ROLE_BY_LEVEL = {
    1: ResellerRole.reseller,
    2: ResellerRole.sub_reseller,
    3: ResellerRole.sub_sub_reseller,
}

PROFILE_FIELDS = ("name", "username", "phone")
POLICY_FIELDS = ("commission_type", "commission_value", "rate_type", "customer_rate")
FLAG_FIELDS = (
    "can_create_sub_reseller",
    "can_add_customers",
    "can_edit_customers",
    "can_delete_customers",
    "can_recharge_customers",
    "can_view_sub_customers",
    "can_transfer_balance",
)
LIMIT_FIELDS = ("max_sub_resellers", "max_customers")
UPDATABLE_FIELDS = set(PROFILE_FIELDS + POLICY_FIELDS + FLAG_FIELDS + LIMIT_FIELDS + ("password",))


def role_for_level(level: int) -> ResellerRole:
    try:
        return ROLE_BY_LEVEL[level]
    except KeyError:
        raise ValidationError(f"Reseller level must be between 1 and {settings.MAX_RESELLER_LEVEL}")


async def get_reseller(
    db: AsyncSession,
    tenant_id: int,
    reseller_id: int,
    *,
    active_only: bool = True,
    for_update: bool = False,
) -> Reseller:
    stmt = select(Reseller).where(Reseller.id == reseller_id, Reseller.tenant_id == tenant_id)
    if active_only:
        stmt = stmt.where(Reseller.is_active.is_(True))
    if for_update:
        stmt = stmt.with_for_update()
    q = await db.execute(stmt)
    r = q.scalar_one_or_none()
    if not r:
        raise NotFound("Reseller not found")
    return r


async def get_direct_child(db: AsyncSession, tenant_id: int, parent_id: int, child_id: int) -> Reseller:
    """Sub-reseller ``child_id`` of ``parent_id``; deactivated children stay readable."""
    q = await db.execute(
        select(Reseller).where(
            Reseller.id == child_id,
            Reseller.tenant_id == tenant_id,
            Reseller.parent_id == parent_id,
        )
    )
    child = q.scalar_one_or_none()
    if child is None:
        raise PermissionDenied("Sub-reseller not found or not authorized")
    return child


async def count_active_children(db: AsyncSession, tenant_id: int, parent_id: int) -> int:
    q = await db.execute(
        select(func.count(Reseller.id)).where(
            Reseller.tenant_id == tenant_id,
            Reseller.parent_id == parent_id,
            Reseller.is_active.is_(True),
        )
    )
    return int(q.scalar_one())


def _number(value: Any, field: str) -> Decimal:
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not d.is_finite() or d < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    return d


def _validate_policy(values: dict) -> None:
    try:
        ctype = CommissionType(values.get("commission_type") or CommissionType.percentage)
    except ValueError:
        raise ValidationError("commission_type must be 'percentage' or 'flat'")
    values["commission_type"] = ctype
    try:
        values["rate_type"] = RateType(values.get("rate_type") or RateType.discount)
    except ValueError:
        raise ValidationError("rate_type must be 'discount' or 'full_price'")

    for field in ("commission_value", "customer_rate"):
        if values.get(field) is not None:
            values[field] = _number(values[field], field)
    if ctype == CommissionType.percentage and (values.get("commission_value") or 0) > 100:
        raise ValidationError("Percentage commission cannot exceed 100")


def _validate_limits(values: dict) -> None:
    for field in LIMIT_FIELDS:
        v = values.get(field)
        if v is not None and int(v) < 0:
            raise ValidationError(f"{field} must not be negative")


async def _ensure_username_free(db: AsyncSession, tenant_id: int, username: str, exclude_id: int | None = None) -> None:
    stmt = select(Reseller.id).where(Reseller.tenant_id == tenant_id, Reseller.username == username)
    if exclude_id is not None:
        stmt = stmt.where(Reseller.id != exclude_id)
    q = await db.execute(stmt)
    if q.first() is not None:
        raise ValidationError("Username already exists")


async def create_reseller(
    db: AsyncSession,
    tenant_id: int,
    data: Mapping[str, Any],
    *,
    created_via_portal: bool = False,
    created_by: str | None = None,
) -> Reseller:
    """Insert a reseller under ``data['parent_id']`` (or at level 1).

    The parent row is locked while its active children are counted, so two
    concurrent creates cannot both pass the ``max_sub_resellers`` check.
    Does not commit.
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")

    q = await db.execute(select(Tenant).where(Tenant.id == tenant_id, Tenant.is_active.is_(True)))
    if q.scalar_one_or_none() is None:
        raise NotFound("Tenant not found")

    values: dict[str, Any] = {
        k: data[k] for k in PROFILE_FIELDS + POLICY_FIELDS + FLAG_FIELDS + LIMIT_FIELDS
        if data.get(k) is not None
    }
    values["name"] = name
    if created_via_portal:
        # portal-created sub-resellers may move balance unless told otherwise
        values.setdefault("can_transfer_balance", True)

    parent_id = data.get("parent_id")
    if parent_id is not None:
        parent_id = int(parent_id)
        try:
            parent = await get_reseller(db, tenant_id, parent_id, for_update=True)
        except NotFound:
            raise NotFound("Parent reseller not found or inactive")
        if created_via_portal and not parent.can_create_sub_reseller:
            raise PermissionDenied("You do not have permission to create sub-resellers")
        level = parent.level + 1
        if level > settings.MAX_RESELLER_LEVEL:
            raise ValidationError(f"Maximum hierarchy depth ({settings.MAX_RESELLER_LEVEL}) reached")
        if parent.max_sub_resellers is not None:
            count = await count_active_children(db, tenant_id, parent.id)
            if count >= parent.max_sub_resellers:
                raise LimitExceeded(
                    f"Maximum sub-reseller limit ({parent.max_sub_resellers}) reached",
                    details={"parent_id": parent.id, "limit": parent.max_sub_resellers},
                )
        for field in POLICY_FIELDS:
            if field not in values:
                values[field] = getattr(parent, field)
    else:
        level = 1

    _validate_policy(values)
    _validate_limits(values)

    if values.get("username"):
        values["username"] = values["username"].strip()
        await _ensure_username_free(db, tenant_id, values["username"])

    opening_balance = int(data.get("opening_balance") or 0)
    if opening_balance < 0:
        raise ValidationError("opening_balance must not be negative")

    password = data.get("password")
    r = Reseller(
        tenant_id=tenant_id,
        parent_id=parent_id,
        level=level,
        role=role_for_level(level),
        balance=0,
        version=0,
        total_collections=0,
        password_hash=hash_password(password) if password else None,
        is_active=True,
        **values,
    )
    db.add(r)
    await db.flush()

    if opening_balance:
        await ledger.append_entry(
            db,
            tenant_id=tenant_id,
            reseller_id=r.id,
            type=TransactionType.deposit,
            amount=opening_balance,
            description="Opening balance",
            created_by=created_by,
        )

    logger.info("reseller created id=%s tenant_id=%s parent_id=%s level=%s", r.id, tenant_id, parent_id, level)
    return r


async def update_reseller(db: AsyncSession, tenant_id: int, reseller_id: int, patch: Mapping[str, Any]) -> Reseller:
    """Apply profile, policy, flag and limit changes. Does not commit."""
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not updatable: {', '.join(sorted(unknown))}")
    if not patch:
        raise ValidationError("No valid fields to update")

    r = await get_reseller(db, tenant_id, reseller_id, active_only=False, for_update=True)

    values = dict(patch)
    if "name" in values:
        values["name"] = (values["name"] or "").strip()
        if not values["name"]:
            raise ValidationError("name is required")
    if values.get("username"):
        values["username"] = values["username"].strip()
        await _ensure_username_free(db, tenant_id, values["username"], exclude_id=r.id)

    policy = {f: getattr(r, f) for f in POLICY_FIELDS}
    policy.update({f: values[f] for f in POLICY_FIELDS if f in values})
    _validate_policy(policy)
    _validate_limits(values)

    password = values.pop("password", None)
    if password:
        r.password_hash = hash_password(password)

    for field, value in values.items():
        if field in POLICY_FIELDS:
            value = policy[field]
        elif field in FLAG_FIELDS and value is None:
            continue
        setattr(r, field, value)

    await db.flush()
    return r


async def deactivate_reseller(db: AsyncSession, tenant_id: int, reseller_id: int) -> Reseller:
    """Soft delete: the row stays so ledger history remains attributable."""
    r = await get_reseller(db, tenant_id, reseller_id, active_only=False)
    if r.is_active:
        r.is_active = False
        await db.flush()
        logger.info("reseller deactivated id=%s tenant_id=%s balance=%s", r.id, tenant_id, r.balance)
    return r


async def get_sub_resellers(db: AsyncSession, tenant_id: int, parent_id: int) -> list[Reseller]:
    await get_reseller(db, tenant_id, parent_id, active_only=False)
    q = await db.execute(
        select(Reseller)
        .where(
            Reseller.tenant_id == tenant_id,
            Reseller.parent_id == parent_id,
            Reseller.is_active.is_(True),
        )
        .order_by(Reseller.id.asc())
    )
    return list(q.scalars().all())


async def get_descendants(db: AsyncSession, tenant_id: int, root_id: int) -> list[Reseller]:
    """Active subtree below ``root_id`` in breadth-first order.

    One indexed ``parent_id IN (...)`` query per tree level. Children of an
    inactive reseller are not reached.
    """
    await get_reseller(db, tenant_id, root_id, active_only=False)

    result: list[Reseller] = []
    seen = {root_id}
    frontier = [root_id]
    while frontier:
        q = await db.execute(
            select(Reseller)
            .where(
                Reseller.tenant_id == tenant_id,
                Reseller.parent_id.in_(frontier),
                Reseller.is_active.is_(True),
            )
            .order_by(Reseller.level.asc(), Reseller.id.asc())
        )
        children = [c for c in q.scalars().all() if c.id not in seen]
        seen.update(c.id for c in children)
        result.extend(children)
        frontier = [c.id for c in children]
    return result


async def is_in_subtree(db: AsyncSession, tenant_id: int, ancestor_id: int, reseller_id: int | None) -> bool:
    """True when ``reseller_id`` is ``ancestor_id`` or sits below it."""
    current = reseller_id
    for _ in range(settings.MAX_RESELLER_LEVEL + 1):
        if current is None:
            return False
        if current == ancestor_id:
            return True
        q = await db.execute(
            select(Reseller.parent_id).where(Reseller.id == current, Reseller.tenant_id == tenant_id)
        )
        row = q.first()
        if row is None:
            return False
        current = row[0]
    return False


async def ensure_customer_capacity(db: AsyncSession, reseller: Reseller) -> None:
    if reseller.max_customers is None:
        return
    q = await db.execute(
        select(func.count(Customer.id)).where(
            Customer.tenant_id == reseller.tenant_id,
            Customer.reseller_id == reseller.id,
            Customer.status != CustomerStatus.cancelled,
        )
    )
    if int(q.scalar_one()) >= reseller.max_customers:
        raise LimitExceeded(
            f"Maximum customer limit ({reseller.max_customers}) reached",
            details={"reseller_id": reseller.id, "limit": reseller.max_customers},
        )


async def assign_customer(db: AsyncSession, tenant_id: int, customer_id: int, reseller_id: int | None) -> Customer:
    """Move a customer under a reseller (or make it walk-in). Does not commit."""
    q = await db.execute(
        select(Customer).where(Customer.id == customer_id, Customer.tenant_id == tenant_id).with_for_update()
    )
    customer = q.scalar_one_or_none()
    if not customer:
        raise NotFound("Customer not found")
    if customer.reseller_id == reseller_id:
        return customer
    if reseller_id is not None:
        reseller = await get_reseller(db, tenant_id, reseller_id, for_update=True)
        await ensure_customer_capacity(db, reseller)
    customer.reseller_id = reseller_id
    await db.flush()
    return customer
