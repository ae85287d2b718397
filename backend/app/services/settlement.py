"""Customer recharge settlement.

A recharge always extends the customer and records the customer-facing
history. When the customer belongs to a reseller, the reseller is charged
through the ledger according to its commission policy; an insufficient
reseller balance skips that charge without failing the recharge. The
reseller-funded ``pay_customer`` path is strict instead: no funds, no
recharge.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import DuplicateRequest, InsufficientBalance, NotFound, PermissionDenied, ValidationError
from app.models.customer import Customer, CustomerStatus, IspPackage
from app.models.ledger import TransactionType
from app.models.recharge import CustomerPayment, CustomerRecharge, RechargeStatus
from app.models.reseller import Reseller
from app.services import hierarchy, ledger
from app.services.commission import CommissionQuote, effective_commission_value, quote_for_reseller

logger = logging.getLogger(__name__)

COLLECTOR_TYPE_BY_LEVEL = {1: "reseller", 2: "sub_reseller", 3: "sub_sub_reseller"}


@dataclass
class RechargeResult:
    recharge_id: int
    customer_id: int
    old_expiry: datetime | None
    new_expiry: datetime
    reseller_id: int | None = None
    reseller_charged: bool = False
    insufficient_balance: bool = False
    commission: int = 0
    deduct_amount: int = 0
    reseller_balance: int | None = None
    transaction_id: int | None = None


def as_utc(dt: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def compute_new_expiry(
    old_expiry: datetime | None,
    validity_days: int,
    months: int,
    now: datetime | None = None,
) -> datetime:
    """Extend from the current expiry while it is in the future, else from now."""
    now = as_utc(now or datetime.now(timezone.utc))
    base = now
    if old_expiry is not None and as_utc(old_expiry) > now:
        base = as_utc(old_expiry)
    return base + timedelta(days=int(validity_days) * int(months))


def collected_by_type_for(reseller: Reseller) -> str:
    return COLLECTOR_TYPE_BY_LEVEL.get(reseller.level, "reseller")


def _validate(amount, months, discount, payment_method) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("amount must be a positive integer")
    if isinstance(months, bool) or not isinstance(months, int) or months < 1:
        raise ValidationError("months must be a positive integer")
    if isinstance(discount, bool) or not isinstance(discount, int) or discount < 0:
        raise ValidationError("discount must not be negative")
    if discount > amount:
        raise ValidationError("discount cannot exceed amount")
    if not (payment_method or "").strip():
        raise ValidationError("payment_method is required")


async def _load_customer(db: AsyncSession, tenant_id: int, customer_id: int) -> tuple[Customer, IspPackage | None]:
    q = await db.execute(
        select(Customer).where(Customer.id == customer_id, Customer.tenant_id == tenant_id).with_for_update()
    )
    customer = q.scalar_one_or_none()
    if not customer:
        raise NotFound("Customer not found")

    package = None
    if customer.package_id is not None:
        qp = await db.execute(
            select(IspPackage).where(IspPackage.id == customer.package_id, IspPackage.tenant_id == tenant_id)
        )
        package = qp.scalar_one_or_none()
        if not package:
            raise NotFound("Package not found")
    return customer, package


def _describe(customer: Customer, reseller: Reseller, months: int, price: int, quote: CommissionQuote) -> str:
    plural = "s" if months > 1 else ""
    return (
        f"Recharge for {customer.name} ({months} month{plural}): "
        f"{price} x {months} = {quote.gross_amount}, "
        f"commission {quote.commission} ({reseller.commission_type.value} {effective_commission_value(reseller)}, "
        f"{reseller.rate_type.value}), charged {quote.deduct_amount}"
    )[:255]


async def recharge_customer(
    db: AsyncSession,
    tenant_id: int,
    customer_id: int,
    amount: int,
    months: int,
    payment_method: str,
    discount: int = 0,
    notes: str | None = None,
    collected_by_type: str = "tenant_admin",
    collected_by_name: str = "Tenant Admin",
    *,
    idempotency_key: str | None = None,
    funding_reseller_id: int | None = None,
    created_by: str | None = None,
    now: datetime | None = None,
) -> RechargeResult:
    """Recharge one customer. Does not commit; run it inside ``run_ledger_unit``.

    Without ``funding_reseller_id`` the customer's own reseller (if any) is
    charged and a shortfall is a soft outcome. With it, that reseller pays
    and a shortfall raises InsufficientBalance.
    """
    _validate(amount, months, discount, payment_method)
    payment_method = payment_method.strip()

    if idempotency_key:
        q = await db.execute(
            select(CustomerRecharge.id).where(
                CustomerRecharge.tenant_id == tenant_id,
                CustomerRecharge.idempotency_key == idempotency_key,
            )
        )
        if q.first() is not None:
            raise DuplicateRequest("Request already processed", details={"idempotency_key": idempotency_key})

    customer, package = await _load_customer(db, tenant_id, customer_id)
    validity_days = package.validity_days if package and package.validity_days else settings.DEFAULT_VALIDITY_DAYS
    package_price = package.price if package else int(customer.monthly_bill or 0)

    now = as_utc(now or datetime.now(timezone.utc))
    old_expiry = customer.expiry_date
    new_expiry = compute_new_expiry(old_expiry, validity_days, months, now)

    strict = funding_reseller_id is not None
    charge_reseller_id = funding_reseller_id if strict else customer.reseller_id
    reseller = None
    if charge_reseller_id is not None:
        reseller = await hierarchy.get_reseller(db, tenant_id, charge_reseller_id)

    recharge = CustomerRecharge(
        tenant_id=tenant_id,
        customer_id=customer.id,
        reseller_id=customer.reseller_id or charge_reseller_id,
        amount=amount,
        months=months,
        discount=discount,
        payment_method=payment_method,
        old_expiry=old_expiry,
        new_expiry=new_expiry,
        status=RechargeStatus.completed,
        collected_by_type=collected_by_type,
        collected_by_name=collected_by_name,
        notes=notes,
        idempotency_key=idempotency_key,
    )
    db.add(recharge)

    customer.expiry_date = new_expiry
    customer.due_amount = 0
    customer.status = CustomerStatus.active
    customer.last_payment_date = now
    await db.flush()

    result = RechargeResult(
        recharge_id=recharge.id,
        customer_id=customer.id,
        old_expiry=old_expiry,
        new_expiry=new_expiry,
        reseller_id=charge_reseller_id,
    )

    if reseller is not None:
        quote = quote_for_reseller(reseller, package_price, months)
        result.commission = quote.commission
        result.deduct_amount = quote.deduct_amount
        recharge.commission = quote.commission

        settled = True
        if quote.deduct_amount > 0:
            try:
                tx = await ledger.append_entry(
                    db,
                    tenant_id=tenant_id,
                    reseller_id=reseller.id,
                    type=TransactionType.customer_payment,
                    amount=-quote.deduct_amount,
                    customer_id=customer.id,
                    reference_id=str(recharge.id),
                    reference_type="customer_recharge",
                    description=_describe(customer, reseller, months, package_price, quote),
                    idempotency_key=idempotency_key,
                    created_by=created_by,
                )
            except InsufficientBalance:
                if strict:
                    raise
                settled = False
                result.insufficient_balance = True
                logger.warning(
                    "recharge without reseller charge customer_id=%s reseller_id=%s required=%s balance=%s",
                    customer.id, reseller.id, quote.deduct_amount, reseller.balance,
                )
            else:
                result.reseller_charged = True
                result.transaction_id = tx.id
                recharge.reseller_charged = True

        if settled:
            await db.execute(
                update(Reseller)
                .where(Reseller.id == reseller.id)
                .values(total_collections=Reseller.total_collections + amount)
                .execution_options(synchronize_session=False)
            )
        qb = await db.execute(select(Reseller.balance).where(Reseller.id == reseller.id))
        result.reseller_balance = qb.scalar_one()

    db.add(
        CustomerPayment(
            tenant_id=tenant_id,
            customer_id=customer.id,
            amount=amount,
            payment_method=payment_method,
            notes=notes or f"Recharge for {months} month(s)",
        )
    )
    await db.flush()

    logger.info(
        "customer recharged customer_id=%s amount=%s months=%s new_expiry=%s reseller_id=%s charged=%s",
        customer.id, amount, months, new_expiry.isoformat(), charge_reseller_id, result.reseller_charged,
    )
    return result


async def pay_customer(
    db: AsyncSession,
    tenant_id: int,
    reseller_id: int,
    customer_id: int,
    amount: int,
    months: int = 1,
    *,
    idempotency_key: str | None = None,
) -> RechargeResult:
    """Reseller recharges a customer out of its own wallet.

    The reseller must own the customer, or be an ancestor of the owner with
    ``can_view_sub_customers``. Does not commit.
    """
    reseller = await hierarchy.get_reseller(db, tenant_id, reseller_id)
    if not reseller.can_recharge_customers:
        raise PermissionDenied("You do not have permission to recharge customers")

    q = await db.execute(
        select(Customer.reseller_id).where(Customer.id == customer_id, Customer.tenant_id == tenant_id)
    )
    row = q.first()
    if row is None:
        raise NotFound("Customer not found")
    owner_id = row[0]
    if owner_id != reseller.id:
        allowed = (
            owner_id is not None
            and reseller.can_view_sub_customers
            and await hierarchy.is_in_subtree(db, tenant_id, reseller.id, owner_id)
        )
        if not allowed:
            raise PermissionDenied("Customer not found or not authorized")

    collector_type = collected_by_type_for(reseller)
    return await recharge_customer(
        db,
        tenant_id,
        customer_id,
        amount,
        months,
        "reseller_wallet",
        notes=f"Recharged by {reseller.name} ({collector_type})",
        collected_by_type=collector_type,
        collected_by_name=reseller.name,
        idempotency_key=idempotency_key,
        funding_reseller_id=reseller.id,
        created_by=f"reseller:{reseller.id}",
    )


async def get_recharges(
    db: AsyncSession,
    tenant_id: int,
    reseller_id: int,
    *,
    payment_method: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 500,
) -> list[CustomerRecharge]:
    """Recharge history of a reseller, newest first.

    With ``can_view_sub_customers`` the recharges booked against its active
    descendants are included. ``date_to`` is inclusive.
    """
    reseller = await hierarchy.get_reseller(db, tenant_id, reseller_id)
    ids = [reseller.id]
    if reseller.can_view_sub_customers:
        ids += [d.id for d in await hierarchy.get_descendants(db, tenant_id, reseller.id)]

    stmt = select(CustomerRecharge).where(
        CustomerRecharge.tenant_id == tenant_id,
        CustomerRecharge.reseller_id.in_(ids),
    )
    if payment_method and payment_method != "all":
        stmt = stmt.where(CustomerRecharge.payment_method == payment_method)
    if date_from is not None:
        stmt = stmt.where(CustomerRecharge.created_at >= datetime.combine(date_from, time.min, tzinfo=timezone.utc))
    if date_to is not None:
        end = datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
        stmt = stmt.where(CustomerRecharge.created_at < end)
    stmt = stmt.order_by(CustomerRecharge.created_at.desc(), CustomerRecharge.id.desc()).limit(limit)

    q = await db.execute(stmt)
    return list(q.scalars().all())
