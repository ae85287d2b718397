# backend/tests/test_settlement.py
"""Customer recharge settlement, including the soft insufficient-balance path."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from app.core.errors import DuplicateRequest, InsufficientBalance, NotFound, PermissionDenied
from app.models import CustomerPayment, CustomerRecharge, CustomerStatus, ResellerTransaction, TransactionType
from app.services.ledger import run_ledger_unit
from app.services.settlement import as_utc, compute_new_expiry, pay_customer, recharge_customer


async def _count(db, model, **where) -> int:
    stmt = select(func.count(model.id))
    for k, v in where.items():
        stmt = stmt.where(getattr(model, k) == v)
    return int((await db.execute(stmt)).scalar_one())


def _recharge(tenant_id, customer_id, amount, months=1, **kw):
    return lambda s: recharge_customer(s, tenant_id, customer_id, amount, months, "cash", **kw)


class TestExpiry:

    def test_extends_from_future_expiry(self):
        now = datetime(2026, 5, 1, tzinfo=timezone.utc)
        old = now + timedelta(days=10)
        assert compute_new_expiry(old, 30, 1, now) == old + timedelta(days=30)

    def test_restarts_from_now_when_expired(self):
        now = datetime(2026, 5, 1, tzinfo=timezone.utc)
        old = now - timedelta(days=5)
        assert compute_new_expiry(old, 30, 1, now) == now + timedelta(days=30)

    def test_never_set(self):
        now = datetime(2026, 5, 1, tzinfo=timezone.utc)
        assert compute_new_expiry(None, 30, 2, now) == now + timedelta(days=60)

    def test_naive_expiry_treated_as_utc(self):
        now = datetime(2026, 5, 1, tzinfo=timezone.utc)
        old = datetime(2026, 5, 11)
        assert compute_new_expiry(old, 30, 1, now) == datetime(2026, 6, 10, tzinfo=timezone.utc)


class TestWalkInCustomer:

    async def test_no_reseller_posts_no_ledger_rows(self, db, tenant, package, make_customer):
        c = await make_customer(package_id=package.id)
        res = await run_ledger_unit(db, _recharge(tenant.id, c.id, 500))
        await db.refresh(c)

        assert res.reseller_id is None
        assert res.reseller_charged is False
        assert c.status == CustomerStatus.active
        assert c.due_amount == 0
        assert c.last_payment_date is not None
        assert await _count(db, CustomerPayment, customer_id=c.id) == 1
        assert await _count(db, CustomerRecharge, customer_id=c.id) == 1
        assert await _count(db, ResellerTransaction) == 0


class TestResellerCustomer:

    async def test_charges_reseller_net_of_commission(self, db, tenant, package, make_reseller, make_customer, rows_of, balance_of):
        r = await make_reseller("R", opening_balance=2000, commission_type="percentage", commission_value=10)
        c = await make_customer(reseller_id=r.id, package_id=package.id)

        res = await run_ledger_unit(db, _recharge(tenant.id, c.id, 1000, months=2))

        # 500 x 2 = 1000 gross, 10% of one period = 50
        assert (res.commission, res.deduct_amount) == (50, 950)
        assert res.reseller_charged is True
        assert await balance_of(r.id) == 1050

        tx = (await rows_of(r.id))[-1]
        assert tx.type == TransactionType.customer_payment
        assert tx.amount == -950
        assert tx.customer_id == c.id
        assert "commission 50" in tx.description

        await db.refresh(r)
        assert r.total_collections == 1000

    async def test_insufficient_balance_still_recharges_customer(self, db, tenant, package, make_reseller, make_customer, rows_of, balance_of):
        # price 500 x 2 months, flat 50/month => deduct 900 against a balance of 500
        r = await make_reseller("R", opening_balance=500, commission_type="flat", commission_value=50)
        expired = datetime.now(timezone.utc) - timedelta(days=5)
        c = await make_customer(reseller_id=r.id, package_id=package.id, expiry_date=expired)

        res = await run_ledger_unit(db, _recharge(tenant.id, c.id, 1000, months=2))
        await db.refresh(c)

        assert res.insufficient_balance is True
        assert res.reseller_charged is False
        assert res.deduct_amount == 900
        assert c.status == CustomerStatus.active
        assert as_utc(c.expiry_date) > datetime.now(timezone.utc) + timedelta(days=59)
        assert await balance_of(r.id) == 500
        assert [t.type for t in await rows_of(r.id)] == [TransactionType.deposit]

        recharge = (await db.execute(select(CustomerRecharge).where(CustomerRecharge.id == res.recharge_id))).scalar_one()
        assert recharge.reseller_charged is False
        await db.refresh(r)
        assert r.total_collections == 0

    async def test_active_subscription_is_extended_not_shortened(self, db, tenant, package, make_reseller, make_customer):
        r = await make_reseller("R", opening_balance=5000)
        future = datetime.now(timezone.utc) + timedelta(days=10)
        c = await make_customer(reseller_id=r.id, package_id=package.id, expiry_date=future)

        res = await run_ledger_unit(db, _recharge(tenant.id, c.id, 500))
        assert as_utc(res.new_expiry) == as_utc(future) + timedelta(days=30)

    async def test_missing_package_uses_monthly_bill_and_default_validity(self, db, tenant, make_reseller, make_customer, balance_of):
        r = await make_reseller("R", opening_balance=1000, commission_type="percentage", commission_value=0)
        c = await make_customer(reseller_id=r.id, monthly_bill=300)

        res = await run_ledger_unit(db, _recharge(tenant.id, c.id, 300))
        assert res.deduct_amount == 300
        assert await balance_of(r.id) == 700
        ahead = as_utc(res.new_expiry) - datetime.now(timezone.utc)
        assert timedelta(days=29) < ahead <= timedelta(days=30)

    async def test_idempotency_key_blocks_second_recharge(self, db, tenant, package, make_reseller, make_customer, balance_of):
        tid = tenant.id
        rid = (await make_reseller("R", opening_balance=5000)).id
        cid = (await make_customer(reseller_id=rid, package_id=package.id)).id

        await run_ledger_unit(db, _recharge(tid, cid, 500, idempotency_key="pos-77"))
        with pytest.raises(DuplicateRequest):
            await run_ledger_unit(db, _recharge(tid, cid, 500, idempotency_key="pos-77"))

        assert await balance_of(rid) == 4500
        assert await _count(db, CustomerRecharge, customer_id=cid) == 1


class TestLookups:

    async def test_unknown_customer(self, db, tenant):
        with pytest.raises(NotFound):
            await run_ledger_unit(db, _recharge(tenant.id, 404, 500))

    async def test_customer_of_other_tenant(self, db, other_tenant, make_customer):
        c = await make_customer()
        with pytest.raises(NotFound):
            await run_ledger_unit(db, _recharge(other_tenant.id, c.id, 500))


class TestPayCustomer:

    async def test_reseller_pays_for_own_customer(self, db, tenant, package, make_reseller, make_customer, balance_of):
        r = await make_reseller("R", opening_balance=1000, commission_type="percentage", commission_value=10)
        c = await make_customer(reseller_id=r.id, package_id=package.id)

        res = await run_ledger_unit(db, lambda s: pay_customer(s, tenant.id, r.id, c.id, 500, 1))
        assert res.reseller_charged is True
        assert await balance_of(r.id) == 550

        recharge = (await db.execute(select(CustomerRecharge).where(CustomerRecharge.id == res.recharge_id))).scalar_one()
        assert recharge.payment_method == "reseller_wallet"
        assert recharge.collected_by_type == "reseller"

    async def test_insufficient_balance_is_a_hard_failure(self, db, tenant, package, make_reseller, make_customer, balance_of):
        tid = tenant.id
        rid = (await make_reseller("R", opening_balance=100)).id
        c = await make_customer(reseller_id=rid, package_id=package.id)
        cid = c.id

        with pytest.raises(InsufficientBalance):
            await run_ledger_unit(db, lambda s: pay_customer(s, tid, rid, cid, 500, 1))

        await db.refresh(c)
        assert c.status == CustomerStatus.expired
        assert await balance_of(rid) == 100
        assert await _count(db, CustomerRecharge, customer_id=cid) == 0
        assert await _count(db, CustomerPayment, customer_id=cid) == 0

    async def test_ancestor_needs_view_permission(self, db, tenant, package, make_reseller, make_customer):
        parent = await make_reseller("Parent", opening_balance=5000, can_view_sub_customers=False)
        child = await make_reseller("Child", parent_id=parent.id)
        c = await make_customer(reseller_id=child.id, package_id=package.id)

        with pytest.raises(PermissionDenied):
            await run_ledger_unit(db, lambda s: pay_customer(s, tenant.id, parent.id, c.id, 500, 1))

    async def test_ancestor_with_permission_pays(self, db, tenant, package, make_reseller, make_customer, balance_of):
        parent = await make_reseller("Parent", opening_balance=5000, can_view_sub_customers=True)
        child = await make_reseller("Child", parent_id=parent.id, opening_balance=0)
        c = await make_customer(reseller_id=child.id, package_id=package.id)

        res = await run_ledger_unit(db, lambda s: pay_customer(s, tenant.id, parent.id, c.id, 500, 1))
        assert res.reseller_id == parent.id
        assert await balance_of(parent.id) == 4500
        assert await balance_of(child.id) == 0

    async def test_unrelated_reseller_denied(self, db, tenant, package, make_reseller, make_customer):
        owner = await make_reseller("Owner")
        stranger = await make_reseller("Stranger", opening_balance=5000, can_view_sub_customers=True)
        c = await make_customer(reseller_id=owner.id, package_id=package.id)

        with pytest.raises(PermissionDenied):
            await run_ledger_unit(db, lambda s: pay_customer(s, tenant.id, stranger.id, c.id, 500, 1))

    async def test_recharge_permission_required(self, db, tenant, package, make_reseller, make_customer):
        r = await make_reseller("R", opening_balance=5000, can_recharge_customers=False)
        c = await make_customer(reseller_id=r.id, package_id=package.id)

        with pytest.raises(PermissionDenied):
            await run_ledger_unit(db, lambda s: pay_customer(s, tenant.id, r.id, c.id, 500, 1))
