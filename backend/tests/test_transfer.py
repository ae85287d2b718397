# backend/tests/test_transfer.py
"""Balance movements between resellers and ISP top-ups/withdrawals."""
import pytest
from sqlalchemy import func, select

from app.core.errors import DuplicateRequest, InsufficientBalance, NotFound, PermissionDenied, ValidationError
from app.models import Reseller, TransactionType
from app.services import hierarchy, transfer
from app.services.ledger import run_ledger_unit


async def _system_total(db) -> int:
    q = await db.execute(select(func.coalesce(func.sum(Reseller.balance), 0)))
    return int(q.scalar_one())


class TestTransferBalance:

    async def test_conservation(self, db, tenant, make_reseller, balance_of, rows_of):
        a = await make_reseller("A", opening_balance=1000)
        b = await make_reseller("B", opening_balance=200)
        total_before = await _system_total(db)

        res = await run_ledger_unit(db, lambda s: transfer.transfer_balance(s, tenant.id, a.id, b.id, 300))

        assert await balance_of(a.id) == 700
        assert await balance_of(b.id) == 500
        assert await _system_total(db) == total_before
        assert (res.from_balance, res.to_balance) == (700, 500)

        out_tx = (await rows_of(a.id))[-1]
        in_tx = (await rows_of(b.id))[-1]
        assert (out_tx.type, out_tx.amount, out_tx.to_reseller_id) == (TransactionType.transfer_out, -300, b.id)
        assert (in_tx.type, in_tx.amount, in_tx.from_reseller_id) == (TransactionType.transfer_in, 300, a.id)

    async def test_higher_id_to_lower_id(self, db, tenant, make_reseller, balance_of):
        a = await make_reseller("A", opening_balance=100)
        b = await make_reseller("B", opening_balance=900)

        await run_ledger_unit(db, lambda s: transfer.transfer_balance(s, tenant.id, b.id, a.id, 400))
        assert (await balance_of(a.id), await balance_of(b.id)) == (500, 500)

    async def test_insufficient_funds_writes_nothing(self, db, tenant, make_reseller, balance_of, rows_of):
        tid = tenant.id
        a_id = (await make_reseller("A", opening_balance=100)).id
        b_id = (await make_reseller("B", opening_balance=100)).id

        with pytest.raises(InsufficientBalance):
            await run_ledger_unit(db, lambda s: transfer.transfer_balance(s, tid, a_id, b_id, 101))

        assert (await balance_of(a_id), await balance_of(b_id)) == (100, 100)
        assert len(await rows_of(a_id)) == 1
        assert len(await rows_of(b_id)) == 1

    async def test_failed_transfer_leaves_receiver_untouched(self, db, tenant, make_reseller, balance_of, rows_of):
        tid = tenant.id
        a_id = (await make_reseller("A", opening_balance=0)).id
        b_id = (await make_reseller("B", opening_balance=50)).id

        with pytest.raises(InsufficientBalance):
            await run_ledger_unit(db, lambda s: transfer.transfer_balance(s, tid, b_id, a_id, 80))
        assert await balance_of(a_id) == 0
        assert await rows_of(a_id) == []

    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amount(self, db, tenant, make_reseller, amount):
        a = await make_reseller("A", opening_balance=100)
        b = await make_reseller("B")
        with pytest.raises(ValidationError):
            await run_ledger_unit(db, lambda s: transfer.transfer_balance(s, tenant.id, a.id, b.id, amount))

    async def test_same_account(self, db, tenant, make_reseller):
        a = await make_reseller("A", opening_balance=100)
        with pytest.raises(ValidationError):
            await run_ledger_unit(db, lambda s: transfer.transfer_balance(s, tenant.id, a.id, a.id, 10))

    async def test_missing_or_foreign_account(self, db, tenant, other_tenant, make_reseller):
        tid = tenant.id
        a_id = (await make_reseller("A", opening_balance=100)).id
        foreign_id = (await make_reseller("F", tenant_id=other_tenant.id)).id
        with pytest.raises(NotFound):
            await run_ledger_unit(db, lambda s: transfer.transfer_balance(s, tid, a_id, 9999, 10))
        with pytest.raises(NotFound):
            await run_ledger_unit(db, lambda s: transfer.transfer_balance(s, tid, a_id, foreign_id, 10))

    async def test_inactive_receiver(self, db, tenant, make_reseller):
        a = await make_reseller("A", opening_balance=100)
        b = await make_reseller("B")
        await run_ledger_unit(db, lambda s: hierarchy.deactivate_reseller(s, tenant.id, b.id))
        with pytest.raises(NotFound):
            await run_ledger_unit(db, lambda s: transfer.transfer_balance(s, tenant.id, a.id, b.id, 10))

    async def test_idempotency_key_rejects_replay(self, db, tenant, make_reseller, balance_of, rows_of):
        tid = tenant.id
        a_id = (await make_reseller("A", opening_balance=1000)).id
        b_id = (await make_reseller("B")).id

        def work(s):
            return transfer.transfer_balance(s, tid, a_id, b_id, 300, idempotency_key="wire-77")

        await run_ledger_unit(db, work)
        with pytest.raises(DuplicateRequest):
            await run_ledger_unit(db, work)

        assert (await balance_of(a_id), await balance_of(b_id)) == (700, 300)
        assert [t.type for t in await rows_of(a_id)].count(TransactionType.transfer_out) == 1
        assert [t.type for t in await rows_of(b_id)].count(TransactionType.transfer_in) == 1


class TestSubResellerFunding:

    async def test_fund_direct_child(self, db, tenant, make_reseller, balance_of, rows_of):
        parent = await make_reseller("P", opening_balance=1000, can_transfer_balance=True)
        child = await make_reseller("C", parent_id=parent.id)

        await run_ledger_unit(db, lambda s: transfer.fund_sub_reseller(s, tenant.id, parent.id, child.id, 250))
        assert (await balance_of(parent.id), await balance_of(child.id)) == (750, 250)
        assert (await rows_of(child.id))[-1].type == TransactionType.transfer_in

    async def test_fund_requires_transfer_permission(self, db, tenant, make_reseller):
        parent = await make_reseller("P", opening_balance=1000, can_transfer_balance=False)
        child = await make_reseller("C", parent_id=parent.id)
        with pytest.raises(PermissionDenied):
            await run_ledger_unit(db, lambda s: transfer.fund_sub_reseller(s, tenant.id, parent.id, child.id, 10))

    async def test_fund_grandchild_denied(self, db, tenant, make_reseller):
        top = await make_reseller("T", opening_balance=1000, can_transfer_balance=True)
        mid = await make_reseller("M", parent_id=top.id)
        low = await make_reseller("L", parent_id=mid.id)
        with pytest.raises(PermissionDenied):
            await run_ledger_unit(db, lambda s: transfer.fund_sub_reseller(s, tenant.id, top.id, low.id, 10))

    async def test_deduct_from_child(self, db, tenant, make_reseller, balance_of, rows_of):
        parent = await make_reseller("P")
        child = await make_reseller("C", parent_id=parent.id, opening_balance=400)

        await run_ledger_unit(db, lambda s: transfer.deduct_sub_reseller(s, tenant.id, parent.id, child.id, 150))
        assert (await balance_of(parent.id), await balance_of(child.id)) == (150, 250)
        assert (await rows_of(child.id))[-1].type == TransactionType.deduction
        assert (await rows_of(parent.id))[-1].type == TransactionType.transfer_in

    async def test_deduct_more_than_child_has(self, db, tenant, make_reseller, balance_of):
        tid = tenant.id
        parent_id = (await make_reseller("P")).id
        child_id = (await make_reseller("C", parent_id=parent_id, opening_balance=40)).id
        with pytest.raises(InsufficientBalance):
            await run_ledger_unit(db, lambda s: transfer.deduct_sub_reseller(s, tid, parent_id, child_id, 50))
        assert await balance_of(child_id) == 40

    async def test_deposit_to_parent(self, db, tenant, make_reseller, balance_of):
        parent = await make_reseller("P")
        child = await make_reseller("C", parent_id=parent.id, opening_balance=300)

        await run_ledger_unit(db, lambda s: transfer.deposit_to_parent(s, tenant.id, child.id, 300))
        assert (await balance_of(parent.id), await balance_of(child.id)) == (300, 0)

    async def test_top_level_has_no_parent(self, db, tenant, make_reseller):
        top = await make_reseller("T", opening_balance=300)
        with pytest.raises(ValidationError):
            await run_ledger_unit(db, lambda s: transfer.deposit_to_parent(s, tenant.id, top.id, 10))


class TestIspMovements:

    async def test_credit_and_debit(self, db, tenant, make_reseller, balance_of, rows_of):
        r = await make_reseller("R")
        await run_ledger_unit(db, lambda s: transfer.credit_reseller(s, tenant.id, r.id, 800, created_by="operator:1"))
        await run_ledger_unit(db, lambda s: transfer.debit_reseller(s, tenant.id, r.id, 300))

        rows = await rows_of(r.id)
        assert [t.type for t in rows] == [TransactionType.recharge, TransactionType.withdrawal]
        assert rows[0].created_by == "operator:1"
        assert await balance_of(r.id) == 500

    async def test_debit_cannot_go_negative(self, db, tenant, make_reseller, balance_of):
        tid, rid = tenant.id, (await make_reseller("R", opening_balance=10)).id
        with pytest.raises(InsufficientBalance):
            await run_ledger_unit(db, lambda s: transfer.debit_reseller(s, tid, rid, 11))
        assert await balance_of(rid) == 10
