# backend/tests/test_hierarchy.py
"""Reseller tree: creation rules, limits, descendants and customer assignment."""
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.core.errors import LimitExceeded, NotFound, PermissionDenied, ValidationError
from app.models import Reseller, ResellerRole, TransactionType
from app.models.reseller import CommissionType, RateType
from app.services import hierarchy
from app.services.ledger import run_ledger_unit


async def _count_resellers(db) -> int:
    q = await db.execute(select(func.count(Reseller.id)))
    return int(q.scalar_one())


class TestCreate:

    async def test_levels_and_roles_follow_parent(self, make_reseller):
        top = await make_reseller("Top")
        mid = await make_reseller("Mid", parent_id=top.id)
        low = await make_reseller("Low", parent_id=mid.id)

        assert (top.level, top.role) == (1, ResellerRole.reseller)
        assert (mid.level, mid.role) == (2, ResellerRole.sub_reseller)
        assert (low.level, low.role) == (3, ResellerRole.sub_sub_reseller)

    async def test_fourth_level_is_rejected(self, make_reseller):
        top = await make_reseller("Top")
        mid = await make_reseller("Mid", parent_id=top.id)
        low = await make_reseller("Low", parent_id=mid.id)
        with pytest.raises(ValidationError):
            await make_reseller("TooDeep", parent_id=low.id)

    async def test_name_is_required(self, make_reseller):
        with pytest.raises(ValidationError):
            await make_reseller("   ")

    async def test_sub_reseller_limit_writes_nothing(self, db, make_reseller):
        parent = await make_reseller("Parent", max_sub_resellers=2)
        await make_reseller("A", parent_id=parent.id)
        await make_reseller("B", parent_id=parent.id)
        before = await _count_resellers(db)

        with pytest.raises(LimitExceeded):
            await make_reseller("C", parent_id=parent.id)

        assert await _count_resellers(db) == before

    async def test_deactivated_child_frees_a_slot(self, db, tenant, make_reseller):
        parent = await make_reseller("Parent", max_sub_resellers=1)
        child = await make_reseller("A", parent_id=parent.id)
        await run_ledger_unit(db, lambda s: hierarchy.deactivate_reseller(s, tenant.id, child.id))

        again = await make_reseller("B", parent_id=parent.id)
        assert again.parent_id == parent.id

    async def test_zero_limit_allows_no_children(self, make_reseller):
        parent = await make_reseller("Parent", max_sub_resellers=0)
        with pytest.raises(LimitExceeded):
            await make_reseller("A", parent_id=parent.id)

    async def test_inactive_parent_not_found(self, db, tenant, make_reseller):
        parent = await make_reseller("Parent")
        await run_ledger_unit(db, lambda s: hierarchy.deactivate_reseller(s, tenant.id, parent.id))
        with pytest.raises(NotFound):
            await make_reseller("Orphan", parent_id=parent.id)

    async def test_parent_from_other_tenant_not_found(self, other_tenant, make_reseller):
        foreign = await make_reseller("Foreign", tenant_id=other_tenant.id)
        with pytest.raises(NotFound):
            await make_reseller("Child", parent_id=foreign.id)

    async def test_policy_inherited_from_parent(self, make_reseller):
        parent = await make_reseller(
            "Parent", commission_type="flat", commission_value=30, rate_type="full_price"
        )
        child = await make_reseller("Child", parent_id=parent.id)
        assert child.commission_type == CommissionType.flat
        assert Decimal(child.commission_value) == Decimal("30")
        assert child.rate_type == RateType.full_price

    async def test_percentage_above_hundred_rejected(self, make_reseller):
        with pytest.raises(ValidationError):
            await make_reseller("Greedy", commission_type="percentage", commission_value=150)

    async def test_duplicate_username_in_tenant(self, make_reseller):
        await make_reseller("One", username="shop1")
        with pytest.raises(ValidationError):
            await make_reseller("Two", username="shop1")

    async def test_opening_balance_goes_through_ledger(self, make_reseller, rows_of):
        r = await make_reseller("Funded", opening_balance=2500)
        rows = await rows_of(r.id)
        assert r.balance == 2500
        assert len(rows) == 1
        assert rows[0].type == TransactionType.deposit
        assert (rows[0].balance_before, rows[0].amount, rows[0].balance_after) == (0, 2500, 2500)

    async def test_portal_creation_needs_permission(self, db, tenant, make_reseller):
        parent = await make_reseller("Parent", can_create_sub_reseller=False)
        with pytest.raises(PermissionDenied):
            await run_ledger_unit(
                db,
                lambda s: hierarchy.create_reseller(
                    s, tenant.id, {"name": "Sub", "parent_id": parent.id}, created_via_portal=True
                ),
            )

    async def test_portal_sub_reseller_can_transfer_unless_told_otherwise(self, db, tenant, make_reseller):
        tid = tenant.id
        pid = (await make_reseller("Parent", can_create_sub_reseller=True)).id

        kiosk = await run_ledger_unit(
            db,
            lambda s: hierarchy.create_reseller(s, tid, {"name": "Kiosk", "parent_id": pid}, created_via_portal=True),
        )
        locked = await run_ledger_unit(
            db,
            lambda s: hierarchy.create_reseller(
                s, tid, {"name": "Locked", "parent_id": pid, "can_transfer_balance": False}, created_via_portal=True
            ),
        )
        desk = await make_reseller("Desk", parent_id=pid)

        assert kiosk.can_transfer_balance is True
        assert locked.can_transfer_balance is False
        assert desk.can_transfer_balance is False

    async def test_string_parent_id_is_stored_as_int(self, db, tenant, make_reseller):
        parent = await make_reseller("Parent")
        child = await make_reseller("Child", parent_id=str(parent.id))

        assert child.parent_id == parent.id
        assert isinstance(child.parent_id, int)
        assert [r.id for r in await hierarchy.get_sub_resellers(db, tenant.id, parent.id)] == [child.id]


class TestUpdate:

    async def test_balance_is_not_patchable(self, db, tenant, make_reseller):
        r = await make_reseller("R")
        with pytest.raises(ValidationError):
            await run_ledger_unit(db, lambda s: hierarchy.update_reseller(s, tenant.id, r.id, {"balance": 99999}))

    async def test_updates_policy_and_limits(self, db, tenant, make_reseller):
        r = await make_reseller("R", max_customers=5)
        updated = await run_ledger_unit(
            db,
            lambda s: hierarchy.update_reseller(
                s, tenant.id, r.id, {"commission_value": 12, "max_customers": None, "can_transfer_balance": True}
            ),
        )
        assert Decimal(updated.commission_value) == Decimal("12")
        assert updated.max_customers is None
        assert updated.can_transfer_balance is True

    async def test_empty_patch_rejected(self, db, tenant, make_reseller):
        r = await make_reseller("R")
        with pytest.raises(ValidationError):
            await run_ledger_unit(db, lambda s: hierarchy.update_reseller(s, tenant.id, r.id, {}))


class TestTree:

    async def test_descendants_breadth_first_active_only(self, db, tenant, make_reseller):
        root = await make_reseller("Root")
        a = await make_reseller("A", parent_id=root.id)
        b = await make_reseller("B", parent_id=root.id)
        a1 = await make_reseller("A1", parent_id=a.id)
        b1 = await make_reseller("B1", parent_id=b.id)
        await run_ledger_unit(db, lambda s: hierarchy.deactivate_reseller(s, tenant.id, b.id))

        found = await hierarchy.get_descendants(db, tenant.id, root.id)
        ids = [r.id for r in found]
        assert ids == [a.id, a1.id]
        assert b1.id not in ids

    async def test_sub_resellers_are_direct_children(self, db, tenant, make_reseller):
        root = await make_reseller("Root")
        a = await make_reseller("A", parent_id=root.id)
        await make_reseller("A1", parent_id=a.id)

        children = await hierarchy.get_sub_resellers(db, tenant.id, root.id)
        assert [c.id for c in children] == [a.id]

    async def test_is_in_subtree(self, db, tenant, make_reseller):
        root = await make_reseller("Root")
        a = await make_reseller("A", parent_id=root.id)
        a1 = await make_reseller("A1", parent_id=a.id)
        other = await make_reseller("Other")

        assert await hierarchy.is_in_subtree(db, tenant.id, root.id, a1.id)
        assert await hierarchy.is_in_subtree(db, tenant.id, a.id, a.id)
        assert not await hierarchy.is_in_subtree(db, tenant.id, a.id, root.id)
        assert not await hierarchy.is_in_subtree(db, tenant.id, root.id, other.id)


class TestCustomerAssignment:

    async def test_customer_limit(self, db, tenant, make_reseller, make_customer):
        r = await make_reseller("R", max_customers=1)
        await make_customer(reseller_id=r.id)
        walk_in = await make_customer()

        with pytest.raises(LimitExceeded):
            await run_ledger_unit(db, lambda s: hierarchy.assign_customer(s, tenant.id, walk_in.id, r.id))

    async def test_assign_and_unassign(self, db, tenant, make_reseller, make_customer):
        r = await make_reseller("R")
        c = await make_customer()

        c = await run_ledger_unit(db, lambda s: hierarchy.assign_customer(s, tenant.id, c.id, r.id))
        assert c.reseller_id == r.id
        c = await run_ledger_unit(db, lambda s: hierarchy.assign_customer(s, tenant.id, c.id, None))
        assert c.reseller_id is None
