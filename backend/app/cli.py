import argparse
import asyncio
import logging
from sqlalchemy import select
from app.core.config import settings
from app.core.db import AsyncSessionLocal
from app.core.security import hash_password
from app.models.tenant import Operator, OperatorRole, Tenant
from app.services.ledger_audit import audit_ledgers

logger = logging.getLogger(__name__)


async def create_tenant(name: str):
    async with AsyncSessionLocal() as db:
        t = Tenant(name=name, is_active=True)
        db.add(t)
        await db.commit()
        print("Created tenant:", t.id, name)


async def create_admin(tenant_id: int, username: str, password: str, role: str = "admin"):
    async with AsyncSessionLocal() as db:
        q = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
        if q.scalar_one_or_none() is None:
            raise SystemExit("Tenant not found")
        q = await db.execute(select(Operator).where(Operator.tenant_id == tenant_id, Operator.username == username))
        if q.scalar_one_or_none():
            raise SystemExit("User already exists")
        op = Operator(
            tenant_id=tenant_id,
            username=username,
            password_hash=hash_password(password),
            display_name=username,
            role=OperatorRole(role),
            is_active=True,
        )
        db.add(op)
        await db.commit()
        print("Created operator:", username, "role:", op.role.value)


async def audit_ledger(tenant_id: int | None = None, batch_size: int | None = None) -> int:
    async with AsyncSessionLocal() as db:
        stats, findings = await audit_ledgers(db, tenant_id=tenant_id, batch_size=batch_size)
    for f in findings:
        print(f"[{f.kind}] reseller_id={f.reseller_id} tx_id={f.transaction_id} {f.detail}")
    print(
        f"[LEDGER-AUDIT] resellers={stats.scanned_resellers} transactions={stats.scanned_transactions} "
        f"inconsistent={stats.inconsistent_resellers} findings={stats.findings}"
    )
    return 1 if findings else 0


def main():
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    parser = argparse.ArgumentParser()
    sub = parser.add_subparsers(dest="cmd")

    t = sub.add_parser("create-tenant")
    t.add_argument("--name", required=True)

    c = sub.add_parser("create-admin")
    c.add_argument("--tenant-id", type=int, required=True)
    c.add_argument("--username", required=True)
    c.add_argument("--password", required=True)
    c.add_argument("--role", choices=[r.value for r in OperatorRole], default="admin")

    a = sub.add_parser("audit-ledger")
    a.add_argument("--tenant-id", type=int, default=None)
    a.add_argument("--batch-size", type=int, default=None)

    args = parser.parse_args()
    if args.cmd == "create-tenant":
        asyncio.run(create_tenant(args.name))
    elif args.cmd == "create-admin":
        asyncio.run(create_admin(args.tenant_id, args.username, args.password, args.role))
    elif args.cmd == "audit-ledger":
        raise SystemExit(asyncio.run(audit_ledger(tenant_id=args.tenant_id, batch_size=args.batch_size)))
    else:
        parser.print_help()

if __name__ == "__main__":
    main()
