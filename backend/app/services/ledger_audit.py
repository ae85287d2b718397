"""Read-only ledger replay.

For every reseller the ledger is replayed in sequence order and compared
with the stored balance. Nothing is repaired here; findings are returned
and logged for an operator to look at.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.ledger import ResellerTransaction
from app.models.reseller import Reseller
from app.services.task_metrics import AuditRunStats

logger = logging.getLogger(__name__)

ROW_ARITHMETIC = "row_arithmetic"
BROKEN_CHAIN = "broken_chain"
SEQUENCE_GAP = "sequence_gap"
BALANCE_MISMATCH = "balance_mismatch"


@dataclass
class AuditFinding:
    reseller_id: int
    kind: str
    detail: str
    transaction_id: int | None = None


async def audit_reseller(db: AsyncSession, reseller: Reseller, batch_size: int, stats: AuditRunStats | None = None) -> list[AuditFinding]:
    """Replay one ledger against a snapshot of the reseller row.

    Rows are checked up to the newest one, but the balance is compared with
    the running sum at sequence ``reseller.version``: rows appended after the
    snapshot was read belong to a later balance.
    """
    findings: list[AuditFinding] = []
    version, balance = reseller.version, reseller.balance
    prev: ResellerTransaction | None = None
    replayed = 0
    expected_seq = 1
    last_seq = 0
    while True:
        q = await db.execute(
            select(ResellerTransaction)
            .where(
                ResellerTransaction.reseller_id == reseller.id,
                ResellerTransaction.sequence > last_seq,
            )
            .order_by(ResellerTransaction.sequence.asc())
            .limit(batch_size)
        )
        rows = q.scalars().all()
        if not rows:
            break
        if stats is not None:
            stats.scanned_transactions += len(rows)

        for tx in rows:
            if tx.balance_after != tx.balance_before + tx.amount:
                findings.append(AuditFinding(
                    reseller.id, ROW_ARITHMETIC,
                    f"{tx.balance_before} + {tx.amount} != {tx.balance_after}", tx.id,
                ))
            if prev is not None and tx.balance_before != prev.balance_after:
                findings.append(AuditFinding(
                    reseller.id, BROKEN_CHAIN,
                    f"balance_before {tx.balance_before} != previous balance_after {prev.balance_after}", tx.id,
                ))
            if tx.sequence != expected_seq:
                findings.append(AuditFinding(
                    reseller.id, SEQUENCE_GAP, f"expected sequence {expected_seq}, got {tx.sequence}", tx.id,
                ))
            expected_seq = tx.sequence + 1
            prev = tx
            if tx.sequence <= version:
                replayed = tx.balance_after

        last_seq = rows[-1].sequence
        if len(rows) < batch_size:
            break

    if replayed != balance:
        findings.append(AuditFinding(
            reseller.id, BALANCE_MISMATCH, f"stored balance {balance}, ledger replays to {replayed}",
        ))
    if last_seq > version:
        q = await db.execute(select(Reseller.version).where(Reseller.id == reseller.id))
        current = q.scalar_one()
        if last_seq > current:
            findings.append(AuditFinding(
                reseller.id, SEQUENCE_GAP, f"sequence {last_seq} is beyond reseller version {current}",
            ))
    return findings


async def audit_ledgers(
    db: AsyncSession,
    tenant_id: int | None = None,
    batch_size: int | None = None,
) -> tuple[AuditRunStats, list[AuditFinding]]:
    """Replay every reseller's ledger (optionally one tenant) in keyset batches."""
    batch_size = max(1, int(batch_size or settings.LEDGER_AUDIT_BATCH_SIZE))
    stats = AuditRunStats()
    findings: list[AuditFinding] = []
    last_id = 0
    while True:
        stmt = (
            select(Reseller)
            .where(Reseller.id > last_id)
            .order_by(Reseller.id.asc())
            .limit(batch_size)
            .execution_options(populate_existing=True)
        )
        if tenant_id is not None:
            stmt = stmt.where(Reseller.tenant_id == tenant_id)
        q = await db.execute(stmt)
        resellers = q.scalars().all()
        if not resellers:
            break

        for r in resellers:
            stats.scanned_resellers += 1
            found = await audit_reseller(db, r, batch_size, stats)
            if found:
                stats.inconsistent_resellers += 1
                stats.findings += len(found)
                for f in found:
                    logger.warning(
                        "ledger audit finding reseller_id=%s kind=%s tx_id=%s detail=%s",
                        f.reseller_id, f.kind, f.transaction_id, f.detail,
                    )
                findings.extend(found)

        last_id = resellers[-1].id
        if len(resellers) < batch_size:
            break

    logger.info(
        "ledger audit done resellers=%s transactions=%s findings=%s",
        stats.scanned_resellers, stats.scanned_transactions, stats.findings,
    )
    return stats, findings
