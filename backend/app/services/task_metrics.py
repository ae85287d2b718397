from __future__ import annotations
from dataclasses import asdict, dataclass

@dataclass
class AuditRunStats:
    scanned_resellers: int = 0
    scanned_transactions: int = 0
    inconsistent_resellers: int = 0
    findings: int = 0

    def as_dict(self) -> dict:
        return asdict(self)
