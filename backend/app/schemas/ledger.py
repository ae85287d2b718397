from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional, List


class TransactionOut(BaseModel):
    id: int
    reseller_id: int
    type: str
    amount: int
    balance_before: int
    balance_after: int
    sequence: int
    customer_id: Optional[int]
    from_reseller_id: Optional[int]
    to_reseller_id: Optional[int]
    reference_id: Optional[str]
    reference_type: Optional[str]
    description: Optional[str]
    created_by: Optional[str]
    created_at: datetime


class TransactionList(BaseModel):
    items: List[TransactionOut]
    total: int


class AmountRequest(BaseModel):
    amount: int = Field(gt=0)
    description: Optional[str] = Field(default=None, max_length=255)


class TransferRequest(AmountRequest):
    from_reseller_id: int
    to_reseller_id: int


class TransferOut(BaseModel):
    amount: int
    from_reseller_id: int
    to_reseller_id: int
    from_balance: int
    to_balance: int
    from_transaction_id: int
    to_transaction_id: int


def tx_to_out(t) -> TransactionOut:
    return TransactionOut(
        id=t.id,
        reseller_id=t.reseller_id,
        type=t.type.value,
        amount=t.amount,
        balance_before=t.balance_before,
        balance_after=t.balance_after,
        sequence=t.sequence,
        customer_id=t.customer_id,
        from_reseller_id=t.from_reseller_id,
        to_reseller_id=t.to_reseller_id,
        reference_id=t.reference_id,
        reference_type=t.reference_type,
        description=t.description,
        created_by=t.created_by,
        created_at=t.created_at,
    )
