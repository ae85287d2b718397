from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

class RechargeRequest(BaseModel):
    customer_id: int
    amount: int = Field(gt=0)
    months: int = Field(default=1, ge=1, le=120)
    payment_method: str = Field(min_length=1, max_length=32)
    discount: int = Field(default=0, ge=0)
    notes: Optional[str] = Field(default=None, max_length=255)

class PayCustomerRequest(BaseModel):
    amount: int = Field(gt=0)
    months: int = Field(default=1, ge=1, le=120)

class RechargeOut(BaseModel):
    recharge_id: int
    customer_id: int
    old_expiry: Optional[datetime]
    new_expiry: datetime
    reseller_id: Optional[int] = None
    reseller_charged: bool = False
    insufficient_balance: bool = False
    commission: int = 0
    deduct_amount: int = 0
    reseller_balance: Optional[int] = None
    transaction_id: Optional[int] = None

class CollectionItemIn(BaseModel):
    customer_id: int
    amount: int = Field(gt=0)
    months: int = Field(default=1, ge=1, le=120)

class MultiCollectionRequest(BaseModel):
    items: List[CollectionItemIn] = Field(min_length=1, max_length=500)
    payment_method: str = Field(min_length=1, max_length=32)
    notes: Optional[str] = Field(default=None, max_length=255)

class CollectionItemOut(BaseModel):
    customer_id: int
    amount: int
    months: int
    status: str
    error: Optional[str] = None
    recharge_id: Optional[int] = None
    reseller_charged: bool = False

class CollectionOut(BaseModel):
    collection_id: int
    total_amount: int
    total_customers: int
    succeeded_count: int
    failed_count: int
    collected_amount: int
    items: List[CollectionItemOut]

class AssignCustomerRequest(BaseModel):
    reseller_id: Optional[int] = None

class CustomerOut(BaseModel):
    id: int
    reseller_id: Optional[int]
    name: str
    status: str
    expiry_date: Optional[datetime]

class RechargeHistoryOut(BaseModel):
    id: int
    customer_id: int
    reseller_id: Optional[int]
    amount: int
    months: int
    discount: int
    payment_method: str
    old_expiry: Optional[datetime]
    new_expiry: datetime
    status: str
    collected_by_type: str
    collected_by_name: str
    commission: int
    reseller_charged: bool
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

class RechargeHistoryList(BaseModel):
    items: List[RechargeHistoryOut]
    total: int

def recharge_to_out(r) -> RechargeHistoryOut:
    return RechargeHistoryOut(
        id=r.id,
        customer_id=r.customer_id,
        reseller_id=r.reseller_id,
        amount=r.amount,
        months=r.months,
        discount=r.discount,
        payment_method=r.payment_method,
        old_expiry=r.old_expiry,
        new_expiry=r.new_expiry,
        status=r.status.value,
        collected_by_type=r.collected_by_type,
        collected_by_name=r.collected_by_name,
        commission=r.commission,
        reseller_charged=r.reseller_charged,
        notes=r.notes,
        created_at=r.created_at,
    )
