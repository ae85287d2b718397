from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional, List, Literal

CommissionTypeIn = Literal["percentage", "flat"]
RateTypeIn = Literal["discount", "full_price"]


class ResellerPolicyFields(BaseModel):
    commission_type: Optional[CommissionTypeIn] = None
    commission_value: Optional[Decimal] = Field(default=None, ge=0)
    rate_type: Optional[RateTypeIn] = None
    customer_rate: Optional[Decimal] = Field(default=None, ge=0)

    can_create_sub_reseller: Optional[bool] = None
    can_add_customers: Optional[bool] = None
    can_edit_customers: Optional[bool] = None
    can_delete_customers: Optional[bool] = None
    can_recharge_customers: Optional[bool] = None
    can_view_sub_customers: Optional[bool] = None
    can_transfer_balance: Optional[bool] = None

    max_sub_resellers: Optional[int] = Field(default=None, ge=0)
    max_customers: Optional[int] = Field(default=None, ge=0)


class CreateResellerRequest(ResellerPolicyFields):
    name: str = Field(min_length=1, max_length=128)
    username: Optional[str] = Field(default=None, min_length=3, max_length=64)
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=32)
    parent_id: Optional[int] = None
    opening_balance: int = Field(default=0, ge=0)


class CreateSubResellerRequest(ResellerPolicyFields):
    # parent is always the calling reseller
    name: str = Field(min_length=1, max_length=128)
    username: Optional[str] = Field(default=None, min_length=3, max_length=64)
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=32)


class UpdateResellerRequest(ResellerPolicyFields):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    username: Optional[str] = Field(default=None, min_length=3, max_length=64)
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=32)


class ResellerOut(BaseModel):
    id: int
    parent_id: Optional[int]
    level: int
    role: str
    name: str
    username: Optional[str]
    phone: Optional[str]
    balance: int
    total_collections: int
    commission_type: str
    commission_value: Optional[float]
    rate_type: str
    customer_rate: Optional[float]
    can_create_sub_reseller: bool
    can_add_customers: bool
    can_edit_customers: bool
    can_delete_customers: bool
    can_recharge_customers: bool
    can_view_sub_customers: bool
    can_transfer_balance: bool
    max_sub_resellers: Optional[int]
    max_customers: Optional[int]
    is_active: bool


class ResellerList(BaseModel):
    items: List[ResellerOut]
    total: int


def _num(v) -> Optional[float]:
    return float(v) if v is not None else None


def reseller_to_out(r) -> ResellerOut:
    return ResellerOut(
        id=r.id,
        parent_id=r.parent_id,
        level=r.level,
        role=r.role.value,
        name=r.name,
        username=r.username,
        phone=r.phone,
        balance=r.balance,
        total_collections=r.total_collections,
        commission_type=r.commission_type.value,
        commission_value=_num(r.commission_value),
        rate_type=r.rate_type.value,
        customer_rate=_num(r.customer_rate),
        can_create_sub_reseller=r.can_create_sub_reseller,
        can_add_customers=r.can_add_customers,
        can_edit_customers=r.can_edit_customers,
        can_delete_customers=r.can_delete_customers,
        can_recharge_customers=r.can_recharge_customers,
        can_view_sub_customers=r.can_view_sub_customers,
        can_transfer_balance=r.can_transfer_balance,
        max_sub_resellers=r.max_sub_resellers,
        max_customers=r.max_customers,
        is_active=r.is_active,
    )
