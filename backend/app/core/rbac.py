from __future__ import annotations

import enum


class AccountType(str, enum.Enum):
    operator = "operator"
    reseller = "reseller"


class Role(str, enum.Enum):
    admin = "admin"
    staff = "staff"
    reseller = "reseller"
