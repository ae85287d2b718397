from pydantic import BaseModel, Field
from typing import Literal

class LoginRequest(BaseModel):
    tenant_id: int
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=128)
    account_type: Literal["operator", "reseller"] = "operator"

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
