from pydantic import Field
from typing import List, Optional

from fintrack.schemas.base import CamelModel

class AccountCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    kind: str = Field("checking", min_length=1, max_length=30)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)

class AccountResponse(CamelModel):
    id: int
    name: str
    kind: str
    balance: float
    currency: str
    is_active: bool

class AccountBalance(CamelModel):
    id: int
    name: str
    kind: str
    balance: float
    currency: str

class BalanceResponse(CamelModel):
    total_balance: float
    accounts: List[AccountBalance]
    monthly_expenditure: Optional[float] = None

class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    icon: Optional[str] = Field(None, max_length=10)
    color: Optional[str] = Field(None, max_length=20)

class CategoryResponse(CamelModel):
    id: int
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None
