from pydantic import BaseModel, BeforeValidator, Field, ConfigDict, field_validator
from typing import Annotated, Optional, Union, List
import datetime as dt
from decimal import Decimal

from fintrack.models.transaction import TransactionType, TransactionStatus
from fintrack.schemas.base import CamelModel

EntityRef = Union[int, str]

def _lenient(enum_cls):
    def coerce(v):
        if isinstance(v, str):
            try:
                return enum_cls(v)
            except ValueError:
                return v
        return v
    return BeforeValidator(coerce)

# Accept "INCOME", "income" and "Income" alike
TypeField = Annotated[TransactionType, _lenient(TransactionType)]
StatusField = Annotated[TransactionStatus, _lenient(TransactionStatus)]

class TransactionBase(CamelModel):
    date: dt.date
    account: EntityRef
    category: EntityRef
    type: TypeField
    amount: Decimal = Field(..., gt=0)
    status: StatusField = TransactionStatus.CLEARED
    description: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = None

class TransactionCreate(TransactionBase):
    receipt_url: Optional[str] = None

    @field_validator('status')
    @classmethod
    def status_must_be_open(cls, v: TransactionStatus) -> TransactionStatus:
        if v == TransactionStatus.CANCELLED:
            raise ValueError('Status must be either "Cleared" or "Pending"')
        return v

class TransactionUpdate(CamelModel):
    date: Optional[dt.date] = None
    account: Optional[EntityRef] = None
    category: Optional[EntityRef] = None
    type: Optional[TypeField] = None
    amount: Optional[Decimal] = Field(None, gt=0)
    status: Optional[StatusField] = None
    description: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = None
    receipt_url: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    def to_updates(self) -> dict:
        """Only the fields the caller actually sent, keyed by field name."""
        return self.model_dump(exclude_unset=True, by_alias=False)

class TransactionResponse(CamelModel):
    id: int
    date: dt.date
    account: str
    account_id: int
    category: str
    category_id: int
    type: TransactionType
    amount: float
    status: TransactionStatus
    description: Optional[str] = None
    notes: Optional[str] = None
    receipt_url: Optional[str] = None

    @classmethod
    def from_orm_obj(cls, trx) -> "TransactionResponse":
        return cls(
            id=trx.id,
            date=trx.date,
            account=trx.account.name,
            account_id=trx.account_id,
            category=trx.category.name,
            category_id=trx.category_id,
            type=trx.type,
            amount=float(trx.amount),
            status=trx.status,
            description=trx.description,
            notes=trx.notes,
            receipt_url=trx.receipt_url
        )

class TransactionListResponse(CamelModel):
    transactions: List[TransactionResponse]
    total: int

class DeleteResponse(BaseModel):
    success: bool
    message: str
