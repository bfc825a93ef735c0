from pydantic import Field
from typing import List, Optional, Union

from fintrack.models.transaction import TransactionStatus
from fintrack.schemas.base import CamelModel
from fintrack.schemas.transaction import EntityRef, StatusField

class ReceiptItem(CamelModel):
    name: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None

class ReceiptData(CamelModel):
    """Fields read off a receipt image. Anything not visible stays None."""
    merchant_name: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    total_amount: Optional[float] = None
    currency: Optional[str] = None
    tax_amount: Optional[float] = None
    items: List[ReceiptItem] = Field(default_factory=list)
    payment_method: Optional[str] = None
    receipt_number: Optional[Union[str, int]] = None
    category: Optional[str] = None

class ReceiptExtraction(CamelModel):
    ok: bool
    data: Optional[ReceiptData] = None
    error: Optional[str] = None
    raw_response: Optional[str] = None

class ReceiptCommit(CamelModel):
    receipt: ReceiptData
    account: EntityRef
    category: Optional[EntityRef] = None
    status: StatusField = TransactionStatus.PENDING
    notes: Optional[str] = None
    receipt_url: Optional[str] = None
