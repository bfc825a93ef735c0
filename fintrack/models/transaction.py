import enum

from sqlalchemy import (
    JSON, CheckConstraint, Column, Date, DateTime, Enum, ForeignKey, Index, Integer, Numeric,
    String, Text,
)
from sqlalchemy.orm import relationship
from fintrack.core.database import Base, utcnow


class _LenientEnum(str, enum.Enum):
    """Accepts member names or values in any letter case ("INCOME", "income", "Income")."""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if member.value.lower() == key or member.name.lower() == key:
                    return member
        return None


class TransactionType(_LenientEnum):
    INCOME = "Income"
    EXPENSE = "Expense"


class TransactionStatus(_LenientEnum):
    CLEARED = "Cleared"
    PENDING = "Pending"
    CANCELLED = "Cancelled"


def _enum_column(enum_cls):
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        validate_strings=True,
        length=16,
    )


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        Index("ix_transactions_user_date", "user_id", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="RESTRICT"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False, index=True)

    # Always positive; the sign lives in `type`
    amount = Column(Numeric(14, 2), nullable=False)
    type = Column(_enum_column(TransactionType), nullable=False)
    status = Column(_enum_column(TransactionStatus), nullable=False, default=TransactionStatus.CLEARED)
    date = Column(Date, nullable=False)

    description = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)
    receipt_url = Column(String, nullable=True)
    receipt_data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    account = relationship("Account", lazy="joined", innerjoin=True)
    category = relationship("Category", lazy="joined", innerjoin=True)
