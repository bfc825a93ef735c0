from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint,
)
from fintrack.core.database import Base, utcnow


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_accounts_user_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    kind = Column(String(32), nullable=False, default="checking")
    # Denormalized: sum of signed amounts of this account's cleared transactions
    balance = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_categories_user_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    icon = Column(String(16), nullable=True)
    color = Column(String(16), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
