from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from fintrack.core.database import Base, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # Opaque id handed over by the identity provider; one local user per identity
    identity_ref = Column(String(191), unique=True, nullable=False, index=True)

    email = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    accounts = relationship("Account", order_by="Account.id", lazy="selectin")
    categories = relationship("Category", order_by="Category.id", lazy="selectin")
