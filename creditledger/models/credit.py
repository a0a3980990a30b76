from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Integer, ForeignKey, DateTime, String, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from creditledger.core.clock import utcnow
from creditledger.db import Base


class CreditTransactionType(str, Enum):
    REGISTER_GIFT = "register_gift"
    MONTHLY_REFRESH = "monthly_refresh"
    SUBSCRIPTION_RENEWAL = "subscription_renewal"
    LIFETIME_MONTHLY = "lifetime_monthly"
    PURCHASE_PACKAGE = "purchase_package"
    USAGE = "usage"
    EXPIRE = "expire"


# debit records: no remaining amount, never part of FIFO selection
DEBIT_TYPES = (CreditTransactionType.USAGE.value, CreditTransactionType.EXPIRE.value)
EARN_TYPES = tuple(t.value for t in CreditTransactionType if t.value not in DEBIT_TYPES)


def new_id() -> str:
    return str(uuid.uuid4())


class UserCredit(Base):
    __tablename__ = "user_credits"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), primary_key=True)
    current_credits: Mapped[int] = mapped_column(Integer, default=0)
    last_refresh_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # every UPDATE is guarded by "WHERE version = <loaded version>"
    __mapper_args__ = {"version_id_col": version}


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"
    __table_args__ = (
        # one package purchase per payment; other grants only carry payment_id for correlation
        Index(
            "uq_credit_transactions_purchase_payment",
            "payment_id",
            unique=True,
            sqlite_where=text("type = 'purchase_package'"),
            postgresql_where=text("type = 'purchase_package'"),
        ),
        Index("ix_credit_transactions_user_type", "user_id", "type"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    type: Mapped[str] = mapped_column(String(32))
    amount: Mapped[int] = mapped_column(Integer)
    remaining_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str] = mapped_column(String(255))
    payment_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expiration_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    expiration_date_processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
