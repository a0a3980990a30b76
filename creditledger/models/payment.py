from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from creditledger.core.clock import utcnow
from creditledger.db import Base


ACTIVE_STATUSES = ("active", "trialing")


class Payment(Base):
    """Payment/subscription record written by the payment provider integration."""

    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_user_status_created", "user_id", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    price_id: Mapped[str] = mapped_column(String(128))

    type: Mapped[str] = mapped_column(String(16), default="subscription")  # subscription/one_time
    interval: Mapped[str | None] = mapped_column(String(16), nullable=True)  # month/year
    status: Mapped[str] = mapped_column(String(32))  # active/trialing/canceled/completed/...

    invoice_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
