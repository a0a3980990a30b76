from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, or_

from creditledger.models.payment import Payment, ACTIVE_STATUSES
from creditledger.models.user import User


@dataclass(frozen=True)
class SubscriptionRecord:
    user_id: str
    price_id: str | None = None
    status: str | None = None
    created_at: datetime | None = None

    @property
    def has_active_subscription(self) -> bool:
        return bool(self.price_id) and self.status in ACTIVE_STATUSES


async def load_user_subscriptions(db: AsyncSession) -> list[SubscriptionRecord]:
    """Every non-banned user with their latest active/trialing payment, if any."""
    latest_payment = (
        select(
            Payment.user_id,
            Payment.price_id,
            Payment.status,
            Payment.created_at,
            func.row_number()
            .over(partition_by=Payment.user_id, order_by=Payment.created_at.desc())
            .label("row_number"),
        )
        .where(Payment.status.in_(ACTIVE_STATUSES))
        .subquery("latest_payment")
    )

    stmt = (
        select(
            User.id,
            latest_payment.c.price_id,
            latest_payment.c.status,
            latest_payment.c.created_at,
        )
        .outerjoin(
            latest_payment,
            and_(latest_payment.c.user_id == User.id, latest_payment.c.row_number == 1),
        )
        .where(or_(User.is_banned.is_(None), User.is_banned.is_(False)))
        .order_by(User.created_at.asc(), User.id.asc())
    )

    rows = (await db.execute(stmt)).all()
    return [
        SubscriptionRecord(user_id=user_id, price_id=price_id, status=status, created_at=created_at)
        for user_id, price_id, status, created_at in rows
    ]
