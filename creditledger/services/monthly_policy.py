from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from creditledger.core.clock import to_local, utcnow
from creditledger.services.balance import get_balance_row


def is_new_month(last_refresh_at: datetime | None, now: datetime) -> bool:
    """Calendar month check on the local clock, not a rolling 30-day window."""
    if last_refresh_at is None:
        return True
    last, current = to_local(last_refresh_at), to_local(now)
    return (last.year, last.month) != (current.year, current.month)


def month_label(now: datetime) -> str:
    local = to_local(now)
    return f"{local.year}-{local.month}"


async def can_grant_monthly(db: AsyncSession, user_id: str, now: datetime | None = None) -> bool:
    row = await get_balance_row(db, user_id)
    return is_new_month(row.last_refresh_at if row else None, now or utcnow())
