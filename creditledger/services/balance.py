from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from creditledger.core.clock import utcnow
from creditledger.core.errors import BalanceConflict, InvalidAmount
from creditledger.models.credit import UserCredit


async def get_balance_row(db: AsyncSession, user_id: str, *, for_update: bool = False) -> UserCredit | None:
    stmt = select(UserCredit).where(UserCredit.user_id == user_id)
    if for_update:
        # row lock on postgres; sqlite ignores it and relies on the version check
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_balance(db: AsyncSession, user_id: str) -> int:
    row = await get_balance_row(db, user_id)
    return row.current_credits if row else 0


async def _flush(db: AsyncSession, user_id: str) -> None:
    try:
        await db.flush()
    except StaleDataError as exc:
        raise BalanceConflict(f"balance of user {user_id} changed concurrently") from exc
    except IntegrityError as exc:
        raise BalanceConflict(f"balance of user {user_id} was created concurrently") from exc


async def set_balance(
    db: AsyncSession,
    user_id: str,
    credits: int,
    *,
    row: UserCredit | None = None,
    now: datetime | None = None,
    last_refresh_at: datetime | None = None,
) -> UserCredit:
    """Upsert current_credits; `row` is the locked row read before computing `credits`.

    `last_refresh_at`, when given, is written in the same flush.
    """
    if credits < 0:
        raise InvalidAmount(f"balance of user {user_id} cannot become {credits}")
    now = now or utcnow()
    if row is None:
        row = await get_balance_row(db, user_id, for_update=True)
    if row is None:
        row = UserCredit(user_id=user_id, current_credits=credits, created_at=now, updated_at=now)
        db.add(row)
    else:
        row.current_credits = credits
        row.updated_at = now
    if last_refresh_at is not None:
        row.last_refresh_at = last_refresh_at
    await _flush(db, user_id)
    return row


async def set_last_refresh_at(
    db: AsyncSession, user_id: str, value: datetime, *, now: datetime | None = None
) -> None:
    row = await get_balance_row(db, user_id, for_update=True)
    if row is None:
        return
    row.last_refresh_at = value
    row.updated_at = now or utcnow()
    await _flush(db, user_id)
