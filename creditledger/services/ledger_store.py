from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_

from creditledger.core.clock import utcnow
from creditledger.core.errors import InvalidAmount, InvalidParams
from creditledger.models.credit import CreditTransaction, DEBIT_TYPES


def _type_value(type_: object) -> str:
    return getattr(type_, "value", type_)


async def append_entry(
    db: AsyncSession,
    user_id: str,
    type_: str,
    amount: int,
    description: str,
    payment_id: str | None = None,
    expiration_date: datetime | None = None,
    now: datetime | None = None,
) -> CreditTransaction:
    type_ = _type_value(type_)
    if not user_id or not type_ or not description:
        raise InvalidParams(f"append_entry: invalid params user={user_id!r} type={type_!r}")
    if not isinstance(amount, int) or isinstance(amount, bool) or amount == 0:
        raise InvalidAmount(f"append_entry: invalid amount {amount!r}")

    now = now or utcnow()
    entry = CreditTransaction(
        user_id=user_id,
        type=type_,
        amount=amount,
        # earn entries start fully available, debit entries carry nothing
        remaining_amount=None if type_ in DEBIT_TYPES else amount,
        description=description,
        payment_id=payment_id,
        expiration_date=expiration_date,
        created_at=now,
        updated_at=now,
    )
    db.add(entry)
    await db.flush()
    return entry


async def list_available_entries(
    db: AsyncSession,
    user_id: str,
    *,
    active_at: datetime | None = None,
    expired_at: datetime | None = None,
    for_update: bool = False,
) -> list[CreditTransaction]:
    """Earn entries with credit left, oldest expiration first, undated last."""
    stmt = select(CreditTransaction).where(
        CreditTransaction.user_id == user_id,
        CreditTransaction.type.not_in(DEBIT_TYPES),
        CreditTransaction.remaining_amount > 0,
        CreditTransaction.expiration_date_processed_at.is_(None),
    )
    if active_at is not None:
        stmt = stmt.where(
            or_(
                CreditTransaction.expiration_date.is_(None),
                CreditTransaction.expiration_date > active_at,
            )
        )
    if expired_at is not None:
        stmt = stmt.where(
            CreditTransaction.expiration_date.is_not(None),
            CreditTransaction.expiration_date <= expired_at,
        )
    stmt = stmt.order_by(
        CreditTransaction.expiration_date.asc().nulls_last(),
        CreditTransaction.created_at.asc(),
    )
    if for_update:
        stmt = stmt.with_for_update()
    return list((await db.execute(stmt)).scalars().all())


async def has_entry_of_type(db: AsyncSession, user_id: str, type_: str) -> bool:
    row = (
        await db.execute(
            select(CreditTransaction.id)
            .where(CreditTransaction.user_id == user_id, CreditTransaction.type == _type_value(type_))
            .limit(1)
        )
    ).scalar_one_or_none()
    return row is not None


async def has_payment_entry(db: AsyncSession, type_: str, payment_id: str) -> bool:
    row = (
        await db.execute(
            select(CreditTransaction.id)
            .where(CreditTransaction.type == _type_value(type_), CreditTransaction.payment_id == payment_id)
            .limit(1)
        )
    ).scalar_one_or_none()
    return row is not None


async def update_entry_remaining(
    db: AsyncSession,
    entry: CreditTransaction,
    remaining: int,
    *,
    processed_at: datetime | None = None,
    now: datetime | None = None,
) -> None:
    if entry.remaining_amount is None:
        raise InvalidParams(f"entry {entry.id} is a debit record")
    if remaining < 0 or remaining > entry.amount:
        raise InvalidAmount(f"remaining {remaining} out of range for entry {entry.id}")

    entry.remaining_amount = remaining
    if processed_at is not None:
        entry.expiration_date_processed_at = processed_at
    entry.updated_at = now or utcnow()
    await db.flush()


async def list_entries(
    db: AsyncSession, user_id: str, page: int = 1, page_size: int = 20
) -> tuple[list[CreditTransaction], int]:
    if page <= 0:
        page = 1
    if page_size <= 0 or page_size > 100:
        page_size = 20

    total = (
        await db.execute(
            select(func.count()).select_from(CreditTransaction).where(CreditTransaction.user_id == user_id)
        )
    ).scalar_one()
    rows = (
        await db.execute(
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).scalars().all()
    return list(rows), int(total)
