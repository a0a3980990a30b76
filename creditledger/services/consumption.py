from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from creditledger.core.clock import utcnow
from creditledger.core.errors import InsufficientCredits
from creditledger.models.credit import CreditTransactionType
from creditledger.services.balance import get_balance, get_balance_row, set_balance
from creditledger.services.expiration import sweep
from creditledger.services.ledger_store import append_entry, list_available_entries, update_entry_remaining
from creditledger.services.validation import positive_int, require_text


logger = logging.getLogger(__name__)


async def has_enough_credits(db: AsyncSession, user_id: str, required: int) -> bool:
    return await get_balance(db, user_id) >= required


async def consume(
    db: AsyncSession,
    user_id: str,
    amount: int,
    description: str,
    now: datetime | None = None,
) -> int:
    """Spend credits FIFO by expiration and return the new balance.

    Raises InsufficientCredits without writing anything when the balance is short.
    """
    require_text(user_id=user_id, description=description)
    amount = positive_int(amount)
    now = now or utcnow()

    await sweep(db, user_id, now=now)

    row = await get_balance_row(db, user_id, for_update=True)
    balance = row.current_credits if row else 0
    if balance < amount:
        logger.warning("consume: insufficient credits for user %s, required %s, balance %s", user_id, amount, balance)
        raise InsufficientCredits(f"user {user_id} has {balance} credits, {amount} required")

    entries = await list_available_entries(db, user_id, active_at=now, for_update=True)
    owed = amount
    for entry in entries:
        if owed <= 0:
            break
        remain = entry.remaining_amount or 0
        if remain <= 0:
            continue
        take = min(remain, owed)
        await update_entry_remaining(db, entry, remain - take, now=now)
        owed -= take

    if owed > 0:
        # balance and ledger disagree; charge the balance anyway and surface the drift
        logger.warning(
            "consume: ledger short by %s credits for user %s (balance %s, amount %s)",
            owed, user_id, balance, amount,
        )

    new_balance = balance - amount
    await set_balance(db, user_id, new_balance, row=row, now=now)
    await append_entry(db, user_id, CreditTransactionType.USAGE, -amount, description, now=now)
    return new_balance
