from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from creditledger.core.clock import utcnow
from creditledger.models.credit import CreditTransactionType
from creditledger.services.balance import get_balance_row, set_balance
from creditledger.services.ledger_store import append_entry, list_available_entries, update_entry_remaining


logger = logging.getLogger(__name__)


async def sweep(db: AsyncSession, user_id: str, now: datetime | None = None) -> int:
    """Reclaim unused credit past its expiration date; returns the expired total.

    Entries are stamped with expiration_date_processed_at, so a second run
    right after finds nothing and writes nothing.
    """
    now = now or utcnow()
    expired = await list_available_entries(db, user_id, expired_at=now, for_update=True)

    expired_total = 0
    for entry in expired:
        remain = entry.remaining_amount or 0
        if remain <= 0:
            continue
        expired_total += remain
        await update_entry_remaining(db, entry, 0, processed_at=now, now=now)

    if expired_total <= 0:
        return 0

    row = await get_balance_row(db, user_id, for_update=True)
    current = row.current_credits if row else 0
    if expired_total > current:
        logger.warning(
            "sweep: expired %s credits exceed balance %s for user %s, clamping to 0",
            expired_total, current, user_id,
        )
    await set_balance(db, user_id, max(0, current - expired_total), row=row, now=now)
    await append_entry(
        db,
        user_id,
        CreditTransactionType.EXPIRE,
        -expired_total,
        f"Expire credits: {expired_total}",
        now=now,
    )
    logger.info("sweep: %s credits expired for user %s", expired_total, user_id)
    return expired_total
