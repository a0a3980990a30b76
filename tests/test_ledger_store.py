from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from creditledger.core.errors import InvalidAmount, InvalidParams
from creditledger.models.credit import CreditTransactionType
from creditledger.services.ledger_store import (
    append_entry,
    has_entry_of_type,
    list_available_entries,
    list_entries,
    update_entry_remaining,
)


DAY0 = datetime(2026, 3, 10, 12, 0, 0)


async def test_append_entry_sets_remaining_for_earn_types_only(db) -> None:
    earn = await append_entry(db, "user-001", CreditTransactionType.PURCHASE_PACKAGE, 40, "package", now=DAY0)
    usage = await append_entry(db, "user-001", CreditTransactionType.USAGE, -15, "chat", now=DAY0)

    assert earn.remaining_amount == 40
    assert earn.type == "purchase_package"
    assert earn.created_at == DAY0
    assert usage.remaining_amount is None
    assert usage.amount == -15


@pytest.mark.parametrize(
    ("user_id", "type_", "description"),
    [("", "usage", "x"), ("user-001", "", "x"), ("user-001", "usage", "")],
)
async def test_append_entry_rejects_missing_params(db, user_id, type_, description) -> None:
    with pytest.raises(InvalidParams):
        await append_entry(db, user_id, type_, -1, description)


async def test_append_entry_rejects_zero_amount(db) -> None:
    with pytest.raises(InvalidAmount):
        await append_entry(db, "user-001", CreditTransactionType.USAGE, 0, "chat")


async def test_available_entries_are_ordered_by_expiration_then_creation(db) -> None:
    undated = await append_entry(db, "user-001", "purchase_package", 5, "undated", now=DAY0)
    late = await append_entry(
        db, "user-001", "purchase_package", 5, "late", expiration_date=DAY0 + timedelta(days=20), now=DAY0
    )
    soon_second = await append_entry(
        db, "user-001", "purchase_package", 5, "soon-2",
        expiration_date=DAY0 + timedelta(days=5), now=DAY0 + timedelta(minutes=2),
    )
    soon_first = await append_entry(
        db, "user-001", "purchase_package", 5, "soon-1",
        expiration_date=DAY0 + timedelta(days=5), now=DAY0 + timedelta(minutes=1),
    )
    await append_entry(db, "user-001", "usage", -3, "chat", now=DAY0)
    await append_entry(db, "user-002", "purchase_package", 5, "other user", now=DAY0)

    entries = await list_available_entries(db, "user-001")

    assert [e.id for e in entries] == [soon_first.id, soon_second.id, late.id, undated.id]


async def test_available_entries_filter_by_expiration(db) -> None:
    expired = await append_entry(
        db, "user-001", "monthly_refresh", 5, "old", expiration_date=DAY0 - timedelta(days=1), now=DAY0
    )
    active = await append_entry(
        db, "user-001", "monthly_refresh", 5, "new", expiration_date=DAY0 + timedelta(days=1), now=DAY0
    )
    undated = await append_entry(db, "user-001", "purchase_package", 5, "forever", now=DAY0)

    assert [e.id for e in await list_available_entries(db, "user-001", expired_at=DAY0)] == [expired.id]
    assert [e.id for e in await list_available_entries(db, "user-001", active_at=DAY0)] == [active.id, undated.id]


async def test_spent_and_processed_entries_are_not_available(db) -> None:
    spent = await append_entry(db, "user-001", "purchase_package", 5, "spent", now=DAY0)
    processed = await append_entry(
        db, "user-001", "purchase_package", 5, "processed", expiration_date=DAY0, now=DAY0
    )
    await update_entry_remaining(db, spent, 0, now=DAY0)
    await update_entry_remaining(db, processed, 2, processed_at=DAY0, now=DAY0)

    assert await list_available_entries(db, "user-001") == []


async def test_update_entry_remaining_keeps_bounds(db) -> None:
    entry = await append_entry(db, "user-001", "purchase_package", 10, "package", now=DAY0)
    usage = await append_entry(db, "user-001", "usage", -1, "chat", now=DAY0)

    with pytest.raises(InvalidAmount):
        await update_entry_remaining(db, entry, -1)
    with pytest.raises(InvalidAmount):
        await update_entry_remaining(db, entry, 11)
    with pytest.raises(InvalidParams):
        await update_entry_remaining(db, usage, 0)

    await update_entry_remaining(db, entry, 4, now=DAY0 + timedelta(hours=1))
    assert entry.remaining_amount == 4
    assert entry.updated_at == DAY0 + timedelta(hours=1)
    assert entry.expiration_date_processed_at is None


async def test_has_entry_of_type(db) -> None:
    assert not await has_entry_of_type(db, "user-001", CreditTransactionType.REGISTER_GIFT)

    await append_entry(db, "user-001", CreditTransactionType.REGISTER_GIFT, 5, "gift", now=DAY0)

    assert await has_entry_of_type(db, "user-001", CreditTransactionType.REGISTER_GIFT)
    assert await has_entry_of_type(db, "user-001", "register_gift")
    assert not await has_entry_of_type(db, "user-002", CreditTransactionType.REGISTER_GIFT)


async def test_list_entries_pages_newest_first(db) -> None:
    for i in range(5):
        await append_entry(db, "user-001", "purchase_package", i + 1, f"p{i}", now=DAY0 + timedelta(minutes=i))

    items, total = await list_entries(db, "user-001", page=1, page_size=2)
    assert total == 5
    assert [e.description for e in items] == ["p4", "p3"]

    items, _ = await list_entries(db, "user-001", page=3, page_size=2)
    assert [e.description for e in items] == ["p0"]

    # out-of-range paging falls back to defaults
    items, _ = await list_entries(db, "user-001", page=0, page_size=1000)
    assert len(items) == 5
