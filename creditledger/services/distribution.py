"""Scheduled fan-out of monthly credits to the whole user population.

Users are partitioned into free / lifetime / yearly groups, each group is cut
into fixed-size batches, and every batch is written in its own transaction.
A failing batch is counted and skipped; re-running the job is safe because
the monthly policy filters out users already credited this month.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from pydantic import BaseModel
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from creditledger.core.clock import utcnow
from creditledger.core.errors import PlanNotConfigured
from creditledger.core.settings import settings
from creditledger.models.credit import CreditTransaction, CreditTransactionType, UserCredit, new_id
from creditledger.services.grants import free_plan_for_credits
from creditledger.services.monthly_policy import is_new_month, month_label
from creditledger.services.plan_catalog import PlanCatalog, PlanInterval, PlanPrice, PricePlan
from creditledger.services.subscriptions import SubscriptionRecord, load_user_subscriptions


logger = logging.getLogger(__name__)

PROGRESS_LOG_THRESHOLD = 1000


class PlanGroup(str, Enum):
    FREE = "free"
    LIFETIME = "lifetime"
    YEARLY = "yearly"


class DistributionResult(BaseModel):
    users_count: int = 0
    processed_count: int = 0
    error_count: int = 0


# first matching row wins; subscribers matching no row are skipped, since
# monthly-billed plans are credited on each renewal instead
_GROUP_RULES: tuple[tuple[Callable[[PricePlan, PlanPrice | None], bool], PlanGroup], ...] = (
    (lambda plan, price: plan.is_lifetime and plan.credits_enabled, PlanGroup.LIFETIME),
    (
        lambda plan, price: not plan.is_free
        and not plan.is_lifetime
        and plan.credits_enabled
        and price is not None
        and price.interval == PlanInterval.YEAR,
        PlanGroup.YEARLY,
    ),
)

_GROUP_GRANTS = {
    PlanGroup.FREE: (CreditTransactionType.MONTHLY_REFRESH, "Free monthly credits"),
    PlanGroup.LIFETIME: (CreditTransactionType.LIFETIME_MONTHLY, "Lifetime monthly credits"),
    PlanGroup.YEARLY: (CreditTransactionType.SUBSCRIPTION_RENEWAL, "Yearly subscription monthly credits"),
}


def classify_user(record: SubscriptionRecord, catalog: PlanCatalog) -> PlanGroup | None:
    if not record.has_active_subscription:
        return PlanGroup.FREE
    plan = catalog.resolve_plan(record.price_id)
    if plan is None:
        return None
    price = plan.price_for(record.price_id)
    for matches, group in _GROUP_RULES:
        if matches(plan, price):
            return group
    return None


def classify_users(
    records: list[SubscriptionRecord], catalog: PlanCatalog
) -> dict[PlanGroup, list[SubscriptionRecord]]:
    groups: dict[PlanGroup, list[SubscriptionRecord]] = {group: [] for group in PlanGroup}
    for record in records:
        group = classify_user(record, catalog)
        if group is not None:
            groups[group].append(record)
    return groups


def _batch_plan(group: PlanGroup, plan: PricePlan | None) -> bool:
    if plan is None or not plan.credits_enabled:
        return False
    # disabled plans keep paying out to users who already own them
    if group is PlanGroup.LIFETIME:
        return plan.is_lifetime
    return True


async def grant_monthly_batch(
    db: AsyncSession,
    user_ids: list[str],
    plan: PricePlan,
    type_: CreditTransactionType,
    label: str,
    now: datetime,
) -> int:
    """Credit every user in `user_ids` not yet credited this month; returns how many were."""
    rows = (
        await db.execute(select(UserCredit).where(UserCredit.user_id.in_(user_ids)).with_for_update())
    ).scalars().all()
    existing = {row.user_id: row for row in rows}

    eligible = [
        user_id
        for user_id in user_ids
        if is_new_month(existing[user_id].last_refresh_at if user_id in existing else None, now)
    ]
    if not eligible:
        logger.info("%s: no eligible users for plan %s", type_.value, plan.id)
        return 0

    credits = plan.credits.amount
    expire_days = plan.credits.expire_days
    expiration_date = now + timedelta(days=expire_days) if expire_days else None
    description = f"{label}: {credits} for {month_label(now)}"

    await db.execute(
        insert(CreditTransaction),
        [
            {
                "id": new_id(),
                "user_id": user_id,
                "type": type_.value,
                "amount": credits,
                "remaining_amount": credits,
                "description": description,
                "expiration_date": expiration_date,
                "created_at": now,
                "updated_at": now,
            }
            for user_id in eligible
        ],
    )

    new_user_ids = [user_id for user_id in eligible if user_id not in existing]
    if new_user_ids:
        await db.execute(
            insert(UserCredit),
            [
                {
                    "user_id": user_id,
                    "current_credits": credits,
                    "last_refresh_at": now,
                    "version": 1,
                    "created_at": now,
                    "updated_at": now,
                }
                for user_id in new_user_ids
            ],
        )

    # one versioned UPDATE per existing row
    for user_id in eligible:
        row = existing.get(user_id)
        if row is None:
            continue
        row.current_credits += credits
        row.last_refresh_at = now
        row.updated_at = now
    await db.flush()

    logger.info(
        "%s: %s credits for %s users with plan %s, date: %s",
        type_.value, credits, len(eligible), plan.id, month_label(now),
    )
    return len(eligible)


async def distribute_batch(
    db: AsyncSession,
    group: PlanGroup,
    batch: list[SubscriptionRecord],
    catalog: PlanCatalog,
    now: datetime,
) -> int:
    type_, label = _GROUP_GRANTS[group]

    if group is PlanGroup.FREE:
        try:
            plan = free_plan_for_credits(catalog)
        except PlanNotConfigured as exc:
            logger.info("distribute free credits: %s", exc)
            return 0
        return await grant_monthly_batch(db, [r.user_id for r in batch], plan, type_, label, now)

    by_price: dict[str, list[str]] = {}
    for record in batch:
        by_price.setdefault(record.price_id, []).append(record.user_id)

    granted = 0
    for price_id, user_ids in by_price.items():
        plan = catalog.resolve_plan(price_id)
        if not _batch_plan(group, plan):
            logger.info("distribute %s credits: plan unusable for price %s", group.value, price_id)
            continue
        granted += await grant_monthly_batch(db, user_ids, plan, type_, label, now)
    return granted


async def distribute_all(
    session_factory: Callable[[], AsyncSession],
    catalog: PlanCatalog,
    batch_size: int | None = None,
    concurrency: int | None = None,
    now: datetime | None = None,
) -> DistributionResult:
    batch_size = batch_size or settings.DISTRIBUTE_BATCH_SIZE
    concurrency = max(1, concurrency or settings.DISTRIBUTE_CONCURRENCY)
    now = now or utcnow()
    logger.info(">>> distribute credits start")

    async with session_factory() as session:
        records = await load_user_subscriptions(session)
    groups = classify_users(records, catalog)
    result = DistributionResult(users_count=len(records))
    logger.info(
        "distribute credits, users: %s, free: %s, lifetime: %s, yearly: %s",
        len(records), len(groups[PlanGroup.FREE]), len(groups[PlanGroup.LIFETIME]), len(groups[PlanGroup.YEARLY]),
    )

    semaphore = asyncio.Semaphore(concurrency)

    async def run_batch(group: PlanGroup, index: int, batch: list[SubscriptionRecord], total: int) -> bool:
        async with semaphore:
            try:
                async with session_factory() as session:
                    async with session.begin():
                        await distribute_batch(session, group, batch, catalog, now)
            except Exception:
                logger.exception("distribute %s credits: batch %s failed (%s users)", group.value, index, len(batch))
                return False
            finally:
                if total > PROGRESS_LOG_THRESHOLD:
                    logger.info(
                        "%s credits progress: %s/%s", group.value, min(index * batch_size, total), total
                    )
            return True

    for group in PlanGroup:
        members = groups[group]
        batches = [members[i:i + batch_size] for i in range(0, len(members), batch_size)]
        outcomes = await asyncio.gather(
            *(run_batch(group, index, batch, len(members)) for index, batch in enumerate(batches, start=1))
        )
        for batch, ok in zip(batches, outcomes):
            if ok:
                result.processed_count += len(batch)
            else:
                result.error_count += len(batch)

    logger.info(
        "<<< distribute credits end, users: %s, processed: %s, errors: %s",
        result.users_count, result.processed_count, result.error_count,
    )
    return result
