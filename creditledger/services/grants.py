from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from creditledger.core.clock import utcnow
from creditledger.core.errors import InvalidParams, PlanNotConfigured
from creditledger.core.settings import settings
from creditledger.models.credit import CreditTransactionType, EARN_TYPES
from creditledger.services.balance import get_balance, get_balance_row, set_balance
from creditledger.services.expiration import sweep
from creditledger.services.ledger_store import append_entry, has_entry_of_type, has_payment_entry
from creditledger.services.monthly_policy import can_grant_monthly, is_new_month, month_label
from creditledger.services.plan_catalog import CreditPackage, PlanCatalog, PricePlan
from creditledger.services.validation import positive_int, require_text


logger = logging.getLogger(__name__)


async def _issue(
    db: AsyncSession,
    user_id: str,
    amount: int,
    type_: str,
    description: str,
    payment_id: str | None,
    expire_days: int | None,
    now: datetime,
    monthly: bool,
) -> int | None:
    # reclaim stale credit before reading the balance
    await sweep(db, user_id, now=now)

    row = await get_balance_row(db, user_id, for_update=True)
    if monthly and not is_new_month(row.last_refresh_at if row else None, now):
        # a concurrent grant got the lock first
        logger.info("%s: already granted to user %s, date: %s", type_, user_id, month_label(now))
        return None

    new_balance = (row.current_credits if row else 0) + amount
    await set_balance(
        db, user_id, new_balance, row=row, now=now, last_refresh_at=now if monthly else None
    )
    await append_entry(
        db,
        user_id,
        type_,
        amount,
        description,
        payment_id=payment_id,
        expiration_date=now + timedelta(days=expire_days) if expire_days else None,
        now=now,
    )
    logger.info("grant: %s %s credits for user %s, balance %s", type_, amount, user_id, new_balance)
    return new_balance


async def _grant_once(
    db: AsyncSession,
    user_id: str,
    amount: int,
    type_: CreditTransactionType | str,
    description: str,
    payment_id: str | None = None,
    expire_days: int | None = None,
    now: datetime | None = None,
    monthly: bool = False,
) -> int | None:
    """Validate and issue one grant; None when it was skipped as already done."""
    type_ = getattr(type_, "value", type_)
    require_text(user_id=user_id, type=type_, description=description)
    if type_ not in EARN_TYPES:
        raise InvalidParams(f"{type_} is not a grant type")
    amount = positive_int(amount)
    if expire_days is not None:
        expire_days = positive_int(expire_days, "expire_days")
    now = now or utcnow()

    try:
        async with db.begin_nested():
            return await _issue(db, user_id, amount, type_, description, payment_id, expire_days, now, monthly)
    except IntegrityError:
        if payment_id is None or not await has_payment_entry(db, type_, payment_id):
            raise
        logger.info("grant: %s for payment %s already processed", type_, payment_id)
        return None


async def grant(
    db: AsyncSession,
    user_id: str,
    amount: int,
    type_: CreditTransactionType | str,
    description: str,
    payment_id: str | None = None,
    expire_days: int | None = None,
    now: datetime | None = None,
) -> int:
    """Issue credit: one earn entry plus a balance increment. Returns the new balance.

    A retried purchase that collides on its payment id changes nothing and
    returns the current balance.
    """
    balance = await _grant_once(db, user_id, amount, type_, description, payment_id, expire_days, now)
    if balance is None:
        return await get_balance(db, user_id)
    return balance


async def add_register_gift_credits(
    db: AsyncSession,
    user_id: str,
    credits: int | None = None,
    expire_days: int | None = None,
    now: datetime | None = None,
) -> int:
    """One-time sign-up gift; returns the credits granted (0 when already given)."""
    if not settings.REGISTER_GIFT_ENABLED:
        return 0
    credits = settings.REGISTER_GIFT_CREDITS if credits is None else credits
    expire_days = settings.REGISTER_GIFT_EXPIRE_DAYS if expire_days is None else expire_days
    if credits <= 0:
        return 0

    if await has_entry_of_type(db, user_id, CreditTransactionType.REGISTER_GIFT):
        logger.info("add_register_gift_credits: user %s already received the gift", user_id)
        return 0

    await grant(
        db,
        user_id,
        credits,
        CreditTransactionType.REGISTER_GIFT,
        f"Register gift credits: {credits}",
        expire_days=expire_days or None,
        now=now,
    )
    return credits


async def _grant_monthly(
    db: AsyncSession,
    user_id: str,
    plan: PricePlan,
    type_: CreditTransactionType,
    label: str,
    now: datetime | None,
) -> int:
    now = now or utcnow()
    if not await can_grant_monthly(db, user_id, now=now):
        logger.info("%s: no new month for user %s, date: %s", type_.value, user_id, month_label(now))
        return 0

    credits = plan.credits.amount
    # the month is checked again under the balance lock
    granted = await _grant_once(
        db,
        user_id,
        credits,
        type_,
        f"{label}: {credits} for {month_label(now)}",
        expire_days=plan.credits.expire_days or None,
        now=now,
        monthly=True,
    )
    return 0 if granted is None else credits


def free_plan_for_credits(catalog: PlanCatalog) -> PricePlan:
    plan = catalog.free_plan()
    if plan is None or plan.disabled or not plan.is_free or not plan.credits_enabled:
        raise PlanNotConfigured("no available free plan")
    return plan


def subscription_plan_for_credits(catalog: PlanCatalog, price_id: str) -> PricePlan:
    plan = catalog.resolve_plan(price_id)
    # disabled plans still pay out to existing subscribers
    if plan is None or not plan.credits_enabled:
        raise PlanNotConfigured(f"no credits configured for plan {price_id}")
    return plan


def lifetime_plan_for_credits(catalog: PlanCatalog, price_id: str) -> PricePlan:
    plan = catalog.resolve_plan(price_id)
    if plan is None or not plan.is_lifetime or plan.disabled or not plan.credits_enabled:
        raise PlanNotConfigured(f"no lifetime credits configured for plan {price_id}")
    return plan


async def add_monthly_free_credits(
    db: AsyncSession, catalog: PlanCatalog, user_id: str, now: datetime | None = None
) -> int:
    try:
        plan = free_plan_for_credits(catalog)
    except PlanNotConfigured as exc:
        logger.info("add_monthly_free_credits: %s", exc)
        return 0
    return await _grant_monthly(
        db, user_id, plan, CreditTransactionType.MONTHLY_REFRESH, "Free monthly credits", now
    )


async def add_subscription_credits(
    db: AsyncSession, catalog: PlanCatalog, user_id: str, price_id: str, now: datetime | None = None
) -> int:
    try:
        plan = subscription_plan_for_credits(catalog, price_id)
    except PlanNotConfigured as exc:
        logger.info("add_subscription_credits: %s", exc)
        return 0
    return await _grant_monthly(
        db, user_id, plan, CreditTransactionType.SUBSCRIPTION_RENEWAL, "Subscription renewal credits", now
    )


async def add_lifetime_monthly_credits(
    db: AsyncSession, catalog: PlanCatalog, user_id: str, price_id: str, now: datetime | None = None
) -> int:
    try:
        plan = lifetime_plan_for_credits(catalog, price_id)
    except PlanNotConfigured as exc:
        logger.info("add_lifetime_monthly_credits: %s", exc)
        return 0
    return await _grant_monthly(
        db, user_id, plan, CreditTransactionType.LIFETIME_MONTHLY, "Lifetime monthly credits", now
    )


async def _purchase_recorded(db: AsyncSession, payment_id: str) -> bool:
    return await has_payment_entry(db, CreditTransactionType.PURCHASE_PACKAGE, payment_id)


async def add_package_credits(
    db: AsyncSession,
    catalog: PlanCatalog,
    user_id: str,
    package_id: str,
    payment_id: str,
    now: datetime | None = None,
) -> int:
    """Credit a purchased package once per payment id; returns the credits granted."""
    require_text(user_id=user_id, package_id=package_id, payment_id=payment_id)
    package: CreditPackage | None = catalog.get_package(package_id)
    if package is None or package.disabled:
        logger.info("add_package_credits: credit package %s not found", package_id)
        return 0

    if await _purchase_recorded(db, payment_id):
        logger.info("add_package_credits: payment %s already processed", payment_id)
        return 0

    granted = await _grant_once(
        db,
        user_id,
        package.credits,
        CreditTransactionType.PURCHASE_PACKAGE,
        f"+{package.credits} credits for package {package_id}",
        payment_id=payment_id,
        expire_days=package.expire_days,
        now=now,
    )
    return 0 if granted is None else package.credits
