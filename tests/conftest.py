from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from creditledger.db import Base
from creditledger.models import all_models  # noqa: F401
from creditledger.models.payment import Payment
from creditledger.models.user import User
from creditledger.services.plan_catalog import (
    CreditPackage,
    PlanCredits,
    PlanInterval,
    PlanPrice,
    PricePlan,
    StaticPlanCatalog,
)


DAY0 = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'credits.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def catalog() -> StaticPlanCatalog:
    return StaticPlanCatalog(
        plans=[
            PricePlan(id="free", is_free=True, credits=PlanCredits(enable=True, amount=10, expire_days=30)),
            PricePlan(
                id="pro",
                prices=[
                    PlanPrice(price_id="pro_monthly", interval=PlanInterval.MONTH),
                    PlanPrice(price_id="pro_yearly", interval=PlanInterval.YEAR),
                ],
                credits=PlanCredits(enable=True, amount=100, expire_days=30),
            ),
            PricePlan(
                id="legacy",
                disabled=True,
                prices=[PlanPrice(price_id="legacy_yearly", interval=PlanInterval.YEAR)],
                credits=PlanCredits(enable=True, amount=40),
            ),
            PricePlan(
                id="starter",
                prices=[PlanPrice(price_id="starter_yearly", interval=PlanInterval.YEAR)],
                credits=PlanCredits(enable=False, amount=20),
            ),
            PricePlan(
                id="lifetime",
                is_lifetime=True,
                prices=[PlanPrice(price_id="lifetime_once")],
                credits=PlanCredits(enable=True, amount=300),
            ),
        ],
        packages=[
            CreditPackage(id="basic", credits=100, expire_days=30),
            CreditPackage(id="retired", credits=500, disabled=True),
        ],
    )


@pytest.fixture
def make_user(session_factory):
    counter = {"n": 0}

    async def _make(user_id: str, *, banned: bool | None = False, payments: list[tuple[str, str]] = ()) -> str:
        counter["n"] += 1
        created_at = DAY0 - timedelta(days=100) + timedelta(minutes=counter["n"])
        async with session_factory() as session:
            session.add(User(id=user_id, email=f"{user_id}@example.com", is_banned=banned, created_at=created_at))
            for index, (price_id, status) in enumerate(payments):
                session.add(
                    Payment(
                        id=f"{user_id}-pay-{index}",
                        user_id=user_id,
                        price_id=price_id,
                        status=status,
                        created_at=created_at + timedelta(days=index),
                        updated_at=created_at + timedelta(days=index),
                    )
                )
            await session.commit()
        return user_id

    return _make
