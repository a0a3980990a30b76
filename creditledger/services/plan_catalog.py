"""Price plans and credit packages.

The catalog is read-only configuration handed to the engine; nothing here
touches the database.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from creditledger.core.settings import settings


class PlanInterval(str, Enum):
    MONTH = "month"
    YEAR = "year"


class PlanPrice(BaseModel):
    price_id: str
    interval: PlanInterval | None = None  # None for one-time (lifetime) prices
    amount_cents: int = 0
    currency: str = "USD"


class PlanCredits(BaseModel):
    enable: bool = False
    amount: int = Field(default=0, ge=0)
    expire_days: int | None = Field(default=None, ge=1)


class PricePlan(BaseModel):
    id: str
    is_free: bool = False
    is_lifetime: bool = False
    disabled: bool = False
    prices: list[PlanPrice] = []
    credits: PlanCredits | None = None

    @property
    def credits_enabled(self) -> bool:
        return bool(self.credits and self.credits.enable and self.credits.amount > 0)

    def price_for(self, price_id: str) -> PlanPrice | None:
        return next((p for p in self.prices if p.price_id == price_id), None)


class CreditPackage(BaseModel):
    id: str
    credits: int = Field(ge=1)
    expire_days: int | None = Field(default=None, ge=1)
    price_id: str = ""
    disabled: bool = False


class CatalogConfig(BaseModel):
    plans: list[PricePlan] = []
    packages: list[CreditPackage] = []


class PlanCatalog(Protocol):
    def resolve_plan(self, price_id: str) -> PricePlan | None:  # pragma: no cover - Protocol
        ...

    def free_plan(self) -> PricePlan | None:  # pragma: no cover - Protocol
        ...

    def get_package(self, package_id: str) -> CreditPackage | None:  # pragma: no cover - Protocol
        ...


class StaticPlanCatalog:
    def __init__(self, plans: list[PricePlan], packages: list[CreditPackage] | None = None) -> None:
        self._plans = list(plans)
        self._packages = {p.id: p for p in packages or []}
        self._by_price = {price.price_id: plan for plan in self._plans for price in plan.prices}

    def resolve_plan(self, price_id: str) -> PricePlan | None:
        return self._by_price.get(price_id)

    def free_plan(self) -> PricePlan | None:
        return next(
            (plan for plan in self._plans if plan.is_free and not plan.disabled and plan.credits_enabled),
            None,
        )

    def get_package(self, package_id: str) -> CreditPackage | None:
        return self._packages.get(package_id)


DEFAULT_CATALOG = CatalogConfig(
    plans=[
        PricePlan(
            id="free",
            is_free=True,
            credits=PlanCredits(enable=True, amount=50, expire_days=30),
        ),
        PricePlan(
            id="pro",
            prices=[
                PlanPrice(price_id="price_pro_monthly", interval=PlanInterval.MONTH, amount_cents=990),
                PlanPrice(price_id="price_pro_yearly", interval=PlanInterval.YEAR, amount_cents=9900),
            ],
            credits=PlanCredits(enable=True, amount=1000, expire_days=30),
        ),
        PricePlan(
            id="lifetime",
            is_lifetime=True,
            prices=[PlanPrice(price_id="price_lifetime", amount_cents=19900)],
            credits=PlanCredits(enable=True, amount=1000, expire_days=30),
        ),
    ],
    packages=[
        CreditPackage(id="basic", credits=100, expire_days=30, price_id="price_credits_basic"),
        CreditPackage(id="standard", credits=500, expire_days=60, price_id="price_credits_standard"),
        CreditPackage(id="premium", credits=2000, expire_days=90, price_id="price_credits_premium"),
    ],
)


def load_plan_catalog(path: str | None = None) -> StaticPlanCatalog:
    path = settings.PLAN_CATALOG_FILE if path is None else path
    config = DEFAULT_CATALOG
    if path:
        config = CatalogConfig.model_validate_json(Path(path).read_text(encoding="utf-8"))
    return StaticPlanCatalog(config.plans, config.packages)


@lru_cache
def get_plan_catalog() -> StaticPlanCatalog:
    return load_plan_catalog()
