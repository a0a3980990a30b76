from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from creditledger.services.plan_catalog import (
    DEFAULT_CATALOG,
    PlanCredits,
    PlanInterval,
    PricePlan,
    StaticPlanCatalog,
    load_plan_catalog,
)


def test_resolve_plan_by_price(catalog) -> None:
    plan = catalog.resolve_plan("pro_yearly")
    assert plan.id == "pro"
    assert plan.price_for("pro_yearly").interval is PlanInterval.YEAR
    assert plan.price_for("pro_monthly").interval is PlanInterval.MONTH
    assert plan.price_for("lifetime_once") is None

    assert catalog.resolve_plan("lifetime_once").is_lifetime
    assert catalog.resolve_plan("unknown") is None


def test_free_plan_skips_disabled_and_creditless_plans() -> None:
    catalog = StaticPlanCatalog(
        plans=[
            PricePlan(id="old_free", is_free=True, disabled=True, credits=PlanCredits(enable=True, amount=5)),
            PricePlan(id="bare_free", is_free=True, credits=PlanCredits(enable=True, amount=0)),
            PricePlan(id="free", is_free=True, credits=PlanCredits(enable=True, amount=10)),
        ]
    )
    assert catalog.free_plan().id == "free"
    assert StaticPlanCatalog(plans=[]).free_plan() is None


def test_credits_enabled() -> None:
    assert not PricePlan(id="a").credits_enabled
    assert not PricePlan(id="b", credits=PlanCredits(enable=False, amount=10)).credits_enabled
    assert PricePlan(id="c", credits=PlanCredits(enable=True, amount=10)).credits_enabled


def test_get_package(catalog) -> None:
    assert catalog.get_package("basic").credits == 100
    assert catalog.get_package("retired").disabled
    assert catalog.get_package("missing") is None


def test_zero_expire_days_are_rejected() -> None:
    with pytest.raises(ValidationError):
        PlanCredits(enable=True, amount=10, expire_days=0)


def test_load_defaults_without_file() -> None:
    catalog = load_plan_catalog("")
    assert catalog.free_plan().id == "free"
    assert {p.id for p in DEFAULT_CATALOG.packages} == {"basic", "standard", "premium"}
    assert catalog.get_package("premium").credits == 2000


def test_load_from_json_file(tmp_path) -> None:
    path = tmp_path / "plans.json"
    path.write_text(
        json.dumps(
            {
                "plans": [
                    {
                        "id": "team",
                        "prices": [{"price_id": "team_year", "interval": "year"}],
                        "credits": {"enable": True, "amount": 500, "expire_days": 45},
                    }
                ],
                "packages": [{"id": "mini", "credits": 20}],
            }
        ),
        encoding="utf-8",
    )

    catalog = load_plan_catalog(str(path))

    plan = catalog.resolve_plan("team_year")
    assert plan.credits.amount == 500
    assert plan.credits.expire_days == 45
    assert catalog.free_plan() is None
    assert catalog.get_package("mini").expire_days is None
