from __future__ import annotations

from fastapi import HTTPException
from sqlalchemy.orm import sessionmaker

from creditledger.core.errors import CreditError, InsufficientCredits, BalanceConflict, PlanNotConfigured
from creditledger.core.settings import settings
from creditledger.db import AsyncSessionLocal
from creditledger.services.plan_catalog import PlanCatalog, get_plan_catalog


def get_catalog() -> PlanCatalog:
    return get_plan_catalog()


def get_session_factory() -> sessionmaker:
    return AsyncSessionLocal


def require_credits_enabled() -> None:
    if not settings.CREDITS_ENABLED:
        raise HTTPException(status_code=403, detail="credits_disabled")


_STATUS_BY_ERROR = {
    InsufficientCredits: 402,
    PlanNotConfigured: 404,
    BalanceConflict: 409,
}


def credit_http_error(exc: CreditError) -> HTTPException:
    status = next((code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 400)
    return HTTPException(status_code=status, detail=exc.code)
