from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from creditledger.core.errors import CreditError
from creditledger.db import get_db
from creditledger.deps import credit_http_error, get_catalog, get_session_factory, require_credits_enabled
from creditledger.models.credit import CreditTransactionType
from creditledger.services.balance import get_balance
from creditledger.services.consumption import consume
from creditledger.services.distribution import DistributionResult, distribute_all
from creditledger.services.expiration import sweep
from creditledger.services.grants import add_package_credits, add_register_gift_credits, grant
from creditledger.services.ledger_store import list_entries
from creditledger.services.plan_catalog import PlanCatalog

router = APIRouter(prefix="/api/v1/credits", tags=["credits"], dependencies=[Depends(require_credits_enabled)])


class GrantIn(BaseModel):
    amount: int = Field(ge=1)
    type: CreditTransactionType
    description: str = Field(min_length=1, max_length=255)
    payment_id: str | None = Field(default=None, max_length=255)
    expire_days: int | None = Field(default=None, ge=1)


class ConsumeIn(BaseModel):
    amount: int = Field(ge=1)
    description: str = Field(min_length=1, max_length=255)


class PackagePurchaseIn(BaseModel):
    payment_id: str = Field(min_length=1, max_length=255)


class TransactionOut(BaseModel):
    id: str
    type: str
    amount: int
    remaining_amount: int | None
    description: str
    payment_id: str | None
    expiration_date: datetime | None
    expiration_date_processed_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


@router.get("/{user_id}/balance")
async def read_balance(user_id: str, db: AsyncSession = Depends(get_db)):
    return {"user_id": user_id, "credits": await get_balance(db, user_id)}


@router.post("/{user_id}/grant")
async def grant_credits(user_id: str, payload: GrantIn, db: AsyncSession = Depends(get_db)):
    try:
        credits = await grant(
            db,
            user_id,
            payload.amount,
            payload.type,
            payload.description,
            payment_id=payload.payment_id,
            expire_days=payload.expire_days,
        )
    except CreditError as exc:
        raise credit_http_error(exc)
    return {"ok": True, "credits": credits}


@router.post("/{user_id}/consume")
async def consume_credits(user_id: str, payload: ConsumeIn, db: AsyncSession = Depends(get_db)):
    try:
        credits = await consume(db, user_id, payload.amount, payload.description)
    except CreditError as exc:
        raise credit_http_error(exc)
    return {"ok": True, "credits": credits}


@router.post("/{user_id}/sweep")
async def sweep_credits(user_id: str, db: AsyncSession = Depends(get_db)):
    try:
        expired = await sweep(db, user_id)
    except CreditError as exc:
        raise credit_http_error(exc)
    return {"expired": expired}


@router.post("/{user_id}/register-gift")
async def register_gift(user_id: str, db: AsyncSession = Depends(get_db)):
    try:
        granted = await add_register_gift_credits(db, user_id)
    except CreditError as exc:
        raise credit_http_error(exc)
    return {"granted": granted}


@router.post("/{user_id}/packages/{package_id}")
async def purchase_package(
    user_id: str,
    package_id: str,
    payload: PackagePurchaseIn,
    db: AsyncSession = Depends(get_db),
    catalog: PlanCatalog = Depends(get_catalog),
):
    try:
        granted = await add_package_credits(db, catalog, user_id, package_id, payload.payment_id)
    except CreditError as exc:
        raise credit_http_error(exc)
    return {"granted": granted}


@router.get("/{user_id}/transactions")
async def list_transactions(user_id: str, page: int = 1, page_size: int = 20, db: AsyncSession = Depends(get_db)):
    items, total = await list_entries(db, user_id, page, page_size)
    return {"items": [TransactionOut.model_validate(item) for item in items], "total": total}


@router.post("/distribute", response_model=DistributionResult)
async def distribute(
    session_factory=Depends(get_session_factory),
    catalog: PlanCatalog = Depends(get_catalog),
):
    return await distribute_all(session_factory, catalog)
