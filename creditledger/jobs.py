"""Entrypoint for the scheduled credit distribution (cron, once a day)."""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from creditledger.core.logger import setup_logger
from creditledger.core.settings import settings
from creditledger.db import engine, init_db, session_factory_for
from creditledger.services.distribution import DistributionResult, distribute_all
from creditledger.services.plan_catalog import PlanCatalog, get_plan_catalog


logger = logging.getLogger(__name__)


async def run_distribution(
    bind: AsyncEngine | None = None, catalog: PlanCatalog | None = None
) -> DistributionResult:
    bind = bind or engine
    await init_db(bind)
    try:
        return await distribute_all(session_factory_for(bind), catalog or get_plan_catalog())
    finally:
        await bind.dispose()


def main() -> None:
    setup_logger()
    if not settings.CREDITS_ENABLED:
        logger.info("credits are disabled, skipping distribution")
        return
    result = asyncio.run(run_distribution())
    logger.info("distribution finished: %s", result.model_dump())


if __name__ == "__main__":
    main()
