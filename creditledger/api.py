from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from creditledger.core.logger import setup_logger
from creditledger.core.settings import settings
from creditledger.routers.health import router as health_router
from creditledger.routers.credits import router as credits_router
from creditledger.db import init_db


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _startup():
        setup_logger()
        await init_db()

    app.include_router(health_router)
    app.include_router(credits_router)

    return app
