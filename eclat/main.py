import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

# IMPORTANT:
# This imports ALL models so SQLAlchemy registers tables + FKs correctly
import eclat.models  # noqa: F401

from eclat.core.config import Settings, get_settings
from eclat.core.db import build_engine, build_sessionmaker
from eclat.core.log import configure_logging
from eclat.integrations.stripe_gateway import StripeGateway

# Routers
from eclat.routers.checkout import router as checkout_router
from eclat.routers.orders import router as orders_router
from eclat.routers.webhooks import router as webhooks_router
from eclat.routers.internal import router as internal_router
from eclat.routers.admin_coupons import router as admin_coupons_router
from eclat.routers.admin_reconciliation import router as admin_reconciliation_router

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(settings)
        app.state.engine = engine
        app.state.sessionmaker = build_sessionmaker(engine)
        app.state.payment_gateway = StripeGateway(settings)
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(title="ÉCLAT Beauty API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Database error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Database error"})

    # Checkout & orders
    app.include_router(checkout_router)
    app.include_router(orders_router)

    # Payment confirmation
    app.include_router(webhooks_router)
    app.include_router(internal_router)

    # Admin
    app.include_router(admin_coupons_router)
    app.include_router(admin_reconciliation_router)

    return app


app = create_app()
