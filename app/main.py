from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from core.db import engine, init_models
from core.environment import get_settings
from core.logging import setup_logging
from core.session import session_registry
from exceptions import register_exception_handlers
from middleware.rate_limit import custom_rate_limit_exceeded, limiter
from routers import auth, drivers, health, metrics, reports, subscriptions, transactions, trips, vehicles

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)

    if settings.auto_create_tables:
        await init_models()
        logger.info("Database tables ensured")

    try:
        yield
    finally:
        # teardown on shutdown
        session_registry.clear()
        await engine.dispose()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="MyFleet API", lifespan=lifespan)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, custom_rate_limit_exceeded)
    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],   # Allows POST, GET, OPTIONS, etc
        allow_headers=["*"],
    )

    for module in (health, metrics, auth, vehicles, drivers, transactions, trips, reports, subscriptions):
        app.include_router(module.router)

    @app.get("/", tags=["root"])
    def hello():
        return {"message": "MyFleet API"}

    return app


app = create_app()
