"""
FastAPI application factory for the Creator Commerce API
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import config
from .db.engine import get_invalidation_stats, init_db
from .esign_routes import public_router as esign_public_router
from .esign_routes import router as esign_router
from .exceptions import register_exception_handlers
from .logging_config import RequestIDMiddleware, setup_logging
from .project_routes import creator_router as project_creator_router
from .project_routes import router as project_router
from .relationship_routes import router as relationship_router
from .scheduling_routes import creator_router as welcome_call_router
from .scheduling_routes import router as scheduling_router
from .subscription_routes import account_router as subscription_account_router
from .subscription_routes import router as subscription_router
from .tax_routes import router as tax_router
from .tenant_routes import router as tenant_router
from .treasury_routes import router as treasury_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        init_db()
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        raise

    if config.ENABLE_SCHEDULER:
        from .services.scheduled_jobs import start_scheduler
        start_scheduler()

    yield

    if config.ENABLE_SCHEDULER:
        from .services.scheduled_jobs import stop_scheduler
        stop_scheduler()


def create_app() -> FastAPI:
    setup_logging(env=config.ENV, log_level=config.LOG_LEVEL)

    app = FastAPI(title="Creator Commerce API", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Added last so it wraps CORS and sees every request first
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    for router in (
        tenant_router,
        subscription_router,
        subscription_account_router,
        project_router,
        project_creator_router,
        treasury_router,
        tax_router,
        esign_router,
        esign_public_router,
        scheduling_router,
        welcome_call_router,
        relationship_router,
    ):
        app.include_router(router)

    @app.get("/health")
    async def health():
        """Liveness probe"""
        return {
            "status": "healthy",
            "service": "creator-commerce",
            "version": config.BUILD_VERSION,
            "commit": config.BUILD_COMMIT,
            "db_connection_invalidations": get_invalidation_stats(),
        }

    return app


app = create_app()
