"""FastAPI application entry point for the AgriMarket API."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agrimarket import __version__
from agrimarket.app.config import Settings, get_settings
from agrimarket.app.middleware import install_middleware
from agrimarket.app.responses import register_exception_handlers, success_response
from agrimarket.app.routes.auth import router as auth_router
from agrimarket.app.routes.buyer import router as buyer_router
from agrimarket.app.routes.farmer import router as farmer_router
from agrimarket.app.routes.forecast import router as forecast_router
from agrimarket.app.routes.health import router as health_router
from agrimarket.app.routes.public import router as public_router
from agrimarket.infra.database import init_db

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    """Root logger: stream handler always, file handler when LOG_FILE is set."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT, handlers=handlers, force=True)
    # Per-request lines come from agrimarket.request; uvicorn's access log would duplicate them
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database on startup."""
    try:
        await init_db()
    except Exception:
        logger.exception("Database initialization failed")
        raise
    logger.info("AgriMarket API %s started (%s)", __version__, app.state.settings.environment)
    yield
    logger.info("AgriMarket API shutting down")


ENDPOINTS = {
    "auth": "/api/auth",
    "public": "/api/public",
    "buyer": "/api/buyer",
    "farmer": "/api/farmer",
    "forecast": "/api/forecast",
    "health": "/health",
}


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="AgriMarket API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    register_exception_handlers(app)
    install_middleware(app, settings)

    cors_origins = settings.cors_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=("*" not in cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(public_router)
    app.include_router(buyer_router)
    app.include_router(farmer_router)
    app.include_router(forecast_router)

    @app.get("/api", tags=["meta"])
    async def api_index():
        return success_response({
            "name": "AgriMarket API",
            "version": __version__,
            "endpoints": ENDPOINTS,
        })

    return app


# Invalid configuration raises here, before uvicorn starts, and exits nonzero
settings = get_settings()
configure_logging(settings)
app = create_app(settings)


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "agrimarket.app.main:app",
        host=settings.host,
        port=settings.port,
    )
