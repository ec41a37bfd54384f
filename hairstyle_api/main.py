# hairstyle_api/main.py

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .auth.dependencies import build_clerk_client
from .config import Settings, settings as default_settings
from .database import Database
from .error_handlers import ProviderNotConfiguredException, register_exception_handlers
from .logging_config import setup_logging, get_logger
from .middleware import register_middleware
from .providers import ProviderGateway
from .storage.staging import build_stager

from .credits.router import router as credit_router
from .generations.router import router as generation_router
from .users.router import router as users_router

logger = get_logger(__name__)

API_VERSION = "1.0.0"


def _describe(url: Optional[str]) -> str:
    return url.split("@")[-1] if url else "Not configured"


def build_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Build every process-wide resource and hang it on app.state
        """
        # ====================================================================
        # STARTUP
        # ====================================================================
        logger.info("=" * 80)
        logger.info("Starting Hairstyle API")
        logger.info("=" * 80)

        logger.info(
            "Application configuration",
            extra={
                "extra_data": {
                    "environment": settings.ENVIRONMENT,
                    "log_level": settings.LOG_LEVEL,
                    "database": _describe(settings.DATABASE_ASYNC_URL or settings.DATABASE_URL),
                    "wavespeed_configured": bool(settings.WAVESPEED_API_KEY),
                    "gemini_configured": bool(settings.GEMINI_API_KEY),
                    "staging_bucket": settings.S3_BUCKET_NAME or "Not configured",
                }
            }
        )

        database = Database.from_settings(settings)
        try:
            await database.ping()
            logger.info("✓ Database connection successful")
        except Exception as e:
            logger.error(f"✗ Database connection failed: {e}", exc_info=True)
            await database.dispose()
            raise

        http_client = httpx.AsyncClient()
        gateway = ProviderGateway.from_settings(settings, stager=build_stager(settings), http_client=http_client)

        try:
            provider = gateway.select()
            logger.info(f"✓ Image provider: {provider.name.value}")
        except ProviderNotConfiguredException:
            logger.warning("⚠ No image provider configured; generation requests will fail")

        app.state.db = database
        app.state.clerk = build_clerk_client()
        app.state.gateway = gateway

        logger.info("=" * 80)
        logger.info("🚀 Hairstyle API is ready to accept requests")
        logger.info("=" * 80)

        yield

        # ====================================================================
        # SHUTDOWN
        # ====================================================================
        logger.info("Shutting down Hairstyle API")
        await gateway.aclose()
        await http_client.aclose()
        await database.dispose()

    return lifespan


def create_app(settings: Settings = default_settings) -> FastAPI:
    app = FastAPI(
        title="Hairstyle API",
        description="AI hairstyle try-on with credit-based generation",
        version=API_VERSION,
        lifespan=build_lifespan(settings),
    )

    # ========================================================================
    # MIDDLEWARE
    # ========================================================================
    register_middleware(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================================================
    # EXCEPTION HANDLERS
    # ========================================================================
    register_exception_handlers(app)

    # ========================================================================
    # ROUTERS
    # ========================================================================
    app.include_router(users_router, prefix='/api')
    app.include_router(credit_router, prefix='/api')
    app.include_router(generation_router, prefix='/api')

    logger.info("All routers registered")

    @app.get("/health")
    async def health_check():
        """Health check endpoint for load balancers"""
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "version": API_VERSION
        }

    @app.get("/")
    async def root():
        return {
            "message": "Hairstyle API",
            "version": API_VERSION,
            "docs": "/docs",
            # Client-side soft limit for signed-out users
            "anonymous_free_tries": settings.ANONYMOUS_FREE_TRIES
        }

    return app


# Setup logging BEFORE creating the app
setup_logging()

app = create_app()
