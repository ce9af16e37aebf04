"""
FastAPI application factory.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import get_settings
from .core.database import init_db, close_db
from .core.redis import close_redis
from .api.router import VOICE_PREFIX, router

logger = logging.getLogger(__name__)


class AppCORSMiddleware(CORSMiddleware):
    """CORS for everything except the voice API, which answers its own preflight."""

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope["path"].startswith(VOICE_PREFIX):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="FlowForge Voice",
        description="Voice interview gateway for education, assessment and coaching",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        AppCORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=origins != ["*"],
        allow_methods=["POST", "OPTIONS", "GET"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # ── Startup ──────────────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup():
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        logger.info("Starting FlowForge Voice (env=%s)", settings.env)

        # Create database tables
        await init_db()

        # Initialize vertical registry
        from .orchestrator.registry import get_registry
        get_registry()

        # Log feature flag state
        from .core.flags import get_flags
        flags = get_flags()
        logger.info(
            "Flags: voice_auth=%s redis=%s llm=%s usage_limits=%s",
            flags.require_voice_auth, flags.use_redis,
            flags.llm_provider, flags.enforce_usage_limits,
        )
        logger.info(
            "Verticals: education=on assessment=%s coaching=%s",
            flags.enable_assessment, flags.enable_coaching,
        )
        if flags.require_voice_auth and not settings.voice_llm_secret:
            logger.warning("FF_REQUIRE_VOICE_AUTH is on but VOICE_LLM_SECRET is empty: every voice call will get 401")

        logger.info("FlowForge Voice is ready")

    # ── Shutdown ─────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown():
        from .services.llm import close_client
        await close_client()
        await close_db()
        await close_redis()
        logger.info("FlowForge Voice shut down")

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
