"""
Post-Op Radar Server — Application Factory
"""

import logging
import time

from fastapi import FastAPI

from radar import settings

# ── 1. Configure logging ──
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("radar-server")

_startup_time = time.time()


def create_app(services=None, admin_token=None) -> FastAPI:
    """
    Build the FastAPI app.

    ``services`` defaults to the container wired from settings; tests pass
    their own with an in-memory store, stub gateway and fixed clock.
    """
    from radar.gateway.setup import build_services
    from radar.routers import admin, health, triage, webhooks

    # ── 2. Create FastAPI app ──
    app = FastAPI(title="Post-Op Radar", version=settings.VERSION)

    # ── 3. Wire services ──
    app.state.services = services or build_services()
    app.state.admin_token = settings.ADMIN_API_TOKEN if admin_token is None else admin_token

    # ── 4. Register routers ──
    app.include_router(health.router)
    app.include_router(webhooks.router)
    app.include_router(admin.router)
    app.include_router(triage.router)

    # ── 5. Startup event ──
    @app.on_event("startup")
    async def startup_event():
        logger.info("=" * 60)
        logger.info("Post-Op Radar Server Starting")
        logger.info("Listening on port: %s", settings.PORT)
        logger.info("Total init time: %.2fs", time.time() - _startup_time)
        logger.info("=" * 60)

    return app


app = create_app()
