"""
Ad Agent — Meta Connection Backend
Links a user's Meta account (OAuth), discovers their pages, ad accounts,
pixels, catalogs and Instagram accounts, and records the assets they pick.
All data persisted to PostgreSQL.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from adagent.config import get_settings
from adagent.database import init_db, check_db_connection
from adagent.routers import meta_oauth, meta_selection
from adagent.services.selection_wizard import wizard_registry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Ad Agent Meta backend...")
    try:
        await init_db()
        logger.info("Database initialized — all tables ready.")
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {e}", exc_info=True)
        # Still yield so app can serve /api/health (degraded) and logs are visible
    yield
    logger.info("Shutting down...")
    await wizard_registry.close_all()


app = FastAPI(
    title="Ad Agent Meta Connection",
    description="Meta account linking and asset selection",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Register Routers (each endpoint requires a session JWT) ──────────
app.include_router(meta_oauth.router, prefix="/api/meta", tags=["Meta Connection"])
app.include_router(meta_selection.router, prefix="/api/meta/selection", tags=["Meta Selection"])


@app.get("/api/health")
async def health_check():
    db_ok = await check_db_connection()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "Ad Agent Meta Connection",
        "database": "connected" if db_ok else "disconnected",
    }
