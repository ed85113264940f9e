from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import settings
from core.exceptions import register_exception_handlers
from app.startup import run_startup_checks, configure_logging

# ========== POS Sync ==========
from modules.pos_sync.routes.pos_sync_routes import router as pos_sync_router
from modules.pos_sync.tasks.sync_scheduler import (
    start_pos_sync_scheduler,
    stop_pos_sync_scheduler,
)

configure_logging()

app = FastAPI(
    title="POS Sync Service",
    description="Synchronizes orders and menus with the external POS",
    version="1.0.0",
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(pos_sync_router)


# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup"""
    run_startup_checks()
    start_pos_sync_scheduler()


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown"""
    stop_pos_sync_scheduler()


@app.get("/")
def read_root():
    return {"message": "POS sync service is running"}


@app.get("/health")
def health():
    return {"status": "ok", "environment": settings.environment}
