from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
from datetime import timedelta
import os
import uuid
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

import config
from database import database
from routes import admin, intake, webhooks
from job_runner import run_scheduled_message_dispatch
from services.clio_integration import clio_integration
from services.errors import GENERIC_RETRY_MESSAGE, IntakeError
from services.kit_integration import kit_integration
from services.lead_store import lead_store
from services.mail_dispatcher import mail_dispatcher

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# In-memory job store: pending work lives in scheduled_messages, not in the scheduler
scheduler = AsyncIOScheduler()

HIGH_VALUE_SCORE = 70


def _under_pytest() -> bool:
    return os.environ.get("PYTEST_RUNNING") == "1"


def log_missing_integrations():
    """Warn once at startup for every integration that will be skipped."""
    configured = mail_dispatcher.provider_names()
    if not configured:
        logger.error("No mail provider configured. Drip messages and alerts will fail.")
    else:
        logger.info("Mail providers in failover order: %s", ", ".join(configured))
    if not clio_integration.configured:
        logger.warning("CLIO_GROW_INBOX_TOKEN not set; CRM lead creation is skipped")
    if not kit_integration.configured:
        logger.warning("KIT_API_KEY not set; ESP subscriber tagging is skipped")
    if not config.CALENDLY_WEBHOOK_SECRET:
        logger.warning("CALENDLY_WEBHOOK_SECRET not set; booking webhooks are accepted unsigned")


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    if _under_pytest():
        yield
        return

    # Startup
    logger.info("Starting lead intake API")
    await database.connect()
    log_missing_integrations()

    scheduler.add_job(
        run_scheduled_message_dispatch,
        IntervalTrigger(seconds=config.DISPATCH_INTERVAL_SECONDS),
        id="message_dispatch",
        name="Send due drip messages",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Background job scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down lead intake API")
    scheduler.shutdown(wait=False)
    logger.info("Background job scheduler stopped")
    await database.close()

# Create FastAPI app
app = FastAPI(
    title="Lead Intake API",
    description="Law firm intake, lead scoring and nurture sequences",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(intake.router)
app.include_router(webhooks.router)
app.include_router(admin.router)


# Health check
@app.get("/health")
async def health_check():
    components = {
        "database": "connected" if database.get_db() is not None else "disconnected",
        "scheduler": "running" if scheduler.running else "stopped",
        "mail_providers": mail_dispatcher.provider_names(),
        "crm": "configured" if clio_integration.configured else "not_configured",
        "esp": "configured" if kit_integration.configured else "not_configured",
    }
    counters = {}
    status = "healthy"
    if database.get_db() is not None:
        since = lead_store.clock.now() - timedelta(hours=24)
        try:
            counters = {
                "total_leads": await lead_store.count_leads(),
                "high_value": await lead_store.count_leads(min_score=HIGH_VALUE_SCORE),
                "last_24h": await lead_store.count_leads(since=since),
            }
        except Exception as e:
            logger.warning(f"Health counters unavailable: {e}")
            status = "degraded"
    else:
        status = "degraded"
    return {
        "status": status,
        "environment": config.ENVIRONMENT,
        "components": components,
        "counters": counters,
    }


# Intake errors carry their own client-safe message; the request is never echoed
@app.exception_handler(IntakeError)
async def intake_exception_handler(request: Request, exc: IntakeError):
    logger.warning("Request to %s failed: %s", request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": exc.public_message},
    )


# Validation error handler: log request_id + error locations, never the submitted values
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    logger.warning(
        "Validation failed request_id=%s path=%s errors=%s",
        request_id,
        request.url.path,
        [(e.get("loc"), e.get("type")) for e in exc.errors()],
    )
    return JSONResponse(
        status_code=400,
        content={"ok": False, "error": "Invalid request.", "request_id": request_id},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": GENERIC_RETRY_MESSAGE}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=config.ENVIRONMENT == "development"
    )
