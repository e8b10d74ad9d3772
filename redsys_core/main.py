"""
RedSys Core: Payment Gateway and Recurring Billing API.

Signed REST integration with the RedSys/Getnet card processor plus a
recurring membership billing engine driven by a cron trigger.

Start the server:
    uvicorn redsys_core.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from redsys_core.api.health import router as health_router
from redsys_core.api.notifications import router as notifications_router
from redsys_core.api.renewals import router as renewals_router
from redsys_core.api.transactions import router as transactions_router
from redsys_core.config import settings
from redsys_core.database import init_db
from redsys_core.exceptions import ConfigurationError

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger("redsys_core.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    await init_db()
    yield


app = FastAPI(
    title="RedSys Core",
    description=(
        "RedSys/Getnet payment gateway integration with signed REST operations, "
        "stored-card (COF) recurring billing, processor notifications and "
        "immutable audit trails."
    ),
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Payment gateway misconfigured: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "Payment gateway is not configured"})


app.include_router(health_router)
app.include_router(renewals_router, prefix="/api")
app.include_router(transactions_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
