"""Main module of the FastAPI application.

This module sets up the FastAPI application and the middleware to log incoming requests
and unhandled exceptions.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from docbill.api.middleware import (
    add_request_id,
    docbill_exception_handler,
    exception_logging_middleware,
    log_requests,
    validation_exception_handler,
)
from docbill.api.v1.api import api_router
from docbill.billing.sweep_scheduler import pending_sweep_scheduler
from docbill.core.config import settings
from docbill.core.exceptions import DocbillException


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events.

    Starts the background pending sweep unless PENDING_SWEEP_INTERVAL_SECONDS is 0.
    """
    if settings.PENDING_SWEEP_INTERVAL_SECONDS > 0:
        await pending_sweep_scheduler.start()

    yield

    await pending_sweep_scheduler.stop()


# Slash aliases come from TrailingSlashRouter in api_router; no redirects
app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url="/openapi.json",
    lifespan=lifespan,
    redirect_slashes=False,
)

app.include_router(api_router)

# Register middleware directly
app.middleware("http")(add_request_id)
app.middleware("http")(log_requests)
app.middleware("http")(exception_logging_middleware)

# Register exception handlers
app.exception_handler(RequestValidationError)(validation_exception_handler)
app.exception_handler(ValidationError)(validation_exception_handler)
app.exception_handler(DocbillException)(docbill_exception_handler)
