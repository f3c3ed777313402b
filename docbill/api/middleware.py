"""Middleware for the FastAPI application.

This module contains middleware that process requests and responses, and the
exception handlers that turn docbill exceptions into `{"code", "detail"}` bodies.
"""

import time
import traceback
import uuid
from typing import Union

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from docbill.core.config import settings
from docbill.core.exceptions import (
    DocbillException,
    EntitlementError,
    GatewayBadResponse,
    GatewayUnavailable,
    NotFoundException,
    NumberGenerationFailed,
    PermissionException,
    PlanForbidsClients,
    SubscriptionUpdateConflict,
    ValidationFailed,
    unpack_validation_error,
)
from docbill.core.logging import logger

# Checked in order; the first matching family wins.
STATUS_CODE_MAP = (
    # 402 Payment Required - the client should offer an upgrade
    (EntitlementError, 402),
    # 403 Forbidden
    (PlanForbidsClients, 403),
    (PermissionException, 403),
    # 404 Not Found
    (NotFoundException, 404),
    # 400 Bad Request - the client should fix its input
    (ValidationFailed, 400),
    # 409 Conflict - lost every race
    (NumberGenerationFailed, 409),
    (SubscriptionUpdateConflict, 409),
    # 5xx - gateway trouble
    (GatewayUnavailable, 503),
    (GatewayBadResponse, 502),
)


async def add_request_id(request: Request, call_next: callable) -> Response:
    """Middleware to generate and add a request ID to the request for tracing.

    Args:
    ----
        request (Request): The incoming request.
        call_next (callable): The next middleware in the chain.

    Returns:
    -------
        Response: The response to the incoming request.

    """
    request.state.request_id = str(uuid.uuid4())
    response = await call_next(request)
    response.headers["X-Request-ID"] = request.state.request_id
    return response


async def log_requests(request: Request, call_next: callable) -> Response:
    """Middleware to log incoming requests."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time
    logger.info(
        f"Handled request {request.method} {request.url.path} in {duration:.2f} seconds. "
        f"Response code: {response.status_code}"
    )
    return response


async def exception_logging_middleware(request: Request, call_next: callable) -> Response:
    """Middleware to log unhandled exceptions.

    Args:
    ----
        request (Request): The incoming request.
        call_next (callable): The next middleware in the chain.

    Returns:
    -------
        Response: The response to the incoming request.

    """
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error(f"Unhandled exception: {exc}\n{traceback.format_exc()}")

        response_content = {
            "code": "INTERNAL_ERROR",
            "detail": f"Internal Server Error: {exc.__class__.__name__}",
        }
        if settings.DEBUG:
            response_content["trace"] = traceback.format_exc()

        return JSONResponse(status_code=500, content=response_content)


# Exception handlers
async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, ValidationError]
) -> JSONResponse:
    """Exception handler for request and model validation errors.

    Returns:
    -------
        JSONResponse: A 422 response listing the invalid fields, e.g.
            {"code": "VALIDATION_FAILED", "errors": [{"body.plan_code": "Field required"}]}

    """
    error_messages = unpack_validation_error(exc)
    logger.warning(f"Validation error on {request.url.path}: {error_messages}")
    return JSONResponse(status_code=422, content=error_messages)


def status_code_for(exc: DocbillException) -> int:
    """HTTP status for a docbill exception, 500 when no family matches."""
    for exc_type, status_code in STATUS_CODE_MAP:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def docbill_exception_handler(request: Request, exc: DocbillException) -> JSONResponse:
    """Generic exception handler for all DocbillException types.

    Maps exception families to HTTP status codes so clients can tell "upgrade"
    (402) from "fix your input" (400).

    Args:
    ----
        request (Request): The incoming request that triggered the exception.
        exc (DocbillException): The exception object that was raised.

    Returns:
    -------
        JSONResponse: HTTP response with the mapped status code and error details.
    """
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")

    headers = {"Retry-After": "5"} if isinstance(exc, GatewayUnavailable) else None
    return JSONResponse(
        status_code=status_code,
        content={"code": exc.code, "detail": exc.message},
        headers=headers,
    )
