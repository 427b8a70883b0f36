"""
HTTP translation of the subscription service exceptions.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.services.exceptions import (
    BillingNotConfigured,
    BillingProviderError,
    PreconditionFailed,
    SubscriptionError,
    SubscriptionNotFound,
)

logger = logging.getLogger(__name__)

STATUS_CODES = (
    (SubscriptionNotFound, 404),
    (PreconditionFailed, 400),
    (BillingProviderError, 502),
    (BillingNotConfigured, 503),
)


def status_code_for(exc: SubscriptionError) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def subscription_error_handler(request: Request, exc: SubscriptionError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"success": False, "message": str(exc), "detail": str(exc)})


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    message = "The subscription store is temporarily unavailable."
    return JSONResponse(status_code=500, content={"success": False, "message": message, "detail": message})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SubscriptionError, subscription_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
