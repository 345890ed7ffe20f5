"""
Exception handlers for the AgentWorks server.

``AgentWorksError`` subclasses map to a JSON body ``{error, message}`` with the
status code declared on the error class. Anything else is caught by the
global handler, logged with an error id and full context, and returned as a
500 so clients can quote the id when reporting the failure.
"""

import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from agentworks.core.errors import AgentWorksError
from agentworks.core.logging_config import get_logger

logger = get_logger(__name__)


async def agentworks_error_handler(request: Request, exc: AgentWorksError) -> JSONResponse:
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} [{exc.code}]: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Log an unhandled exception with its request context and return a 500.

    Args:
        request: The HTTP request that caused the exception
        exc: The exception that was raised

    Returns:
        JSONResponse with the error id and type
    """
    error_id = id(exc)
    logger.error(
        f"Unhandled exception [{error_id}] in {request.method} {request.url.path}: {exc}",
        exc_info=True,
        extra={
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
            "client": request.client.host if request.client else "unknown",
            "error_type": type(exc).__name__,
            "traceback": traceback.format_exc(),
        },
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "Internal server error",
            "error_id": error_id,
            "error_type": type(exc).__name__,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the exception handlers with the FastAPI application."""
    app.add_exception_handler(AgentWorksError, agentworks_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    logger.debug("Exception handlers registered successfully")
