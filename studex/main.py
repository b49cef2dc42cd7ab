import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from studex.core.config import get_settings
from studex.core.errors import EscrowError
from studex.core.logging import configure_logging
from studex.core.middleware import RequestIdMiddleware
from studex.api.v1.router import v1_router

logger = logging.getLogger(__name__)


def _field_errors(exc: RequestValidationError) -> dict:
    errors = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "header")]
        errors[".".join(loc) or "request"] = err.get("msg", "invalid")
    return errors


async def escrow_error_handler(request: Request, exc: EscrowError):
    if exc.status_code >= 409:
        logger.info(
            "[escrow] %s on %s %s request_id=%s",
            exc.code,
            request.method,
            request.url.path,
            getattr(request.state, "request_id", None),
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request.", "code": "ValidationError", "errors": _field_errors(exc)},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(
        "[unhandled] %s %s request_id=%s",
        request.method,
        request.url.path,
        getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "code": "InternalError"})


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
    )
    # Middleware: Request ID
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    # Typed escrow errors carry their own status
    app.add_exception_handler(EscrowError, escrow_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    return app


app = create_app()
