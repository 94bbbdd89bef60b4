"""Map marketplace errors to HTTP responses.

Protean's own exceptions (``ValidationError``, ``ObjectNotFoundError`` ...)
are handled by ``protean.integrations.fastapi.register_exception_handlers``.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketplace.errors import MarketplaceError

logger = structlog.get_logger(__name__)


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_rejected",
        path=request.url.path,
        error=type(exc).__name__,
        status_code=exc.status_code,
        message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_marketplace_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
