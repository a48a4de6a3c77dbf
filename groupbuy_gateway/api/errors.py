"""Map domain failures to HTTP responses"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from groupbuy_gateway.domain.exceptions import DomainException

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "NotFound": 404,
    "InvalidState": 409,
    "InsufficientMembers": 409,
    "Full": 409,
    "DuplicateMembership": 409,
    "DuplicateBid": 409,
    "DeadlinePassed": 410,
    "InvalidAmount": 422,
    "Unavailable": 503,
}


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 500)

    if status_code >= 500:
        logger.error(f"{exc.kind}: {exc}", extra={"path": request.url.path})
    else:
        logger.warning(f"{exc.kind}: {exc}", extra={"path": request.url.path})

    return JSONResponse(status_code=status_code, content={"error": exc.kind, "detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainException, domain_exception_handler)
