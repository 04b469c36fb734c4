"""Map fulfillment errors to HTTP responses with stable machine-readable codes."""

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError

from fulfillment.exceptions import FulfillmentError

logger = structlog.get_logger(__name__)


def _invalid(errors) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"code": "validation_error", "message": "Invalid request", "errors": errors},
    )


async def _fulfillment_error(_request: Request, exc: FulfillmentError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _validation_error(_request: Request, exc: ValidationError) -> JSONResponse:
    return _invalid(getattr(exc, "messages", None) or {"_": [str(exc)]})


async def _request_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body") or "body"
        errors.setdefault(field, []).append(error["msg"])
    return _invalid(jsonable_encoder(errors))


async def _not_found(_request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"code": "not_found", "message": str(exc)})


async def _version_conflict(request: Request, exc: ExpectedVersionError) -> JSONResponse:
    logger.warning("Concurrent write conflict", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=409,
        content={"code": "conflict", "message": "The order was changed concurrently; reload it and retry"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FulfillmentError, _fulfillment_error)
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(ObjectNotFoundError, _not_found)
    app.add_exception_handler(ExpectedVersionError, _version_conflict)
