import logging
from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .domain.errors import DomainError
from .routers import events, reservations, settings, slots
from .utils.request_id import RequestIdFilter, accept_request_id, set_request_id

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "not_found": 404,
    "conflict": 409,
    "validation": 400,
    "unauthorized": 401,
    "forbidden": 403,
    "internal": 500,
}

_HTTP_ERRORS = {
    400: ("VALIDATION_ERROR", "validation"),
    401: ("UNAUTHORIZED", "unauthorized"),
    403: ("FORBIDDEN", "forbidden"),
    404: ("NOT_FOUND", "not_found"),
    405: ("METHOD_NOT_ALLOWED", "validation"),
    409: ("CONFLICT", "conflict"),
}


def error_body(code: str, kind: str, message: str) -> dict[str, str]:
    return {"error": code, "kind": kind, "message": message}


async def request_id_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    request_id = accept_request_id(request.headers.get("X-Request-ID"))
    set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        set_request_id(None)
    response.headers["X-Request-ID"] = request_id
    return response


async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, DomainError)
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=error_body(exc.code, exc.kind, exc.message))


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg", "invalid input")
    else:
        message = "invalid input"
    return JSONResponse(status_code=400, content=error_body("VALIDATION_ERROR", "validation", message))


async def http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, StarletteHTTPException)
    code, kind = _HTTP_ERRORS.get(exc.status_code, ("INTERNAL_ERROR", "internal"))
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, kind, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


def create_app() -> FastAPI:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s",
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(RequestIdFilter())
    app = FastAPI(title="Slot Reservation API")
    app.middleware("http")(request_id_middleware)
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(slots.router)
    app.include_router(slots.manage_router)
    app.include_router(settings.public_router)
    app.include_router(settings.router)
    app.include_router(events.public_router)
    app.include_router(events.router)
    app.include_router(reservations.router)
    return app


app = create_app()
