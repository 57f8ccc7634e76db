"""HTTP error envelope and service error translation.

Every error leaves the API as `{"error": "<message>"}`. Controllers wrap
service calls in `service_errors()` so the exceptions services raise map
onto status codes in one place; `setup_exception_handlers` installs the
envelope for HTTP errors, validation errors and anything unhandled.
"""

import logging
import uuid
from contextlib import contextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .services import ConflictError, ExpiredError

logger = logging.getLogger("office.errors")


@contextmanager
def service_errors():
    """Translate service exceptions into `HTTPException`.

    ConflictError -> 409, ExpiredError -> 410, LookupError -> 404,
    PermissionError -> 403, ValueError -> 400.
    """
    try:
        yield
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ExpiredError as e:
        raise HTTPException(status_code=410, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e).strip("'\""))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "invalid request"


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": _validation_message(exc)})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log an unhandled exception under an error id the client can quote."""
    error_id = uuid.uuid4().hex[:12]
    logger.error(
        "unhandled_exception [%s] %s %s: %s",
        error_id,
        request.method,
        request.url.path,
        exc,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error", "error_id": error_id})


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
