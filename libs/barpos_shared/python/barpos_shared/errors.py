from __future__ import annotations

import logging
import os
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .request_id import get_request_id


def is_prod_env() -> bool:
    env = (os.getenv("ENV") or "dev").strip().lower()
    return env in ("prod", "production", "staging")


def _with_request_id(payload: dict[str, Any]) -> dict[str, Any]:
    rid = get_request_id()
    if rid:
        payload["request_id"] = rid
    return payload


def install_exception_handlers(app: FastAPI, logger_name: str = "barpos.errors") -> None:
    """
    JSON error bodies carrying the request id. Server-side details are
    scrubbed in prod/staging; 4xx details always reach the caller.

    Registered on Starlette's HTTPException so router-level 404/405 answers
    get the same body shape as the ones raised by route code.
    """
    log = logging.getLogger(logger_name)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail
        if is_prod_env() and exc.status_code >= 500:
            detail = "internal error"
        return JSONResponse(
            status_code=exc.status_code,
            content=_with_request_id({"detail": detail}),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=422, content=_with_request_id({"detail": jsonable_encoder(exc.errors())}))

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        log.exception("unhandled exception", extra={"path": request.url.path})
        detail = "internal error" if is_prod_env() else str(exc)
        return JSONResponse(status_code=500, content=_with_request_id({"detail": detail}))
