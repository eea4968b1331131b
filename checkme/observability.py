from __future__ import annotations

import logging
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from .errors import LedgerError, PersistenceError


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


class RequestTimingLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request and adds an 'X-Process-Time-Ms' header."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self.logger = logging.getLogger("request")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers["X-Process-Time-Ms"] = str(duration_ms)

        self.logger.info(
            "method=%s path=%s status=%s duration_ms=%s ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request.client.host if request.client else "?",
        )
        return response


def _error_payload(request: Request, status_code: int, message: str) -> JSONResponse:
    payload = {
        "ok": False,
        "error": {
            "status": status_code,
            "message": message,
            "path": request.url.path,
        },
    }
    return JSONResponse(status_code=status_code, content=payload)


def add_exception_handlers(app: FastAPI) -> None:
    """Register one error payload shape for HTTP, ledger and unexpected errors."""

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _error_payload(request, exc.status_code, exc.detail if isinstance(exc.detail, str) else "")

    @app.exception_handler(LedgerError)
    async def ledger_exception_handler(request: Request, exc: LedgerError):
        if isinstance(exc, PersistenceError):
            logging.getLogger("error").error("Persistence failure on %s: %s", request.url.path, exc)
            return _error_payload(request, exc.status_code, "Database unavailable")
        return _error_payload(request, exc.status_code, exc.message)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logging.getLogger("error").exception("Unhandled exception: %s", exc)
        return _error_payload(request, 500, "Internal server error")
