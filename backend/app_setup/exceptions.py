"""
Gestionnaires d'exceptions utilisés par la factory.
Toutes les erreurs sortent au même format JSON: {"success": false, "error": "<message>"}.
- HTTPException (FastAPI/Starlette, y compris 404 de routage et 429 du rate limiter)
- RequestValidationError (corps/paramètres invalides) -> 400
- Famille IntakeError -> status_code porté par l'exception
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.errors import IntakeError, UserCancelled

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path", "form"))
    msg = first.get("msg") or "invalid value"
    return f"{location}: {msg}" if location else msg


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        response = error_response(exc.status_code, str(exc.detail))
        for k, v in (getattr(exc, "headers", None) or {}).items():
            response.headers[k] = v
        return response

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        return error_response(400, _validation_message(exc))

    @app.exception_handler(IntakeError)
    async def intake_error(request: Request, exc: IntakeError):
        if isinstance(exc, UserCancelled):
            logger.info("%s %s: %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("%s %s -> %s %s: %s", request.method, request.url.path, exc.status_code, type(exc).__name__, exc.message)
        return error_response(exc.status_code, exc.message)
