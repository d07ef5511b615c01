"""Exception handlers rendering errors in the {success, error, code} envelope used by auth results."""

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from fleetfuel.schemas.auth import AuthErrorCode

logger = logging.getLogger(__name__)


class AuthHTTPError(HTTPException):
    """HTTPException carrying a stable AuthErrorCode for the response body."""

    def __init__(
        self,
        status_code: int,
        code: AuthErrorCode,
        message: str,
        headers: dict[str, str] | None = None,
        **extra: object,
    ) -> None:
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code = code
        self.extra = extra


def error_response(
    status_code: int,
    code: AuthErrorCode,
    message: str,
    headers: dict[str, str] | None = None,
    **extra: object,
) -> JSONResponse:
    content: dict[str, object] = {"success": False, "error": message, "code": code.value}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for auth errors, request validation errors and uncaught exceptions."""

    @app.exception_handler(AuthHTTPError)
    async def handle_auth_http_error(request: Request, exc: AuthHTTPError) -> JSONResponse:
        logger.info(
            "Auth request rejected",
            extra={
                "path": request.url.path,
                "status_code": exc.status_code,
                "error_code": exc.code.value,
            },
        )
        return error_response(exc.status_code, exc.code, str(exc.detail), exc.headers, **exc.extra)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        return error_response(
            400, AuthErrorCode.VALIDATION_ERROR, "Invalid request data", details=details
        )

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled exception",
            extra={"path": request.url.path, "method": request.method},
        )
        return error_response(500, AuthErrorCode.INTERNAL_ERROR, "Internal server error")
