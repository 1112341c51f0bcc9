"""Error taxonomy shared by every service and its HTTP rendering.

Services raise these; the FastAPI handlers registered by
`register_error_handlers` turn them into `{success: false, error, errorCode?}`
bodies. Provider detail never reaches the client: `UpstreamProviderError`
carries a user-safe message and the raw detail is logged where it was caught.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from kutable.common.logging import logger


class KutableError(Exception):
    """Base class for errors that map to a client-visible HTTP status."""

    status_code = 500
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None, error_code: str | None = None) -> None:
        self.message = message or self.default_message
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(KutableError):
    status_code = 400
    default_message = "Invalid request"


class InvalidRecipient(ValidationError):
    default_message = "Invalid recipient"


class AuthorizationError(KutableError):
    status_code = 401
    default_message = "Unauthorized"


class NotFoundError(KutableError):
    status_code = 404
    default_message = "Not found"


class ConflictError(KutableError):
    status_code = 409
    default_message = "Conflict"


class RateLimitedError(KutableError):
    status_code = 429
    default_message = "Too many requests. Please slow down."


class UpstreamProviderError(KutableError):
    status_code = 502
    default_message = "A downstream provider rejected the request. Please try again."


class InternalError(KutableError):
    status_code = 500


def error_body(message: str, error_code: str | None = None) -> dict:
    body: dict = {"success": False, "error": message}
    if error_code:
        body["errorCode"] = error_code
    return body


def register_error_handlers(app: FastAPI) -> None:
    """Render the taxonomy, request validation and unexpected failures uniformly."""

    @app.exception_handler(KutableError)
    async def _kutable_error(_: Request, exc: KutableError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.error_code))

    @app.exception_handler(RequestValidationError)
    async def _request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        fields = sorted({".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()})
        message = "Missing or invalid fields: " + ", ".join(f for f in fields if f) if fields else "Invalid request"
        return JSONResponse(status_code=400, content=error_body(message))

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error route=%s error=%s", request.url.path, exc)
        return JSONResponse(status_code=500, content=error_body(InternalError.default_message))
