"""Domain errors for reverse shares and AV scanning, plus the JSON error envelope handlers."""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ReverseShareError(Exception):
    """Base for errors that map to a user-visible JSON response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Server error"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class FeatureDisabledError(ReverseShareError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Reverse shares are not allowed"


class UnauthorizedError(ReverseShareError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Unauthorized"


class CredentialIssuanceError(ReverseShareError):
    """Token signing or encryption failed. Public message stays generic."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Could not create invite"


class InvalidCredentialError(ReverseShareError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid or missing reverse share token"


class InviteNotActiveError(ReverseShareError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Reverse share invite has expired"


class UploadTooLargeError(ReverseShareError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    message = "File too large"


class UploadRejectedError(ReverseShareError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    message = "File did not pass security scan"


class ScanTransportError(Exception):
    """Scanner unreachable, timed out, or answered with an unparseable body."""


class ScanServerError(Exception):
    """Scanner answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"scanner returned HTTP {status_code}")


class ScanConfigurationWarning(UserWarning):
    """No scanner URL configured; uploads are accepted unscanned."""


def _field_errors(exc: RequestValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for e in exc.errors():
        loc = [str(x) for x in e.get("loc", ()) if x not in ("body", "query", "path", "header")]
        field = ".".join(loc) or "body"
        errors.setdefault(field, []).append(e.get("msg", "Invalid value"))
    return errors


async def reverse_share_error_handler(request: Request, exc: ReverseShareError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "message": exc.message},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "status": "error",
            "message": "Validation failed",
            "data": {"errors": _field_errors(exc)},
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReverseShareError, reverse_share_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
