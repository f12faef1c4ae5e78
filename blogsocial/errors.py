"""
Domain error taxonomy.

Services raise these; the exception handler registered in ``main.py``
turns any ``AppError`` into a JSON body with the matching status code::

    {"success": false, "error": "<message>", "code": "<CODE>"}
"""
from fastapi import Request
from fastapi.responses import JSONResponse


class AppError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class Unauthorized(AppError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Please sign in to continue") -> None:
        super().__init__(message)


class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str) -> None:
        super().__init__(f"{resource} not found")
        self.resource = resource


class StoreUnavailable(AppError):
    status_code = 503
    code = "STORE_UNAVAILABLE"

    def __init__(self, message: str = "Database is unreachable, try again shortly") -> None:
        super().__init__(message)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "code": exc.code},
    )
