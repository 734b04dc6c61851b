"""
Error kinds and the response envelope.

Every outcome leaves the API shaped as
{"status": "success" | "error", "message": str, "data"?: ..., "errors"?: [...]}.
"""

from typing import Any, List, Optional
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[List[dict]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors


class ValidationFailed(AppError):
    status_code = 400


class AuthenticationFailed(AppError):
    status_code = 401


class AuthorizationDenied(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404

    def __init__(self, entity: str):
        super().__init__(f"{entity} not found")
        self.entity = entity


class Conflict(AppError):
    status_code = 409


class DependencyUnavailable(AppError):
    status_code = 503


def success_response(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    body = {"status": "success", "message": message}
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def error_response(message: str, errors: Optional[List[dict]] = None, status_code: int = 400) -> JSONResponse:
    body = {"status": "error", "message": message}
    if errors:
        body["errors"] = errors
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def reject_nulls(updates: dict, fields) -> None:
    """Raise ValidationFailed when an update would blank out a field the record cannot be without."""
    errors = [{"field": f, "message": f"{f} cannot be null"} for f in fields if f in updates and updates[f] is None]
    if errors:
        raise ValidationFailed("Validation failed", errors=errors)
