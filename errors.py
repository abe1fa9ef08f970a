"""Error taxonomy shared by the API and its client.

Routes raise these; the handlers registered by ``register_error_handlers``
render them as ``{"success": false, "error": ..., "details": [...]}``. The
client maps response status codes back onto the same classes.
"""

import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class TaskManagerError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[List[str]] = None):
        self.message = message or self.default_message
        self.details = list(details) if details else []
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(TaskManagerError):
    status_code = 400
    default_message = "Validation failed"


class AuthenticationError(TaskManagerError):
    status_code = 401
    default_message = "Invalid or expired token"


class NotFoundError(TaskManagerError):
    status_code = 404
    default_message = "Not found"


class ConflictError(TaskManagerError):
    status_code = 409
    default_message = "Resource already exists"


class ServerError(TaskManagerError):
    status_code = 500


class BulkDeleteError(TaskManagerError):
    """Some deletes of a bulk delete failed; successful ones are not rolled back."""

    def __init__(self, deleted, failed):
        self.deleted = list(deleted)
        self.failed = dict(failed)
        details = [f"{task_id}: {exc}" for task_id, exc in self.failed.items()]
        super().__init__(
            f"Failed to delete {len(self.failed)} of {len(self.deleted) + len(self.failed)} tasks",
            details,
        )


_BY_STATUS = {
    cls.status_code: cls
    for cls in (ValidationError, AuthenticationError, NotFoundError, ConflictError)
}


def error_for_status(status_code: int, message: Optional[str] = None, details=None) -> TaskManagerError:
    cls = _BY_STATUS.get(status_code, ServerError)
    if cls is ServerError and not message:
        message = f"Request failed with status {status_code}"
    return cls(message, details)


def field_message(error: dict) -> str:
    loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    if error.get("type") == "extra_forbidden":
        return f"Invalid update field: {'.'.join(loc)}"
    msg = error.get("msg", "Invalid value")
    # pydantic prefixes messages from custom validators
    if msg.startswith("Value error, "):
        return msg[len("Value error, "):]
    return f"{'.'.join(loc)}: {msg}" if loc else msg


def register_error_handlers(app: FastAPI):
    @app.exception_handler(TaskManagerError)
    async def task_manager_error_handler(request: Request, exc: TaskManagerError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = [field_message(e) for e in exc.errors()]
        if any(e.get("type") == "extra_forbidden" for e in exc.errors()):
            error = ValidationError("Invalid update fields", details)
        else:
            error = ValidationError(details=details)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=ServerError().to_dict())
