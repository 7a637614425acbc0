import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ChatServiceError(HTTPException):
    """
    Client-correctable request error. Terminal for the request, never retried.
    Rendered as {"code": ..., "message": ...}.
    """

    status_code = 500
    code = "internal-error"

    def __init__(self, message: str):
        super().__init__(status_code=self.status_code, detail=message)
        self.message = message


class BadRequest(ChatServiceError):
    status_code = 400
    code = "bad-request"


class Unauthorized(ChatServiceError):
    status_code = 401
    code = "unauthorized"


class Forbidden(ChatServiceError):
    status_code = 403
    code = "forbidden"


class NotFound(ChatServiceError):
    # also used for conversations the caller is not part of
    status_code = 404
    code = "not-found"


class Conflict(ChatServiceError):
    status_code = 409
    code = "conflict"


def error_body(code: str, message: str) -> dict:
    return {"code": code, "message": message}


async def chat_error_handler(request: Request, exc: ChatServiceError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(status_code=400, content=error_body(BadRequest.code, message))


async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("[store] %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content=error_body("internal-error", "Database error"))


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(ChatServiceError, chat_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, store_error_handler)
