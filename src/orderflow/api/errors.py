"""Error responses for the orderflow API.

Every error is rendered in the same envelope:

    {"messages": [{"code": ..., "messageType": ..., "text": ..., "timestamp": ...}]}
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import Enum

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    """Type of message in error response."""

    ERROR = "Error"
    WARNING = "Warning"
    INFO = "Info"
    EXCEPTION = "Exception"


class Message(BaseModel):
    """A single error message."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    code: str
    message_type: MessageType = Field(alias="messageType")
    text: str
    timestamp: str | None = None


class Result(BaseModel):
    """Error envelope."""

    model_config = {"extra": "forbid"}

    messages: list[Message]


def _result(code: str, text: str, message_type: MessageType) -> Result:
    return Result(
        messages=[
            Message(
                code=code,
                messageType=message_type,
                text=text,
                timestamp=datetime.now(UTC).isoformat(),
            )
        ]
    )


class ApiError(HTTPException):
    """Base exception for API errors."""

    def __init__(
        self,
        status_code: int,
        code: str,
        text: str,
        message_type: MessageType = MessageType.ERROR,
    ):
        self.code = code
        self.text = text
        self.message_type = message_type
        super().__init__(status_code=status_code, detail=text)

    def to_result(self) -> Result:
        return _result(self.code, self.text, self.message_type)


class NotFoundError(ApiError):
    """Resource not found (404)."""

    def __init__(self, resource_type: str, identifier: str):
        super().__init__(
            status_code=404,
            code="NotFound",
            text=f"{resource_type} with identifier '{identifier}' not found",
        )


class BadRequestError(ApiError):
    """Invalid request (400)."""

    def __init__(self, text: str):
        super().__init__(status_code=400, code="BadRequest", text=text)


class InternalServerError(ApiError):
    """Internal server error (500)."""

    def __init__(self, text: str = "An unexpected error occurred"):
        super().__init__(
            status_code=500,
            code="InternalServerError",
            text=text,
            message_type=MessageType.EXCEPTION,
        )


async def api_exception_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Exception handler for API errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_result().model_dump(by_alias=True),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request body and parameter validation failures as 400."""
    text = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content=_result("BadRequest", text or "Invalid request", MessageType.ERROR).model_dump(
            by_alias=True
        ),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Exception handler for unexpected errors."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=_result(
            "InternalServerError", "An unexpected error occurred", MessageType.EXCEPTION
        ).model_dump(by_alias=True),
    )
