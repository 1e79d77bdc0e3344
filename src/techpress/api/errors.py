"""Error responses for the techpress API.

Every error is rendered as a Result holding one Message:

    {"messages": [{"code": "NotFound", "messageType": "Error",
                   "text": "Blog with identifier '42' not found",
                   "timestamp": "2024-01-01T00:00:00+00:00"}]}
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import Enum

from fastapi import HTTPException, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    """Error: the request was refused. Exception: the service failed."""

    ERROR = "Error"
    EXCEPTION = "Exception"


class Message(BaseModel):
    """One entry of an error body; messageType is camelCase on the wire."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    code: str
    message_type: MessageType = Field(alias="messageType")
    text: str
    timestamp: str | None = None


class Result(BaseModel):
    """Error body returned by every failing endpoint."""

    model_config = {"extra": "forbid"}

    messages: list[Message]


class ApiError(HTTPException):
    """Refusal raised by a route; rendered by api_exception_handler."""

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
        return Result(
            messages=[
                Message(
                    code=self.code,
                    messageType=self.message_type,
                    text=self.text,
                    timestamp=datetime.now(UTC).isoformat(),
                )
            ]
        )


class NotFoundError(ApiError):
    """Blog or comment does not exist (404)."""

    def __init__(self, resource_type: str, identifier: int | str):
        super().__init__(
            status_code=404,
            code="NotFound",
            text=f"{resource_type} with identifier '{identifier}' not found",
        )


class BadRequestError(ApiError):
    """Empty comment or duplicate save (400)."""

    def __init__(self, text: str):
        super().__init__(status_code=400, code="BadRequest", text=text)


class UnauthorizedError(ApiError):
    """Gateway identity headers missing (401)."""

    def __init__(self, text: str = "Authentication required"):
        super().__init__(status_code=401, code="Unauthorized", text=text)


class ForbiddenError(ApiError):
    """Caller does not own the comment (403)."""

    def __init__(self, text: str = "Not authorized"):
        super().__init__(status_code=403, code="Forbidden", text=text)


async def api_exception_handler(request: Request, exc: ApiError) -> ORJSONResponse:
    """Render an ApiError as a Result."""
    return ORJSONResponse(
        status_code=exc.status_code,
        content=exc.to_result().model_dump(by_alias=True),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """Log an unexpected failure and hide its details from the caller."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return ORJSONResponse(
        status_code=500,
        content=Result(
            messages=[
                Message(
                    code="InternalServerError",
                    messageType=MessageType.EXCEPTION,
                    text="An unexpected error occurred",
                    timestamp=datetime.now(UTC).isoformat(),
                )
            ]
        ).model_dump(by_alias=True),
    )
