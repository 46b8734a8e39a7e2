"""
Custom exception hierarchy for the achievement engine.

Rule: every error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

The two engine errors (ConfigurationError, DataError) are raised inside a
reconciliation pass and carry the definition / achiever they concern. The
reconciler returns them as values; the service layer re-raises them so the
HTTP handlers below can render them.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class AchievementEngineException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ReconciliationError(AchievementEngineException):
    """An error tied to one (definition, achiever) reconciliation pass."""

    def __init__(
        self,
        message: str,
        definition_id: Optional[int] = None,
        achiever_id: Optional[str] = None,
    ):
        super().__init__(message=message)
        self.definition_id = definition_id
        self.achiever_id = achiever_id
        self._refresh_details()

    def with_context(
        self,
        definition_id: Optional[int] = None,
        achiever_id: Optional[str] = None,
    ) -> "ReconciliationError":
        """Fill in identifiers the raising code did not know about."""
        if self.definition_id is None:
            self.definition_id = definition_id
        if self.achiever_id is None:
            self.achiever_id = achiever_id
        self._refresh_details()
        return self

    def _refresh_details(self) -> None:
        self.details = {
            key: value
            for key, value in (
                ("definition_id", self.definition_id),
                ("achiever_id", self.achiever_id),
            )
            if value is not None
        }


class ConfigurationError(ReconciliationError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "CONFIGURATION_ERROR"


class DataError(ReconciliationError):
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "SIGNAL_DATA_ERROR"


class DefinitionNotFoundError(AchievementEngineException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "ACHIEVEMENT_TYPE_NOT_FOUND"

    def __init__(self, definition_id: int):
        super().__init__(
            message=f"Achievement type {definition_id} does not exist.",
            details={"definition_id": definition_id},
        )


class BatchTooLargeError(AchievementEngineException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "BATCH_TOO_LARGE"

    def __init__(self, max_items: int, received: int):
        super().__init__(
            message=f"Batch exceeds maximum size of {max_items} items. Received {received}.",
            details={"max_items": max_items, "received": received},
        )


class EmptyBatchError(AchievementEngineException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "EMPTY_BATCH"

    def __init__(self):
        super().__init__(message="Batch must contain at least one item.")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def engine_exception_handler(
    request: Request, exc: AchievementEngineException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
