import logging
from enum import Enum
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

# Set up our logger
logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DAILY_LIMIT_REACHED = "DAILY_LIMIT_REACHED"
    COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"
    DUPLICATE_REPORT = "DUPLICATE_REPORT"
    PROXIMITY_ERROR = "PROXIMITY_ERROR"
    TIMING_ERROR = "TIMING_ERROR"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NOT_FOUND = "NOT_FOUND"


ERROR_STATUS_CODES = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.DAILY_LIMIT_REACHED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.COOLDOWN_ACTIVE: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.DUPLICATE_REPORT: status.HTTP_409_CONFLICT,
    ErrorCode.PROXIMITY_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.TIMING_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def raise_for_failure(result) -> None:
    """
    Turns a failed engine result into an HTTPException.
    Engine operations report expected rejections as results; only the HTTP edge raises.
    """
    if result.success:
        return
    code = result.error_code or ErrorCode.VALIDATION_ERROR
    retry_after: Optional[int] = getattr(result, "retry_after_seconds", None)
    headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
    raise HTTPException(
        status_code=ERROR_STATUS_CODES[code],
        detail={"code": code.value, "message": result.error, "retry_after_seconds": retry_after},
        headers=headers,
    )


async def global_exception_handler(request: Request, exc: Exception):
    """
    Catches ALL completely unhandled Python exceptions (500s) globally.
    Logs the full traceback securely on the server, but returns a clean JSON to the client.
    """
    # Log the exact error and stack trace to our server logs for debugging
    logger.error(f"CRITICAL UNHANDLED ERROR processing {request.method} {request.url}: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected system error occurred. Our engineers have been notified."},
    )
