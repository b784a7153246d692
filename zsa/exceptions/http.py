"""
HTTP status mapping for ZSAError codes.

Used ONLY by the OpenAPI router and the HTTP client. The engine and the
builders never deal in status codes.
"""

from typing import Any

from fastapi import status

from .domain import ErrorCode

CLIENT_CLOSED_REQUEST_STATUS = 499
# Named differently across starlette releases
PAYLOAD_TOO_LARGE_STATUS = 413
UNPROCESSABLE_CONTENT_STATUS = 422

ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INPUT_PARSE_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.UNPROCESSABLE_CONTENT: UNPROCESSABLE_CONTENT_STATUS,
    ErrorCode.NOT_AUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.METHOD_NOT_SUPPORTED: status.HTTP_405_METHOD_NOT_ALLOWED,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.PRECONDITION_FAILED: status.HTTP_412_PRECONDITION_FAILED,
    ErrorCode.PAYLOAD_TOO_LARGE: PAYLOAD_TOO_LARGE_STATUS,
    ErrorCode.TOO_MANY_REQUESTS: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.CLIENT_CLOSED_REQUEST: CLIENT_CLOSED_REQUEST_STATUS,
    ErrorCode.PAYMENT_REQUIRED: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.INSUFFICIENT_CREDITS: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.TIMEOUT: status.HTTP_408_REQUEST_TIMEOUT,
    ErrorCode.OUTPUT_PARSE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.INTERNAL_SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# First code listed for a status wins when reading a response back
_STATUS_TO_ERROR_CODE: dict[int, ErrorCode] = {}
for _code, _status in ERROR_CODE_TO_STATUS.items():
    _STATUS_TO_ERROR_CODE.setdefault(_status, _code)
_STATUS_TO_ERROR_CODE[status.HTTP_500_INTERNAL_SERVER_ERROR] = ErrorCode.ERROR


def get_status_code(code: Any) -> int:
    """Map an error code to its HTTP status.

    Args:
        code: An ErrorCode, its string value, or anything else.

    Returns:
        The mapped status; 500 for unknown or missing codes.
    """
    parsed = ErrorCode.parse(code)
    if parsed is None:
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return ERROR_CODE_TO_STATUS.get(parsed, status.HTTP_500_INTERNAL_SERVER_ERROR)


def get_error_code(status_code: int) -> ErrorCode:
    """Best-effort reverse mapping used when a response body carries no code."""
    return _STATUS_TO_ERROR_CODE.get(status_code, ErrorCode.ERROR)
