from .domain import (
    DuplicateRouteError,
    ErrorCode,
    InvalidPathTemplateError,
    RouteConfigError,
    ZSAConfigurationError,
    ZSAError,
    normalize_error,
)
from .http import ERROR_CODE_TO_STATUS, get_error_code, get_status_code

__all__ = [
    "ERROR_CODE_TO_STATUS",
    "DuplicateRouteError",
    "ErrorCode",
    "InvalidPathTemplateError",
    "RouteConfigError",
    "ZSAConfigurationError",
    "ZSAError",
    "get_error_code",
    "get_status_code",
    "normalize_error",
]
