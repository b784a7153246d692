"""
zsa: typed, validated server actions.

Define an action once, invoke it in-process or expose it over HTTP through
the OpenAPI router. Every invocation returns ``ActionResult(data, error)``.

Example:
    from pydantic import BaseModel
    from zsa import create_server_action

    class Greet(BaseModel):
        name: str

    greet = create_server_action().input(Greet).handler(lambda input: f"Hello {input.name}")

    data, err = await greet({"name": "Ada"})
"""

from .action import ServerAction, ServerActionBuilder, create_server_action
from .client import ZSAClient
from .engine import ActionInvocation, invoke
from .exceptions import (
    ERROR_CODE_TO_STATUS,
    DuplicateRouteError,
    ErrorCode,
    InvalidPathTemplateError,
    RouteConfigError,
    ZSAConfigurationError,
    ZSAError,
    get_status_code,
    normalize_error,
)
from .procedure import (
    CompiledProcedure,
    Procedure,
    ProcedureChain,
    ProcedureLink,
    create_server_action_procedure,
)
from .shapes import Shape
from .types import (
    ActionCallbacks,
    ActionConfig,
    ActionResult,
    CompleteEvent,
    HandlerMeta,
    ResponseMeta,
    RetryConfig,
)
from .utils.logger import setup_logging

__version__ = "0.1.0"

__all__ = [
    "ERROR_CODE_TO_STATUS",
    "ActionCallbacks",
    "ActionConfig",
    "ActionInvocation",
    "ActionResult",
    "CompiledProcedure",
    "CompleteEvent",
    "DuplicateRouteError",
    "ErrorCode",
    "HandlerMeta",
    "InvalidPathTemplateError",
    "Procedure",
    "ProcedureChain",
    "ProcedureLink",
    "ResponseMeta",
    "RetryConfig",
    "RouteConfigError",
    "ServerAction",
    "ServerActionBuilder",
    "Shape",
    "ZSAClient",
    "ZSAConfigurationError",
    "ZSAError",
    "create_server_action",
    "create_server_action_procedure",
    "get_status_code",
    "invoke",
    "normalize_error",
    "setup_logging",
]
