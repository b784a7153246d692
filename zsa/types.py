"""
Value types shared by the builders, the invocation engine and the router.

Configuration records are frozen pydantic models: every builder call
produces a new record, so branching one procedure into several actions
cannot leak configuration between them.
"""

from collections.abc import Callable
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field

from .exceptions.domain import ZSAError

CallbackKind = Literal["on_start", "on_success", "on_error", "on_complete", "on_input_parse_error"]


class RetryConfig(BaseModel):
    """Retry policy applied to the context chain and handler.

    Args:
        max_attempts: Total number of attempts, including the first one.
        delay: Milliseconds to wait before the next attempt, or a callable
            ``(current_attempt, err) -> milliseconds``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    max_attempts: int = Field(ge=1)
    delay: float | Callable[[int, ZSAError], float] = Field(default=0)

    def resolve_delay(self, current_attempt: int, err: ZSAError) -> float:
        """Milliseconds to wait after ``current_attempt`` failed with ``err``."""
        if callable(self.delay):
            return max(float(self.delay(current_attempt, err)), 0.0)
        return max(float(self.delay), 0.0)


class ActionCallbacks(BaseModel):
    """Lifecycle callbacks, kept in execution order."""

    model_config = ConfigDict(frozen=True)

    on_start: tuple[Callable[..., Any], ...] = ()
    on_success: tuple[Callable[..., Any], ...] = ()
    on_error: tuple[Callable[..., Any], ...] = ()
    on_complete: tuple[Callable[..., Any], ...] = ()
    on_input_parse_error: tuple[Callable[..., Any], ...] = ()

    def add(self, kind: CallbackKind, callback: Callable[..., Any]) -> "ActionCallbacks":
        return self.model_copy(update={kind: (*getattr(self, kind), callback)})

    def merged_with(self, later: "ActionCallbacks") -> "ActionCallbacks":
        """Concatenate per lifecycle point, this record's callbacks first."""
        return ActionCallbacks(
            on_start=self.on_start + later.on_start,
            on_success=self.on_success + later.on_success,
            on_error=self.on_error + later.on_error,
            on_complete=self.on_complete + later.on_complete,
            on_input_parse_error=self.on_input_parse_error + later.on_input_parse_error,
        )


class ActionConfig(BaseModel):
    """One configuration fragment of a procedure link or an action."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    input_transform: Callable[..., Any] | None = None
    output_transform: Callable[..., Any] | None = None
    callbacks: ActionCallbacks = ActionCallbacks()
    retry: RetryConfig | None = None
    timeout_ms: float | None = None

    def merged_with(self, nearer: "ActionConfig") -> "ActionConfig":
        """Overlay a fragment that sits closer to the handler.

        Scalar concerns (transforms, retry, timeout) are replaced wholesale by
        ``nearer`` when it sets them; callbacks accumulate.
        """
        return ActionConfig(
            input_transform=nearer.input_transform or self.input_transform,
            output_transform=nearer.output_transform or self.output_transform,
            callbacks=self.callbacks.merged_with(nearer.callbacks),
            retry=nearer.retry if nearer.retry is not None else self.retry,
            timeout_ms=nearer.timeout_ms if nearer.timeout_ms is not None else self.timeout_ms,
        )


class ResponseMeta(BaseModel):
    """Per-invocation response metadata a handler may mutate.

    The OpenAPI router reads it after a successful invocation.
    """

    status_code: int = 200
    headers: dict[str, str] = Field(default_factory=dict)

    def restore(self, snapshot: "ResponseMeta") -> None:
        """Overwrite this record in place with the values of ``snapshot``."""
        self.status_code = snapshot.status_code
        self.headers = dict(snapshot.headers)


class HandlerMeta(BaseModel):
    """Extra context passed to procedure steps and handlers as ``meta``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    request: Any = None
    response_meta: ResponseMeta = Field(default_factory=ResponseMeta)
    attempt: int = 1


class CompleteEvent(BaseModel):
    """Payload of ``on_complete`` callbacks."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status: Literal["success", "error"]
    is_success: bool
    is_error: bool
    args: Any = None
    data: Any = None
    err: ZSAError | None = None


class ActionResult(NamedTuple):
    """Outcome of an invocation: exactly one of ``data``/``error`` is set.

    Unpacks as ``data, err = await action(...)``.
    """

    data: Any
    error: ZSAError | None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_error(self) -> bool:
        return self.error is not None
