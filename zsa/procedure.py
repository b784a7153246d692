"""
Procedure chain builder DSL.

A procedure is a reusable link that validates part of the input, produces
the ``ctx`` passed to the next link and contributes callbacks, retry and
timeout settings. Links chain linearly; the last one feeds the action.

Example:
    from zsa import create_server_action_procedure

    authed = create_server_action_procedure().handler(lambda: {"user": get_user()})

    admin = (
        create_server_action_procedure(authed)
        .on_error(report_error)
        .handler(lambda ctx: {**ctx, "admin": require_admin(ctx["user"])})
    )
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, ValidationError

from .exceptions.domain import ZSAConfigurationError
from .shapes import Shape, as_shape
from .types import ActionConfig, CallbackKind, RetryConfig
from .utils.callables import check_callable

HANDLER_ARGS = ("input", "ctx", "meta")

CALLBACK_ARGS: dict[CallbackKind, tuple[str, ...]] = {
    "on_start": ("args",),
    "on_success": ("data", "input", "ctx"),
    "on_error": ("err",),
    "on_complete": ("event",),
    "on_input_parse_error": ("err", "args"),
}


class ProcedureLink(BaseModel):
    """One link of a procedure chain.

    Args:
        input_shape: Optional shape this link validates the raw input against.
        handler: Optional context-producing step ``(input, ctx, meta) -> ctx``.
        config: Configuration fragment contributed by the link.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    input_shape: Shape | None = None
    handler: Callable[..., Any] | None = None
    config: ActionConfig = ActionConfig()


class ProcedureChain(BaseModel):
    """Ordered, immutable sequence of procedure links."""

    model_config = ConfigDict(frozen=True)

    links: tuple[ProcedureLink, ...] = ()

    def append(self, link: ProcedureLink) -> ProcedureChain:
        return ProcedureChain(links=(*self.links, link))

    def resolve(self, own: ActionConfig) -> ActionConfig:
        """Fold the chain front-to-back, then overlay the action's own config.

        Args:
            own: The action-level configuration.

        Returns:
            The effective configuration: callbacks concatenated in chain order,
            everything else taken from the nearest fragment that sets it.
        """
        effective = ActionConfig()
        for link in self.links:
            effective = effective.merged_with(link.config)
        return effective.merged_with(own)


class ConfigBuilder:
    """Configuration setters shared by procedure and action builders.

    Subclasses store their fragment in ``_config`` and implement ``_replace``.
    Every setter returns a new builder.
    """

    _config: ActionConfig

    def _replace(self, **changes: Any) -> Self:
        raise NotImplementedError

    def _with_callback(self, kind: CallbackKind, fn: Callable[..., Any]) -> Self:
        check_callable(fn, CALLBACK_ARGS[kind], kind)
        callbacks = self._config.callbacks.add(kind, fn)
        return self._replace(config=self._config.model_copy(update={"callbacks": callbacks}))

    def on_start(self, fn: Callable[..., Any]) -> Self:
        """Run ``fn(args)`` before input validation."""
        return self._with_callback("on_start", fn)

    def on_success(self, fn: Callable[..., Any]) -> Self:
        """Run ``fn(data, input, ctx)`` after a successful invocation."""
        return self._with_callback("on_success", fn)

    def on_error(self, fn: Callable[..., Any]) -> Self:
        """Run ``fn(err)`` after a failed invocation."""
        return self._with_callback("on_error", fn)

    def on_complete(self, fn: Callable[..., Any]) -> Self:
        """Run ``fn(event)`` after every invocation."""
        return self._with_callback("on_complete", fn)

    def on_input_parse_error(self, fn: Callable[..., Any]) -> Self:
        """Run ``fn(err, args)`` when input validation fails."""
        return self._with_callback("on_input_parse_error", fn)

    def retry(
        self,
        max_attempts: int,
        delay: float | Callable[[int, Any], float] = 0,
    ) -> Self:
        """Set the retry policy, replacing any inherited one.

        Args:
            max_attempts: Total attempts, at least 1.
            delay: Milliseconds between attempts, or ``(current_attempt, err) -> ms``.

        Raises:
            ZSAConfigurationError: If the policy is invalid.
        """
        try:
            policy = RetryConfig(max_attempts=max_attempts, delay=delay)
        except ValidationError as e:
            raise ZSAConfigurationError(f"Invalid retry policy: {e}") from e
        return self._replace(config=self._config.model_copy(update={"retry": policy}))

    def timeout(self, ms: float) -> Self:
        """Fail with TIMEOUT when context chain plus handler exceed ``ms`` milliseconds."""
        if ms <= 0:
            raise ZSAConfigurationError(f"Timeout must be positive, got {ms}")
        return self._replace(config=self._config.model_copy(update={"timeout_ms": float(ms)}))

    def input_transform(self, fn: Callable[..., Any]) -> Self:
        """Transform the raw input with ``fn(input)`` before validation."""
        check_callable(fn, ("input",), "input_transform")
        return self._replace(config=self._config.model_copy(update={"input_transform": fn}))

    def output_transform(self, fn: Callable[..., Any]) -> Self:
        """Transform the handler result with ``fn(data)`` before output validation."""
        check_callable(fn, ("data",), "output_transform")
        return self._replace(config=self._config.model_copy(update={"output_transform": fn}))


class Procedure(ConfigBuilder):
    """Builder for one procedure link on top of a parent chain."""

    def __init__(
        self,
        parent: ProcedureChain | None = None,
        input_shape: Shape | None = None,
        config: ActionConfig | None = None,
    ) -> None:
        self._parent = parent or ProcedureChain()
        self._input_shape = input_shape
        self._config = config or ActionConfig()

    def _replace(self, **changes: Any) -> Procedure:
        state = {
            "parent": self._parent,
            "input_shape": self._input_shape,
            "config": self._config,
        }
        state.update(changes)
        return Procedure(**state)

    def input(self, schema: Any) -> Procedure:
        """Validate the raw input against ``schema`` for this link."""
        return self._replace(input_shape=as_shape(schema))

    def _link(self, handler: Callable[..., Any] | None) -> ProcedureLink:
        return ProcedureLink(input_shape=self._input_shape, handler=handler, config=self._config)

    def handler(self, fn: Callable[..., Any]) -> CompiledProcedure:
        """Finish the link with a context-producing step.

        Args:
            fn: ``(input, ctx, meta) -> new ctx``; sync or async.

        Returns:
            A compiled procedure usable as a parent or by an action.
        """
        check_callable(fn, HANDLER_ARGS, "procedure handler")
        return CompiledProcedure(self._parent.append(self._link(fn)))

    def compile(self) -> CompiledProcedure:
        """Finish the link without a step; it contributes only configuration."""
        return CompiledProcedure(self._parent.append(self._link(None)))


class CompiledProcedure:
    """A finished procedure chain, shareable by any number of actions."""

    def __init__(self, chain: ProcedureChain) -> None:
        self.chain = chain

    def __repr__(self) -> str:
        return f"CompiledProcedure(links={len(self.chain.links)})"


def create_server_action_procedure(
    parent: CompiledProcedure | None = None,
) -> Procedure:
    """Start a procedure, optionally extending ``parent``'s chain."""
    return Procedure(parent.chain if parent is not None else None)


def chain_of(procedure: CompiledProcedure | Procedure | None) -> ProcedureChain:
    """Chain contributed by whatever was passed to ``create_server_action``."""
    if procedure is None:
        return ProcedureChain()
    if isinstance(procedure, Procedure):
        procedure = procedure.compile()
    if not isinstance(procedure, CompiledProcedure):
        raise ZSAConfigurationError(
            f"Expected a procedure, got {type(procedure).__name__}"
        )
    return procedure.chain
