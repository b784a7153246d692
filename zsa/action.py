"""
Server action builder and compiled action.

Example:
    from pydantic import BaseModel
    from zsa import create_server_action

    class GetPost(BaseModel):
        id: int

    get_post = (
        create_server_action(authed)
        .input(GetPost)
        .retry(max_attempts=3, delay=100)
        .timeout(2000)
        .handler(lambda input, ctx: load_post(input.id, ctx["user"]))
    )

    data, err = await get_post({"id": 42})
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .engine import invoke
from .procedure import (
    HANDLER_ARGS,
    CompiledProcedure,
    ConfigBuilder,
    Procedure,
    ProcedureChain,
    chain_of,
)
from .shapes import Shape, as_shape
from .types import ActionConfig, ActionResult, ResponseMeta
from .utils.callables import check_callable


class ServerActionBuilder(ConfigBuilder):
    """Builder for a server action on top of an optional procedure chain."""

    def __init__(
        self,
        chain: ProcedureChain | None = None,
        input_shape: Shape | None = None,
        output_shape: Shape | None = None,
        config: ActionConfig | None = None,
        name: str | None = None,
    ) -> None:
        self._chain = chain or ProcedureChain()
        self._input_shape = input_shape
        self._output_shape = output_shape
        self._config = config or ActionConfig()
        self._name = name

    def _replace(self, **changes: Any) -> ServerActionBuilder:
        state = {
            "chain": self._chain,
            "input_shape": self._input_shape,
            "output_shape": self._output_shape,
            "config": self._config,
            "name": self._name,
        }
        state.update(changes)
        return ServerActionBuilder(**state)

    def input(self, schema: Any) -> ServerActionBuilder:
        """Validate the raw input against ``schema``."""
        return self._replace(input_shape=as_shape(schema))

    def output(self, schema: Any) -> ServerActionBuilder:
        """Validate the handler result against ``schema``."""
        return self._replace(output_shape=as_shape(schema))

    def name(self, name: str) -> ServerActionBuilder:
        """Name used in logs; defaults to the handler's ``__name__``."""
        return self._replace(name=name)

    def handler(self, fn: Callable[..., Any]) -> ServerAction:
        """Compile the action.

        Args:
            fn: ``(input, ctx, meta) -> output``; sync or async.

        Returns:
            The immutable, invocable ServerAction.
        """
        check_callable(fn, HANDLER_ARGS, "handler")
        return ServerAction(
            name=self._name or getattr(fn, "__name__", "action"),
            chain=self._chain,
            input_shape=self._input_shape,
            output_shape=self._output_shape,
            own_config=self._config,
            handler=fn,
        )


class ServerAction:
    """Compiled action: procedure chain, shapes, handler and effective config.

    Created once at definition time and never mutated, so a single instance
    can serve any number of concurrent invocations.
    """

    def __init__(
        self,
        name: str,
        chain: ProcedureChain,
        input_shape: Shape | None,
        output_shape: Shape | None,
        own_config: ActionConfig,
        handler: Callable[..., Any],
    ) -> None:
        self.name = name
        self.chain = chain
        self.input_shape = input_shape
        self.output_shape = output_shape
        self.own_config = own_config
        self.handler = handler
        self.config = chain.resolve(own_config)

    async def __call__(
        self,
        input: Any = None,
        *,
        request: Any = None,
        response_meta: ResponseMeta | None = None,
    ) -> ActionResult:
        """Invoke the action. Never raises; failures land in ``ActionResult.error``."""
        return await invoke(self, input, request=request, response_meta=response_meta)

    def __repr__(self) -> str:
        return f"ServerAction('{self.name}', links={len(self.chain.links)})"


def create_server_action(
    procedure: CompiledProcedure | Procedure | None = None,
) -> ServerActionBuilder:
    """Start an action, optionally on top of a procedure."""
    return ServerActionBuilder(chain_of(procedure))
