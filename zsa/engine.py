"""
Invocation engine.

Runs one action against one raw input:

    on_start -> input transform + validation -> [context chain -> handler]
    under retry and timeout -> output transform + validation
    -> on_success | on_error -> on_complete

and always returns an ActionResult. Every failure is normalized into a
ZSAError before callbacks or the caller see it. Input parse failures and
timeouts are never retried. A timed-out attempt is cancelled on a best-effort
basis; the caller is told TIMEOUT as soon as the deadline passes whether or
not the attempt honours the cancellation.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from .exceptions.domain import ErrorCode, ZSAError, normalize_error
from .types import ActionResult, CompleteEvent, HandlerMeta, ResponseMeta
from .utils.callables import call_with_kwargs
from .utils.logger import logger

if TYPE_CHECKING:
    from .action import ServerAction
    from .procedure import ProcedureLink


def _consume_outcome(task: asyncio.Future[Any]) -> None:
    # Retrieve the result of an abandoned attempt so it is not reported as unhandled
    if not task.cancelled():
        task.exception()


class ActionInvocation:
    """State of a single invocation. Created per call and discarded afterwards.

    Args:
        action: The compiled action to run.
        raw_input: Input exactly as the caller supplied it.
        request: Optional transport request, exposed to handlers as ``meta.request``.
        response_meta: Side channel the handler may mutate; a fresh one by default.
    """

    def __init__(
        self,
        action: ServerAction,
        raw_input: Any,
        request: Any = None,
        response_meta: ResponseMeta | None = None,
    ) -> None:
        self.action = action
        self.config = action.config
        self.raw_input = raw_input
        self.request = request
        self.response_meta = response_meta if response_meta is not None else ResponseMeta()
        self._initial_meta = self.response_meta.model_copy(deep=True)
        self.attempts = 0
        self.ctx: Any = None
        self.link_inputs: list[Any] = []
        self.handler_input: Any = raw_input

    @property
    def name(self) -> str:
        return self.action.name

    async def run(self) -> ActionResult:
        """Execute the full lifecycle and return the result."""
        callbacks = self.config.callbacks

        try:
            for callback in callbacks.on_start:
                await call_with_kwargs(callback, args=self.raw_input)
        except Exception as e:
            return await self._fail(normalize_error(e))

        try:
            self._parse_input(await self._transform_input())
        except ZSAError as err:
            logger.debug(f"Action '{self.name}' rejected its input: {err.message}")
            await self._notify(
                callbacks.on_input_parse_error, "on_input_parse_error", err=err, args=self.raw_input
            )
            await self._complete(
                CompleteEvent(status="error", is_success=False, is_error=True, err=err)
            )
            return ActionResult(None, err)

        try:
            data = await self._execute()
            data = await self._parse_output(data)
        except ZSAError as err:
            return await self._fail(err)

        await self._notify(
            callbacks.on_success, "on_success", data=data, input=self.handler_input, ctx=self.ctx
        )
        await self._complete(
            CompleteEvent(
                status="success",
                is_success=True,
                is_error=False,
                args=self.handler_input,
                data=data,
            )
        )
        return ActionResult(data, None)

    # ─── Input ───────────────────────────────────────────────────────────────

    async def _transform_input(self) -> Any:
        transform = self.config.input_transform
        if transform is None:
            return self.raw_input
        try:
            return await call_with_kwargs(transform, input=self.raw_input)
        except Exception as e:
            raise ZSAError(ErrorCode.INPUT_PARSE_ERROR, e) from e

    def _parse_input(self, raw: Any) -> None:
        """Validate every declared input shape and work out what each step receives.

        Procedure shapes are checked in chain order, then the action's own
        shape. All failures are reported together.
        """
        failures: list[ValidationError] = []
        current: Any = raw
        link_inputs: list[Any] = []

        for link in self.action.chain.links:
            current = self._validate(link.input_shape, raw, current, failures)
            link_inputs.append(current)

        handler_input = self._validate(self.action.input_shape, raw, current, failures)

        if failures:
            raise ZSAError.from_validation_errors(
                ErrorCode.INPUT_PARSE_ERROR, failures, source=raw
            )

        self.link_inputs = link_inputs
        self.handler_input = handler_input

    @staticmethod
    def _validate(shape: Any, raw: Any, fallback: Any, failures: list[ValidationError]) -> Any:
        if shape is None:
            return fallback
        try:
            return shape.validate(raw)
        except ValidationError as e:
            failures.append(e)
            return fallback

    # ─── Execution ───────────────────────────────────────────────────────────

    async def _execute(self) -> Any:
        """Run context chain plus handler under the retry policy and timeout."""
        timeout_ms = self.config.timeout_ms
        if timeout_ms is None:
            return await self._attempt_loop()

        task = asyncio.ensure_future(self._attempt_loop())
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(_consume_outcome)
        logger.warning(
            f"Action '{self.name}' timed out after {timeout_ms:g} ms "
            f"(attempt {self.attempts})"
        )
        raise ZSAError(ErrorCode.TIMEOUT, message=f"Timed out after {timeout_ms:g} ms")

    async def _attempt_loop(self) -> Any:
        retry = self.config.retry
        max_attempts = retry.max_attempts if retry is not None else 1
        attempt = 1

        while True:
            self.attempts = attempt
            try:
                return await self._run_once(attempt)
            except Exception as e:
                err = normalize_error(e)
                if retry is None or attempt >= max_attempts:
                    if max_attempts > 1:
                        logger.debug(
                            f"Action '{self.name}' gave up after {attempt} attempts: {err.message}"
                        )
                    if err is e:
                        raise
                    raise err from e

                try:
                    delay_ms = retry.resolve_delay(attempt, err)
                except Exception as delay_error:
                    raise normalize_error(delay_error) from delay_error

                logger.debug(
                    f"Action '{self.name}' attempt {attempt}/{max_attempts} failed "
                    f"({err.code.value}: {err.message}), retrying in {delay_ms:g} ms"
                )
                if delay_ms:
                    await asyncio.sleep(delay_ms / 1000)
                attempt += 1

    async def _run_once(self, attempt: int) -> Any:
        # Status and headers set by a failed attempt must not leak into a later one
        if attempt > 1:
            self.response_meta.restore(self._initial_meta)
        meta = HandlerMeta(request=self.request, response_meta=self.response_meta, attempt=attempt)
        ctx: Any = None
        links: Sequence[ProcedureLink] = self.action.chain.links

        for link, link_input in zip(links, self.link_inputs, strict=True):
            if link.handler is not None:
                ctx = await call_with_kwargs(link.handler, input=link_input, ctx=ctx, meta=meta)

        data = await call_with_kwargs(
            self.action.handler, input=self.handler_input, ctx=ctx, meta=meta
        )
        self.ctx = ctx
        return data

    # ─── Output ──────────────────────────────────────────────────────────────

    async def _parse_output(self, data: Any) -> Any:
        transform = self.config.output_transform
        if transform is not None:
            try:
                data = await call_with_kwargs(transform, data=data)
            except Exception as e:
                raise ZSAError(ErrorCode.OUTPUT_PARSE_ERROR, e) from e

        shape = self.action.output_shape
        if shape is None:
            return data
        try:
            return shape.validate(data)
        except ValidationError as e:
            logger.error(f"Action '{self.name}' returned data not matching its output shape: {e}")
            raise ZSAError.from_validation_errors(
                ErrorCode.OUTPUT_PARSE_ERROR, [e], source=data
            ) from e

    # ─── Callbacks ───────────────────────────────────────────────────────────

    async def _fail(self, err: ZSAError) -> ActionResult:
        await self._notify(self.config.callbacks.on_error, "on_error", err=err)
        await self._complete(
            CompleteEvent(status="error", is_success=False, is_error=True, err=err)
        )
        return ActionResult(None, err)

    async def _complete(self, event: CompleteEvent) -> None:
        await self._notify(self.config.callbacks.on_complete, "on_complete", event=event)

    async def _notify(
        self, callbacks: Sequence[Callable[..., Any]], kind: str, **kwargs: Any
    ) -> None:
        """Run callbacks in order; a failing callback is logged and does not alter the result."""
        for callback in callbacks:
            try:
                await call_with_kwargs(callback, **kwargs)
            except Exception as e:
                logger.error(
                    f"Action '{self.name}' {kind} callback "
                    f"'{getattr(callback, '__name__', callback)}' failed: {e}"
                )


async def invoke(
    action: ServerAction,
    raw_input: Any = None,
    *,
    request: Any = None,
    response_meta: ResponseMeta | None = None,
) -> ActionResult:
    """Invoke ``action`` with ``raw_input``.

    Args:
        action: The compiled action.
        raw_input: Caller-supplied input, validated against the declared shapes.
        request: Optional transport request, exposed to handlers as ``meta.request``.
        response_meta: Optional side channel for status code and headers.

    Returns:
        ``ActionResult(data, None)`` on success or ``ActionResult(None, err)`` on failure.
    """
    return await ActionInvocation(action, raw_input, request, response_meta).run()
