"""
Keyword injection for user-supplied callables.

Handlers, procedure steps and callbacks declare the names they want
(``input``, ``ctx``, ``meta``, ``err``...) and receive only those. Sync and
async callables are both accepted; sync ones run in a worker thread so a
blocking call never stalls the event loop or a pending timeout.
"""

import asyncio
import inspect
from collections.abc import Callable, Iterable
from typing import Any

from ..exceptions.domain import ZSAConfigurationError

_NAMED_KINDS = (inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY)


def _signature(fn: Callable[..., Any]) -> inspect.Signature | None:
    try:
        return inspect.signature(fn)
    except (TypeError, ValueError):
        return None


def check_callable(fn: Any, available: Iterable[str], role: str) -> None:
    """Reject a callable that requires arguments it will never receive.

    Args:
        fn: The callable being registered.
        available: Names that will be supplied at call time.
        role: Used in the error message, e.g. "handler".

    Raises:
        ZSAConfigurationError: If ``fn`` is not callable or needs other arguments.
    """
    if not callable(fn):
        raise ZSAConfigurationError(f"{role} must be callable, got {type(fn).__name__}")
    sig = _signature(fn)
    if sig is None:
        return
    names = set(available)
    for param in sig.parameters.values():
        if param.default is not inspect.Parameter.empty:
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        if param.kind is inspect.Parameter.POSITIONAL_ONLY or param.name not in names:
            raise ZSAConfigurationError(
                f"{role} {getattr(fn, '__name__', fn)!r} requires argument '{param.name}'; "
                f"available arguments are: {', '.join(sorted(names))}"
            )


def select_kwargs(fn: Callable[..., Any], available: dict[str, Any]) -> dict[str, Any]:
    """Pick the entries of ``available`` that ``fn`` accepts by name."""
    sig = _signature(fn)
    if sig is None:
        return dict(available)
    params = sig.parameters.values()
    if any(p.kind is inspect.Parameter.VAR_KEYWORD for p in params):
        return dict(available)
    names = {p.name for p in params if p.kind in _NAMED_KINDS}
    return {key: value for key, value in available.items() if key in names}


def _is_async(fn: Any) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


async def call_with_kwargs(fn: Callable[..., Any], /, **available: Any) -> Any:
    """Call ``fn`` with the keyword arguments it declares.

    Coroutine functions are awaited on the loop; anything else runs through
    ``asyncio.to_thread`` and its result is awaited if it is awaitable.
    """
    kwargs = select_kwargs(fn, available)
    if _is_async(fn):
        return await fn(**kwargs)
    result = await asyncio.to_thread(fn, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
