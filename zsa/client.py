"""
HTTP client for actions exposed through an OpenApiRouter.

Calls return the same ActionResult contract as in-process invocation, with
error bodies rebuilt into ZSAError.

Example:
    async with ZSAClient("http://localhost:8000") as client:
        post, err = await client.get("/api/posts/42")
        if err:
            print(err.code, err.message)
"""

from typing import Any

import httpx
from fastapi.encoders import jsonable_encoder

from .exceptions.domain import ErrorCode, ZSAError
from .exceptions.http import get_error_code
from .types import ActionResult
from .utils.logger import logger


class ZSAClient:
    """Async client returning ActionResult for every call.

    Args:
        base_url: Base URL of the service (e.g., "http://localhost:8000").
        transport: Optional httpx transport, e.g. ``httpx.ASGITransport(app=app)``.
        headers: Headers sent with every request.
        timeout: Request timeout in seconds.
        log_requests: Enable request/response logging (default: False).
    """

    def __init__(
        self,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        log_requests: bool = False,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.log_requests = log_requests
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            transport=transport,
            headers=headers,
            timeout=timeout,
        )

    async def __aenter__(self) -> "ZSAClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def call(self, method: str, path: str, input: Any = None) -> ActionResult:
        """Invoke the action routed at ``method`` and ``path``.

        Args:
            method: HTTP method.
            path: Request path with path parameters already filled in.
            input: Remaining input; sent as query parameters for GET and as a
                JSON body otherwise.

        Returns:
            ``ActionResult(data, None)`` or ``ActionResult(None, err)``.
        """
        method = method.upper()
        kwargs: dict[str, Any] = {}
        if input is not None:
            payload = jsonable_encoder(input)
            if method == "GET":
                kwargs["params"] = payload
            else:
                kwargs["json"] = payload

        if self.log_requests:
            logger.debug(f"Action request: {method} {path}")

        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"HTTP error during {method} {path}: {e}")
            return ActionResult(None, ZSAError(ErrorCode.ERROR, e, message=f"HTTP error: {e!s}"))

        if self.log_requests:
            logger.debug(f"Action response: {response.status_code}")

        if response.status_code >= 400:
            return ActionResult(None, self._error_from(response))
        return ActionResult(self._decode(response), None)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _error_from(self, response: httpx.Response) -> ZSAError:
        default_code = get_error_code(response.status_code)
        body = self._decode(response)
        if isinstance(body, dict):
            return ZSAError.from_dict(body, default_code=default_code)
        message = body if isinstance(body, str) and body else f"HTTP {response.status_code}"
        return ZSAError(default_code, body, message=message)

    async def get(self, path: str, input: Any = None) -> ActionResult:
        return await self.call("GET", path, input)

    async def post(self, path: str, input: Any = None) -> ActionResult:
        return await self.call("POST", path, input)

    async def put(self, path: str, input: Any = None) -> ActionResult:
        return await self.call("PUT", path, input)

    async def patch(self, path: str, input: Any = None) -> ActionResult:
        return await self.call("PATCH", path, input)

    async def delete(self, path: str, input: Any = None) -> ActionResult:
        return await self.call("DELETE", path, input)
