"""
Domain exceptions for the action invocation pipeline.

ZSAError is the single normalized error shape observed by callbacks and
callers. Every failure raised inside an invocation is passed through
``normalize_error`` before it crosses the engine boundary. Configuration
errors are raised eagerly at definition and registration time and are never
normalized.
"""

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, Self

from pydantic import ValidationError
from pydantic_core import to_jsonable_python


class ErrorCode(str, Enum):
    """Closed set of error codes carried by ZSAError."""

    INPUT_PARSE_ERROR = "INPUT_PARSE_ERROR"
    OUTPUT_PARSE_ERROR = "OUTPUT_PARSE_ERROR"
    ERROR = "ERROR"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    TIMEOUT = "TIMEOUT"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    METHOD_NOT_SUPPORTED = "METHOD_NOT_SUPPORTED"
    UNPROCESSABLE_CONTENT = "UNPROCESSABLE_CONTENT"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    CLIENT_CLOSED_REQUEST = "CLIENT_CLOSED_REQUEST"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"

    @classmethod
    def parse(cls, value: Any) -> Self | None:
        """Return the member named by ``value``, or None if it names none."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


Issue = tuple[tuple[int | str, ...], str]

_UNSET: Any = object()


def _step(obj: Any, part: int | str) -> Any:
    """Return the child of ``obj`` named by ``part``, or _UNSET if there is none."""
    if isinstance(obj, Mapping):
        return obj[part] if part in obj else _UNSET
    if isinstance(obj, Sequence) and not isinstance(obj, (str, bytes)):
        if isinstance(part, int) and -len(obj) <= part < len(obj):
            return obj[part]
        return _UNSET
    if isinstance(part, str) and part in getattr(obj, "__dict__", {}):
        return vars(obj)[part]
    return _UNSET


def _clean_loc(
    loc: tuple[int | str, ...], error_type: str, source: Any
) -> tuple[int | str, ...]:
    """Keep the segments of ``loc`` that address the validated value.

    pydantic inserts union member tags (``int``, model names, ``function-after[...]``)
    into error locations; they name no field of the input and are dropped. The
    last segment of a ``missing`` error is kept although the input lacks it.
    """
    path: list[int | str] = []
    obj = source
    for i, part in enumerate(loc):
        child = _step(obj, part)
        if child is not _UNSET:
            path.append(part)
            obj = child
        elif i == len(loc) - 1 and error_type.startswith("missing"):
            path.append(part)
    return tuple(path)


def _issues_from(exc: ValidationError, source: Any = _UNSET) -> list[Issue]:
    issues: list[Issue] = []
    for err in exc.errors(include_url=False):
        loc = tuple(err["loc"])
        if source is not _UNSET:
            loc = _clean_loc(loc, err["type"], source)
        issues.append((loc, err["msg"]))
    return issues


def _path_key(path: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in path)


class ZSAError(Exception):
    """Tagged error value returned in the error slot of every ActionResult.

    Args:
        code: One of the ErrorCode members (or its string value).
        data: Arbitrary payload. Exceptions become the ``__cause__`` and lend
            their message; plain strings double as the message when none is given;
            a pydantic ValidationError also fills ``field_errors``/``form_errors``.
        message: Human readable message. Derived from ``data`` when omitted.

    Example:
        raise ZSAError("NOT_AUTHORIZED", "Sign in first")
    """

    def __init__(
        self,
        code: ErrorCode | str = ErrorCode.ERROR,
        data: Any = None,
        message: str | None = None,
    ) -> None:
        parsed = ErrorCode.parse(code)
        if parsed is None:
            raise ValueError(f"Unknown error code: {code!r}")
        self.code = parsed
        self.data = data
        self.issues: list[Issue] = []
        self.field_errors: dict[str, list[str]] | None = None
        self.form_errors: list[str] | None = None

        if isinstance(data, ValidationError):
            self._add_issues(_issues_from(data))

        if message is None:
            if isinstance(data, ValidationError):
                message = self._summarize_issues()
            elif isinstance(data, BaseException):
                message = str(data) or type(data).__name__
            elif isinstance(data, str):
                message = data
            else:
                message = self.code.value

        if isinstance(data, BaseException):
            self.__cause__ = data

        self.message = message
        super().__init__(message)

    @classmethod
    def from_validation_errors(
        cls, code: ErrorCode | str, errors: Sequence[ValidationError], source: Any = _UNSET
    ) -> Self:
        """Combine several validator failures into one error.

        Args:
            code: INPUT_PARSE_ERROR or OUTPUT_PARSE_ERROR.
            errors: Failures in the order the shapes were checked.
            source: The value that was validated. When given, error paths keep
                only the segments that address it.

        Returns:
            A ZSAError whose field/form buckets hold the issues of every failure.
        """
        err = cls(code, errors[0] if len(errors) == 1 else list(errors), message="")
        err.issues, err.field_errors, err.form_errors = [], None, None
        for exc in errors:
            err._add_issues(_issues_from(exc, source))
        err.message = err._summarize_issues()
        err.args = (err.message,)
        return err

    @classmethod
    def from_dict(
        cls, body: Mapping[str, Any], default_code: ErrorCode | str = ErrorCode.ERROR
    ) -> Self:
        """Rebuild an error from the body produced by ``to_dict``.

        Args:
            body: Decoded error body.
            default_code: Code used when the body carries no recognizable code.

        Returns:
            The reconstructed ZSAError.
        """
        code = ErrorCode.parse(body.get("code")) or default_code
        err = cls(code, body.get("data"), message=body.get("message"))
        if body.get("fieldErrors") is not None:
            err.field_errors = {k: list(v) for k, v in body["fieldErrors"].items()}
        if body.get("formErrors") is not None:
            err.form_errors = list(body["formErrors"])
        return err

    def _add_issues(self, issues: list[Issue]) -> None:
        if self.field_errors is None:
            self.field_errors = {}
        if self.form_errors is None:
            self.form_errors = []
        for path, msg in issues:
            self.issues.append((path, msg))
            if path:
                self.field_errors.setdefault(_path_key(path), []).append(msg)
            else:
                self.form_errors.append(msg)

    def _summarize_issues(self) -> str:
        parts = [f"{_path_key(path)}: {msg}" if path else msg for path, msg in self.issues]
        return "; ".join(parts) or self.code.value

    def flatten(self) -> dict[str, Any]:
        """Return field and form errors as one mapping."""
        return {
            "formErrors": list(self.form_errors or []),
            "fieldErrors": {k: list(v) for k, v in (self.field_errors or {}).items()},
        }

    def format(self) -> dict[str, Any]:
        """Return messages nested by path, each level holding an ``_errors`` list."""
        root: dict[str, Any] = {"_errors": []}
        for path, msg in self.issues:
            node = root
            for part in path:
                node = node.setdefault(str(part), {"_errors": []})
            node["_errors"].append(msg)
        return root

    def to_dict(self, include_data: bool = True) -> dict[str, Any]:
        """Serialize to a JSON-safe mapping.

        Args:
            include_data: Whether to include the ``data`` payload.

        Returns:
            Mapping with ``code`` and ``message`` plus optional ``data``,
            ``fieldErrors`` and ``formErrors``.
        """
        body: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if include_data and self.data is not None and not self.issues:
            body["data"] = to_jsonable_python(self.data, fallback=str)
        if self.field_errors is not None:
            body["fieldErrors"] = self.field_errors
        if self.form_errors is not None:
            body["formErrors"] = self.form_errors
        return body

    def __repr__(self) -> str:
        return f"ZSAError(code={self.code.value!r}, message={self.message!r})"


def normalize_error(value: Any) -> ZSAError:
    """Turn any thrown value into a ZSAError.

    Already-tagged errors pass through. Strings and exceptions are wrapped
    with code ERROR, unless the exception carries a ``code`` attribute naming
    an ErrorCode, in which case that code is kept. Anything else becomes the
    ``data`` of an ERROR.

    Args:
        value: The raised exception or other failure value.

    Returns:
        The normalized error.
    """
    if isinstance(value, ZSAError):
        return value
    if isinstance(value, str):
        return ZSAError(ErrorCode.ERROR, value)
    if isinstance(value, BaseException):
        carried = ErrorCode.parse(getattr(value, "code", None))
        return ZSAError(carried or ErrorCode.ERROR, value)
    return ZSAError(ErrorCode.ERROR, value)


class ZSAConfigurationError(Exception):
    """Raised when an action, procedure or router is defined incorrectly."""

    pass


class RouteConfigError(ZSAConfigurationError):
    """Raised when a route cannot be registered."""

    pass


class DuplicateRouteError(RouteConfigError):
    """Raised when a (method, path template) pair is registered twice."""

    def __init__(self, method: str, path: str) -> None:
        super().__init__(f"Route {method} {path} is already registered")


class InvalidPathTemplateError(RouteConfigError):
    """Raised when a path template cannot be parsed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Invalid path template '{path}': {reason}")
