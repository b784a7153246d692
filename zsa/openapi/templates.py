"""
Path templates such as ``/posts/{id}/comments/{comment_id}``.

A ``{name}`` segment matches exactly one non-empty path segment and binds
it to the input field ``name``. Trailing slashes are ignored.
"""

import re
from dataclasses import dataclass

from ..exceptions.domain import InvalidPathTemplateError

_PLACEHOLDER = re.compile(r"^\{([A-Za-z_][A-Za-z0-9_]*)\}$")


@dataclass(frozen=True)
class Param:
    name: str


def split_path(path: str) -> list[str]:
    """Split a URL path into segments, ignoring leading and trailing slashes."""
    stripped = path.strip("/")
    if not stripped:
        return []
    return stripped.split("/")


def join_paths(prefix: str, path: str) -> str:
    """Join a router prefix and a route path into one normalized path."""
    segments = split_path(prefix) + split_path(path)
    return "/" + "/".join(segments)


class PathTemplate:
    """Parsed path template.

    Args:
        template: Template string; must start with ``/``.

    Raises:
        InvalidPathTemplateError: If the template is malformed.
    """

    def __init__(self, template: str) -> None:
        if not template.startswith("/"):
            raise InvalidPathTemplateError(template, "must start with '/'")
        if "//" in template:
            raise InvalidPathTemplateError(template, "contains an empty segment")

        segments: list[str | Param] = []
        seen: set[str] = set()
        for segment in split_path(template):
            if "{" not in segment and "}" not in segment:
                segments.append(segment)
                continue
            match = _PLACEHOLDER.match(segment)
            if match is None:
                raise InvalidPathTemplateError(
                    template, f"segment '{segment}' must be a literal or a whole '{{name}}'"
                )
            name = match.group(1)
            if name in seen:
                raise InvalidPathTemplateError(template, f"parameter '{name}' appears twice")
            seen.add(name)
            segments.append(Param(name))

        self.template = "/" + "/".join(
            f"{{{s.name}}}" if isinstance(s, Param) else s for s in segments
        )
        self.segments: tuple[str | Param, ...] = tuple(segments)

    @property
    def params(self) -> list[str]:
        """Names of the placeholders, in path order."""
        return [s.name for s in self.segments if isinstance(s, Param)]

    @property
    def structure(self) -> str:
        """Template with placeholder names erased; equal structures match the same paths."""
        return "/" + "/".join("{}" if isinstance(s, Param) else s for s in self.segments)

    def match(self, path: str) -> dict[str, str] | None:
        """Bind ``path`` against the template.

        Args:
            path: Request path, already URL-decoded.

        Returns:
            Placeholder values by name, or None if the path does not match.
        """
        parts = split_path(path)
        if len(parts) != len(self.segments):
            return None
        params: dict[str, str] = {}
        for part, segment in zip(parts, self.segments, strict=True):
            if isinstance(segment, Param):
                if not part:
                    return None
                params[segment.name] = part
            elif part != segment:
                return None
        return params

    def __str__(self) -> str:
        return self.template

    def __repr__(self) -> str:
        return f"PathTemplate('{self.template}')"
