"""URI-addressed resources and template matching."""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote

from mcp.types import Resource, ResourceTemplate

from code_assistant_mcp.errors import MCPError, ResourceNotFoundError

logger = logging.getLogger(__name__)

ResourceResolver = Callable[..., Awaitable[str]]

_PLACEHOLDER = re.compile(r"\{(\+?)([A-Za-z_][A-Za-z0-9_]*)\}")


def compile_template(uri: str) -> re.Pattern[str] | None:
    """Turn a URI template into a matching regex.

    ``{name}`` binds a single path segment and ``{+name}`` binds the remainder of
    the URI, slashes included. Returns ``None`` for plain URIs.
    """
    if not _PLACEHOLDER.search(uri):
        return None
    pattern = []
    position = 0
    for match in _PLACEHOLDER.finditer(uri):
        pattern.append(re.escape(uri[position : match.start()]))
        reserved, name = match.groups()
        pattern.append(f"(?P<{name}>.+)" if reserved else f"(?P<{name}>[^/]+)")
        position = match.end()
    pattern.append(re.escape(uri[position:]))
    return re.compile("".join(pattern))


@dataclass(frozen=True)
class ResourceContents:
    """Text returned for a ``resources/read`` request."""

    uri: str
    text: str
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"uri": self.uri, "text": self.text}
        if self.mime_type:
            payload["mimeType"] = self.mime_type
        return payload


@dataclass
class ResourceDefinition:
    """A readable resource addressed by a URI or URI template.

    Attributes:
        uri: Exact URI, or a template with ``{param}`` / ``{+param}`` placeholders.
        name: Unique programmatic name.
        description: Human-readable description.
        resolver: Coroutine ``(uri, **params) -> str`` producing the content.
        title: Short display name.
        mime_type: Content type reported to clients.
    """

    uri: str
    name: str
    description: str
    resolver: ResourceResolver
    title: str | None = None
    mime_type: str | None = "text/plain"
    pattern: re.Pattern[str] | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.pattern = compile_template(self.uri)

    @property
    def is_template(self) -> bool:
        return self.pattern is not None

    def match(self, uri: str) -> dict[str, str] | None:
        """Bound parameters if ``uri`` is addressed by this resource, else ``None``."""
        if self.pattern is None:
            return {} if uri == self.uri else None
        found = self.pattern.fullmatch(uri)
        if found is None:
            return None
        return {key: unquote(value) for key, value in found.groupdict().items()}


class ResourceRegistry:
    """Registry of static resources and resource templates."""

    def __init__(self) -> None:
        self._resources: dict[str, ResourceDefinition] = {}

    def register(self, resource: ResourceDefinition) -> None:
        """Register a resource.

        Raises:
            ValueError: If the URI is empty or already registered.

        """
        if not resource.uri:
            raise ValueError("Resource URI must not be empty")
        if resource.uri in self._resources:
            raise ValueError(f"Resource '{resource.uri}' is already registered")
        self._resources[resource.uri] = resource
        logger.debug("Registered resource %s", resource.uri)

    def register_resources(self, *resources: ResourceDefinition) -> None:
        for resource in resources:
            self.register(resource)

    def static_resources(self) -> list[ResourceDefinition]:
        return [r for r in self._resources.values() if not r.is_template]

    def list_resources(self) -> list[Resource]:
        return [
            Resource(
                uri=resource.uri,  # type: ignore[arg-type]
                name=resource.name,
                title=resource.title,
                description=resource.description,
                mimeType=resource.mime_type,
            )
            for resource in self.static_resources()
        ]

    def list_templates(self) -> list[ResourceTemplate]:
        return [
            ResourceTemplate(
                uriTemplate=resource.uri,
                name=resource.name,
                title=resource.title,
                description=resource.description,
                mimeType=resource.mime_type,
            )
            for resource in self._resources.values()
            if resource.is_template
        ]

    def lookup(self, uri: str) -> tuple[ResourceDefinition, dict[str, str]]:
        """Find the resource addressing ``uri``; exact URIs beat templates."""
        exact = self._resources.get(uri)
        if exact is not None and not exact.is_template:
            return exact, {}
        for resource in self._resources.values():
            if not resource.is_template:
                continue
            params = resource.match(uri)
            if params is not None:
                return resource, params
        raise ResourceNotFoundError(uri)

    async def read(self, uri: str) -> ResourceContents:
        """Resolve ``uri`` to its contents.

        Raises:
            ResourceNotFoundError: If nothing is registered for ``uri``.
            MCPError: If the resolver fails; unexpected exceptions are wrapped.

        """
        resource, params = self.lookup(uri)
        try:
            text = await resource.resolver(uri, **params)
        except MCPError:
            raise
        except Exception as exc:
            logger.exception("Resource %s failed", uri)
            raise MCPError(
                "ResourceError", f"Failed to read resource {uri}: {exc}", uri
            ) from exc
        return ResourceContents(uri=uri, text=text, mime_type=resource.mime_type)
