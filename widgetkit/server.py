"""MCP server host for widgets.

``WidgetServer`` wraps a ``FastMCP`` instance and takes over its low-level
tools/resources request handlers, so that every dispatch goes through the
mutable registration records below. Hot updates replace ``config`` and
``handler`` on those records in place; the transport never needs rebinding.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import mcp.types as types
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger

from widgetkit import notifications
from widgetkit.exceptions import ResourceNotFound, ToolNotFound
from widgetkit.models import BaseWidget, StoredWidget, WidgetToolConfig
from widgetkit.notifications import SessionNotifier
from widgetkit.protocol import build_linked_tool_metadata
from widgetkit.registration import register_widget
from widgetkit.settings import WidgetServerSettings

logger = get_logger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]
ResourceHandler = Callable[[str], Awaitable[types.ReadResourceResult]]


@dataclass
class Registration:
    config: Any
    handler: Callable[..., Awaitable[Any]]


@dataclass
class ToolRegistration(Registration):
    widget: WidgetToolConfig | None = None
    # _meta as the author registered it, before any widget linking
    base_meta: dict[str, Any] | None = None


@dataclass
class Registrations:
    tools: dict[str, ToolRegistration] = field(default_factory=dict)
    resources: dict[str, Registration] = field(default_factory=dict)
    resource_templates: dict[str, Registration] = field(default_factory=dict)


def uri_template_pattern(uri_template: str) -> re.Pattern[str]:
    """Regex for an RFC 6570 level-1 template; each ``{var}`` spans one segment."""
    parts = re.split(r"(\{[^}]+\})", uri_template)
    regex = "".join(
        "[^/]+" if part.startswith("{") and part.endswith("}") else re.escape(part)
        for part in parts
    )
    return re.compile(f"^{regex}$")


def _error_result(message: str) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=message)],
        isError=True,
    )


def _to_call_tool_result(result: Any) -> types.CallToolResult:
    if isinstance(result, types.CallToolResult):
        return result
    if isinstance(result, Mapping):
        return types.CallToolResult.model_validate(dict(result))
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=str(result))]
    )


class WidgetServer:
    def __init__(
        self,
        name: str | None = None,
        *,
        settings: WidgetServerSettings | None = None,
        instructions: str | None = None,
    ):
        self.settings = settings or WidgetServerSettings()
        self.mcp = FastMCP(
            name=name or self.settings.name,
            instructions=instructions,
            host=self.settings.host,
            port=self.settings.port,
            stateless_http=self.settings.stateless_http,
        )
        self.registrations = Registrations()
        # Latest definition per widget name; written by the registrar only.
        self.widget_definitions: dict[str, StoredWidget] = {}
        self.sessions: dict[str, SessionNotifier] = {}
        self.pending_notifications: set[asyncio.Task] = set()
        self._install_handlers()

    @property
    def build_id(self) -> str | None:
        return self.settings.build_id

    @property
    def server_origin(self) -> str | None:
        return self.settings.server_origin

    # -- registration -------------------------------------------------------

    def resource(self, config: types.Resource, handler: ResourceHandler) -> Registration:
        registration = Registration(config=config, handler=handler)
        self.registrations.resources[config.name] = registration
        return registration

    def resource_template(
        self,
        config: types.ResourceTemplate,
        handler: ResourceHandler,
        *,
        key: str | None = None,
    ) -> Registration:
        registration = Registration(config=config, handler=handler)
        self.registrations.resource_templates[key or config.name] = registration
        return registration

    def tool(
        self,
        config: types.Tool,
        handler: ToolHandler,
        *,
        widget: WidgetToolConfig | None = None,
    ) -> ToolRegistration:
        """Register a tool, optionally rendering a widget referenced by name.

        If the widget is not registered yet its protocol metadata is filled in
        when it is.
        """
        base_meta = dict(config.meta or {})
        if widget is not None:
            meta = dict(base_meta)
            stored = self.widget_definitions.get(widget.name)
            resource = self.registrations.resources.get(widget.name)
            if stored is not None and resource is not None:
                meta = build_linked_tool_metadata(
                    stored.definition, str(resource.config.uri), widget, meta
                )
            else:
                meta.update(widget.tool_meta())
            config = config.model_copy(update={"meta": meta or None})

        registration = self.registrations.tools.get(config.name)
        if registration is not None:
            registration.config = config
            registration.handler = handler
            registration.widget = widget
            registration.base_meta = base_meta
            return registration

        registration = ToolRegistration(
            config=config, handler=handler, widget=widget, base_meta=base_meta
        )
        self.registrations.tools[config.name] = registration
        return registration

    async def ui_resource(self, definition: BaseWidget | Mapping[str, Any]) -> BaseWidget:
        """Register (or hot-update) a widget as resource, template and tool."""
        return await register_widget(self, definition)

    def latest_definition(self, name: str) -> BaseWidget:
        return self.widget_definitions[name].definition

    # -- notifications ------------------------------------------------------

    async def notify_tool_list_changed(self) -> None:
        await notifications.notify_tool_list_changed(self.sessions)

    async def notify_resource_list_changed(self) -> None:
        await notifications.notify_resource_list_changed(self.sessions)

    def schedule_tool_list_changed(self) -> asyncio.Task:
        return notifications.schedule_tool_list_changed(
            self.sessions, self.settings.tool_notify_delay, self.pending_notifications
        )

    # -- dispatch -----------------------------------------------------------

    async def call_tool(
        self, name: str, arguments: Mapping[str, Any] | None = None
    ) -> types.CallToolResult:
        try:
            registration = self.registrations.tools.get(name)
            if registration is None:
                raise ToolNotFound(name)
            result = await registration.handler(dict(arguments or {}))
        except ToolNotFound as exc:
            return _error_result(str(exc))
        except Exception as exc:
            logger.exception("Error executing tool %s", name)
            return _error_result(f"Error executing tool {name}: {exc}")
        return _to_call_tool_result(result)

    async def read_resource(self, uri: str) -> types.ReadResourceResult:
        for registration in self.registrations.resources.values():
            if str(registration.config.uri) == uri:
                return await registration.handler(uri)

        # Most specific template first.
        templates = sorted(
            self.registrations.resource_templates.values(),
            key=lambda registration: len(registration.config.uriTemplate),
            reverse=True,
        )
        for registration in templates:
            if uri_template_pattern(registration.config.uriTemplate).match(uri):
                return await registration.handler(uri)

        raise ResourceNotFound(uri)

    def streamable_http_app(self):
        return self.mcp.streamable_http_app()

    def _install_handlers(self) -> None:
        handlers = self.mcp._mcp_server.request_handlers
        handlers[types.ListToolsRequest] = self._handle_list_tools
        handlers[types.CallToolRequest] = self._handle_call_tool
        handlers[types.ListResourcesRequest] = self._handle_list_resources
        handlers[types.ListResourceTemplatesRequest] = self._handle_list_resource_templates
        handlers[types.ReadResourceRequest] = self._handle_read_resource

    def _track_session(self) -> None:
        # Stateless transports open a fresh session per request.
        if self.settings.stateless_http:
            return
        try:
            context = self.mcp._mcp_server.request_context
        except LookupError:
            return
        headers = getattr(context.request, "headers", None)
        session_id = headers.get("mcp-session-id") if headers is not None else None
        self.sessions.setdefault(session_id or f"session-{id(context.session):x}", context.session)

    async def _handle_list_tools(self, req: types.ListToolsRequest) -> types.ServerResult:
        self._track_session()
        return types.ServerResult(
            types.ListToolsResult(
                tools=[registration.config for registration in self.registrations.tools.values()]
            )
        )

    async def _handle_call_tool(self, req: types.CallToolRequest) -> types.ServerResult:
        self._track_session()
        return types.ServerResult(
            await self.call_tool(req.params.name, req.params.arguments)
        )

    async def _handle_list_resources(
        self, req: types.ListResourcesRequest
    ) -> types.ServerResult:
        self._track_session()
        return types.ServerResult(
            types.ListResourcesResult(
                resources=[
                    registration.config
                    for registration in self.registrations.resources.values()
                ]
            )
        )

    async def _handle_list_resource_templates(
        self, req: types.ListResourceTemplatesRequest
    ) -> types.ServerResult:
        self._track_session()
        return types.ServerResult(
            types.ListResourceTemplatesResult(
                resourceTemplates=[
                    registration.config
                    for registration in self.registrations.resource_templates.values()
                ]
            )
        )

    async def _handle_read_resource(
        self, req: types.ReadResourceRequest
    ) -> types.ServerResult:
        self._track_session()
        return types.ServerResult(await self.read_resource(str(req.params.uri)))
