"""Widget registration and hot-update reconciliation.

One widget definition becomes up to three registrations on the server:

* a resource at a minted ``ui://widget/...`` URI,
* for Apps SDK / MCP Apps widgets, a resource template ``{name}-dynamic``
  matching every URI later minted for the widget,
* a tool, unless the widget opts out with ``exposeAsTool=False``.

Registering the same name again updates those records in place. Handlers only
capture the widget name and read ``server.widget_definitions`` when invoked, so
references taken before a hot update still serve the latest definition.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import mcp.types as types
from mcp.server.fastmcp.utilities.logging import get_logger

from widgetkit.enrich import enrich_definition
from widgetkit.models import (
    PROPS_SCHEMA_META_KEY,
    WIDGET_META_KEY,
    BaseWidget,
    ExternalUrlWidget,
    McpAppsWidget,
    StoredWidget,
    WidgetType,
    parse_widget_definition,
)
from widgetkit.output import build_tool_result
from widgetkit.protocol import (
    build_linked_tool_metadata,
    build_resource_ui_meta,
    build_widget_tool_metadata,
)
from widgetkit.resources import create_widget_ui_resource
from widgetkit.schema import SchemaSource, apply_default_props, resolve_schema_source
from widgetkit.uris import generate_unique_widget_uri, resolve_widget_uri

if TYPE_CHECKING:
    from widgetkit.server import WidgetServer

logger = get_logger(__name__)


def resolve_expose_as_tool(definition: BaseWidget) -> bool:
    """Explicit ``exposeAsTool`` first, then the file-based ``_meta`` block, else True."""
    if definition.expose_as_tool is not None:
        return definition.expose_as_tool
    legacy = definition.widget_meta.get("exposeAsTool")
    if isinstance(legacy, bool):
        return legacy
    if legacy is not None:
        logger.warning(
            "Ignoring exposeAsTool=%r of widget %s: expected a boolean",
            legacy,
            definition.name,
        )
    return True


def props_source(definition: BaseWidget) -> Any:
    # inputs/schema are deprecated spellings from older file-based widgets
    widget_meta = definition.widget_meta
    return (
        definition.props
        or widget_meta.get("props")
        or widget_meta.get("inputs")
        or widget_meta.get("schema")
    )


def _resource_meta(definition: BaseWidget, schema_source: SchemaSource) -> dict[str, Any]:
    meta = {
        key: value
        for key, value in (definition.meta or {}).items()
        if key not in (WIDGET_META_KEY, "ui")
    }
    if schema_source.kind != "none":
        meta.setdefault(PROPS_SCHEMA_META_KEY, schema_source.input_schema())
    if isinstance(definition, McpAppsWidget):
        ui = build_resource_ui_meta(definition)
        if ui:
            meta["ui"] = ui
    return meta


def _annotations(values: Mapping[str, Any] | None, model: type) -> Any:
    return model(**values) if values else None


def _make_resource_reader(server: WidgetServer, name: str):
    async def read(uri: str) -> types.ReadResourceResult:
        latest = server.latest_definition(name)
        params = (
            apply_default_props(latest.props)
            if isinstance(latest, ExternalUrlWidget)
            else {}
        )
        embedded = await create_widget_ui_resource(latest, params, server.settings, uri=uri)
        return types.ReadResourceResult(contents=[embedded.resource])

    return read


def _make_tool_handler(server: WidgetServer, name: str):
    async def call(arguments: dict[str, Any]) -> types.CallToolResult:
        stored = server.widget_definitions[name]
        params = stored.schema_source.coerce(arguments)
        resource = server.registrations.resources.get(name)
        uri = str(resource.config.uri) if resource is not None else None
        return await build_tool_result(stored.definition, params, server.settings, uri=uri)

    return call


def _link_waiting_tools(server: WidgetServer, definition: BaseWidget, uri: str) -> None:
    # Tools may be registered before the widget they render is discovered.
    for registration in server.registrations.tools.values():
        widget = registration.widget
        if widget is None or widget.name != definition.name:
            continue
        # Rebuilt from the tool's own meta so keys dropped by an update go away.
        meta = build_linked_tool_metadata(definition, uri, widget, registration.base_meta)
        registration.config = registration.config.model_copy(update={"meta": meta})



async def register_widget(
    server: WidgetServer, definition: BaseWidget | Mapping[str, Any]
) -> BaseWidget:
    """Register ``definition`` on ``server``, or update it in place if known.

    Raises InvalidWidgetType for an unrecognized ``type`` tag.
    """
    definition = parse_widget_definition(definition)
    enriched = enrich_definition(definition, server.server_origin)
    name = enriched.name
    resolved = resolve_widget_uri(enriched.type, name, server.build_id)
    is_update = name in server.widget_definitions

    schema_source = resolve_schema_source(props_source(enriched))
    server.widget_definitions[name] = StoredWidget(
        widget_type=WidgetType(enriched.type),
        metadata=enriched.metadata if isinstance(enriched, McpAppsWidget) else None,
        definition=enriched,
        schema_source=schema_source,
    )

    existing_resource = server.registrations.resources.get(name)
    if existing_resource is not None:
        resource_uri = str(existing_resource.config.uri)
    else:
        resource_uri = generate_unique_widget_uri(name, server.build_id, resolved.extension)

    if enriched.type in (WidgetType.APPS_SDK, WidgetType.MCP_APPS):
        _link_waiting_tools(server, enriched, resource_uri)

    resource_meta = _resource_meta(enriched, schema_source) or None
    resource_annotations = _annotations(enriched.annotations, types.Annotations)
    reader = _make_resource_reader(server, name)

    resource_config = types.Resource(
        name=name,
        uri=resource_uri,
        title=enriched.title,
        description=enriched.description,
        mimeType=resolved.mime_type,
        annotations=resource_annotations,
        _meta=resource_meta,
    )
    if existing_resource is None:
        server.resource(resource_config, reader)
    else:
        existing_resource.config = resource_config
        existing_resource.handler = reader

    if resolved.uri_template is not None:
        template_key = f"{name}-dynamic"
        template_config = types.ResourceTemplate(
            name=enriched.display_name,
            uriTemplate=resolved.uri_template,
            title=enriched.title,
            description=enriched.description,
            mimeType=resolved.mime_type,
            annotations=resource_annotations,
            _meta=resource_meta,
        )
        existing_template = server.registrations.resource_templates.get(template_key)
        if existing_template is None:
            server.resource_template(template_config, reader, key=template_key)
        else:
            existing_template.config = template_config
            existing_template.handler = reader

    if is_update:
        logger.debug("Updated widget %s in place", name)
    else:
        logger.info("Registered widget %s (%s) at %s", name, enriched.type, resource_uri)

    # Resources reach live sessions whether or not a tool is exposed.
    await server.notify_resource_list_changed()

    if not resolve_expose_as_tool(enriched):
        if name in server.registrations.tools:
            logger.warning(
                "Widget %s no longer sets exposeAsTool, but tools cannot be "
                "unregistered; keeping the existing tool",
                name,
            )
        return enriched

    tool_meta = build_widget_tool_metadata(enriched, resource_uri)
    tool_config = types.Tool(
        name=name,
        title=enriched.title,
        description=enriched.description,
        inputSchema=schema_source.input_schema(),
        annotations=_annotations(enriched.tool_annotations, types.ToolAnnotations),
        _meta=tool_meta or None,
    )
    handler = _make_tool_handler(server, name)

    existing_tool = server.registrations.tools.get(name)
    if existing_tool is not None:
        existing_tool.config = tool_config
        existing_tool.handler = handler
        await server.notify_tool_list_changed()
    else:
        logger.info("Registering new tool: %s", name)
        server.tool(tool_config, handler)
        # Give the transport time to record the new tool before announcing it.
        server.schedule_tool_list_changed()

    return enriched
