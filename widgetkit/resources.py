"""Widget presentation bodies, as served by resources/read."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import mcp.types as types

from widgetkit.exceptions import InvalidWidgetType
from widgetkit.models import (
    AppsSdkWidget,
    BaseWidget,
    ExternalUrlWidget,
    McpAppsWidget,
    RawHtmlWidget,
    RemoteDomWidget,
)
from widgetkit.protocol import APPS_SDK_TOOL_FIELDS, build_resource_ui_meta
from widgetkit.settings import WidgetServerSettings
from widgetkit.uris import resolve_widget_uri


def server_base_url(settings: WidgetServerSettings) -> str:
    if settings.base_url:
        return settings.base_url.rstrip("/")
    host = "localhost" if settings.host in ("0.0.0.0", "::") else settings.host
    return f"http://{host}:{settings.port}"


def widget_iframe_url(
    widget: str, params: Mapping[str, Any], settings: WidgetServerSettings
) -> str:
    url = f"{server_base_url(settings)}/widgets/{widget}/"
    if params:
        query = {
            key: value if isinstance(value, str) else json.dumps(value)
            for key, value in params.items()
        }
        url = f"{url}?{urlencode(query)}"
    return url


async def create_widget_ui_resource(
    definition: BaseWidget,
    params: Mapping[str, Any],
    settings: WidgetServerSettings,
    uri: str | None = None,
) -> types.EmbeddedResource:
    """Build the embedded resource carrying a widget's presentation body."""
    resolved = resolve_widget_uri(definition.type, definition.name, settings.build_id)
    meta: dict[str, Any] | None = None

    match definition:
        case ExternalUrlWidget():
            text = widget_iframe_url(definition.widget, params, settings)
        case RawHtmlWidget():
            text = definition.html_content
        case RemoteDomWidget():
            text = definition.script
            meta = {"widgetkit/framework": definition.framework}
        case AppsSdkWidget():
            text = definition.html_template
            meta = {
                key: value
                for key, value in (definition.apps_sdk_metadata or {}).items()
                if key not in APPS_SDK_TOOL_FIELDS
            } or None
        case McpAppsWidget():
            text = definition.html_template
            ui = build_resource_ui_meta(definition)
            meta = {"ui": ui} if ui else None
        case _:
            raise InvalidWidgetType(getattr(definition, "type", None))

    return types.EmbeddedResource(
        type="resource",
        resource=types.TextResourceContents(
            uri=uri or resolved.uri,
            mimeType=resolved.mime_type,
            text=text,
            _meta=meta,
        ),
    )
