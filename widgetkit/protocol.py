"""Dual-protocol metadata builders.

A widget is advertised to two kinds of hosts at once:

* MCP Apps (SEP-1865) hosts read ``_meta.ui`` - ``resourceUri`` on the tool,
  ``csp``/``prefersBorder``/``domain``/``permissions`` on the resource.
* Apps SDK hosts read ``openai/*`` keys from the tool definition, including
  the widget CSP, which they never look up on the resource.

The CSP is authored once (camelCase, on ``McpAppsWidget.metadata.csp``) and
emitted under both conventions; ``build_resource_ui_meta`` derives the
resource ``ui.csp`` back from the snake_case ``openai/widgetCSP`` fragment so
the two can never drift.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from mcp.server.fastmcp.utilities.logging import get_logger

from widgetkit.models import (
    AppsSdkWidget,
    BaseWidget,
    McpAppsWidget,
    WidgetToolConfig,
    WidgetType,
)

logger = get_logger(__name__)

CSP_FIELDS: dict[str, str] = {
    "connect_domains": "connectDomains",
    "resource_domains": "resourceDomains",
    "frame_domains": "frameDomains",
    "base_uri_domains": "baseUriDomains",
    "script_directives": "scriptDirectives",
    "style_directives": "styleDirectives",
}

APPS_SDK_TOOL_FIELDS = (
    "openai/toolInvocation/invoking",
    "openai/toolInvocation/invoked",
    "openai/widgetAccessible",
    "openai/resultCanProduceWidget",
)


def snake_case_csp_to_camel_case(csp: Any) -> dict[str, list[str]] | None:
    """Convert an ``openai/widgetCSP`` object into the ``ui.csp`` shape.

    Fields that are missing or not lists are left out.
    """
    if not isinstance(csp, Mapping):
        return None
    result: dict[str, list[str]] = {}
    for snake, camel in CSP_FIELDS.items():
        value = csp.get(snake)
        if isinstance(value, (list, tuple)):
            result[camel] = list(value)
        elif value is not None:
            logger.warning(
                "Dropping CSP field %s from widget policy: expected a list, got %s",
                snake,
                type(value).__name__,
            )
    return result or None


def _apps_sdk_csp(definition: BaseWidget) -> dict[str, list[str]] | None:
    if isinstance(definition, McpAppsWidget):
        if definition.metadata is None or definition.metadata.csp is None:
            return None
        csp = definition.metadata.csp.model_dump(exclude_none=True)
        return csp or None

    if isinstance(definition, AppsSdkWidget):
        raw = (definition.apps_sdk_metadata or {}).get("openai/widgetCSP")
        if not isinstance(raw, Mapping):
            return None
        csp = {}
        for field in CSP_FIELDS:
            value = raw.get(field)
            if isinstance(value, (list, tuple)):
                csp[field] = list(value)
            elif value is not None:
                logger.warning(
                    "Dropping openai/widgetCSP.%s of widget %s: expected a list, got %s",
                    field,
                    definition.name,
                    type(value).__name__,
                )
        return csp or None

    return None


class McpAppsAdapter:
    """Metadata under the MCP Apps ``ui`` namespace."""

    def build_tool_metadata(self, definition: BaseWidget, uri: str) -> dict[str, Any]:
        return {"ui": {"resourceUri": uri}, "ui/resourceUri": uri}

    def build_resource_metadata(self, definition: BaseWidget) -> dict[str, Any]:
        metadata = getattr(definition, "metadata", None)
        if metadata is None:
            return {}

        ui: dict[str, Any] = {}
        if metadata.csp is not None:
            csp = metadata.csp.model_dump(by_alias=True, exclude_none=True)
            if csp:
                ui["csp"] = csp
        if metadata.prefers_border is not None:
            ui["prefersBorder"] = metadata.prefers_border
        if metadata.domain is not None:
            ui["domain"] = metadata.domain
        if metadata.permissions is not None:
            ui["permissions"] = metadata.permissions
        return {"ui": ui} if ui else {}


class AppsSdkAdapter:
    """Metadata under the ``openai/`` namespace."""

    def build_tool_metadata(self, definition: BaseWidget, uri: str) -> dict[str, Any]:
        meta: dict[str, Any] = {"openai/outputTemplate": uri}
        source = getattr(definition, "apps_sdk_metadata", None) or {}
        for field in APPS_SDK_TOOL_FIELDS:
            if source.get(field) is not None:
                meta[field] = source[field]
        return meta

    def build_resource_metadata(self, definition: BaseWidget) -> dict[str, Any]:
        meta: dict[str, Any] = {}
        csp = _apps_sdk_csp(definition)
        if csp:
            meta["openai/widgetCSP"] = csp

        description = definition.description
        if isinstance(definition, McpAppsWidget) and definition.metadata is not None:
            description = definition.metadata.description or description
        elif isinstance(definition, AppsSdkWidget):
            source = definition.apps_sdk_metadata or {}
            description = source.get("openai/widgetDescription") or description
        if description:
            meta["openai/description"] = description
        return meta


mcp_apps_adapter = McpAppsAdapter()
apps_sdk_adapter = AppsSdkAdapter()


def deep_merge_ui_metadata(
    existing: Mapping[str, Any] | None, incoming: Mapping[str, Any] | None
) -> dict[str, Any] | None:
    if not existing and not incoming:
        return None
    merged = {**(existing or {}), **(incoming or {})}
    existing_ui = (existing or {}).get("ui")
    incoming_ui = (incoming or {}).get("ui")
    if isinstance(existing_ui, Mapping) and isinstance(incoming_ui, Mapping):
        merged["ui"] = {**existing_ui, **incoming_ui}
    return merged


def build_dual_protocol_metadata(
    definition: BaseWidget,
    uri: str,
    existing: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Tool ``_meta`` carrying both protocols.

    Precedence: existing < MCP Apps tool < Apps SDK tool < Apps SDK resource
    (``openai/widgetCSP``, ``openai/description``).
    """
    merged = deep_merge_ui_metadata(
        existing, mcp_apps_adapter.build_tool_metadata(definition, uri)
    )
    merged.update(apps_sdk_adapter.build_tool_metadata(definition, uri))
    merged.update(apps_sdk_adapter.build_resource_metadata(definition))
    return merged


def build_resource_ui_meta(definition: BaseWidget) -> dict[str, Any] | None:
    """Resource ``_meta.ui`` for MCP Apps hosts, or None when empty."""
    ui = dict(mcp_apps_adapter.build_resource_metadata(definition).get("ui", {}))

    if isinstance(definition, McpAppsWidget):
        widget_csp = apps_sdk_adapter.build_resource_metadata(definition).get(
            "openai/widgetCSP"
        )
        csp = snake_case_csp_to_camel_case(widget_csp)
        if csp:
            ui["csp"] = csp

    return ui or None


def build_widget_tool_metadata(
    definition: BaseWidget,
    uri: str,
    existing: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Tool ``_meta`` for a widget, by variant."""
    match WidgetType(definition.type):
        case WidgetType.MCP_APPS:
            return build_dual_protocol_metadata(definition, uri, existing)
        case WidgetType.APPS_SDK:
            return {
                **(existing or {}),
                **apps_sdk_adapter.build_tool_metadata(definition, uri),
            }
        case _:
            return dict(existing or {})


def build_linked_tool_metadata(
    definition: BaseWidget,
    uri: str,
    widget: WidgetToolConfig,
    existing: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Tool ``_meta`` for a hand-written tool rendering ``definition``.

    The tool's own widget config wins over the widget's defaults.
    """
    meta = build_widget_tool_metadata(definition, uri, existing)
    meta.update(widget.tool_meta())
    return meta
