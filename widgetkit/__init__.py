"""Register one widget as an MCP tool and resource for MCP Apps and Apps SDK hosts."""

from widgetkit.exceptions import (
    InvalidWidgetType,
    ResourceNotFound,
    ToolNotFound,
    WidgetKitError,
)
from widgetkit.models import (
    AppsSdkWidget,
    CSPConfig,
    ExternalUrlWidget,
    McpAppsMetadata,
    McpAppsWidget,
    RawHtmlWidget,
    RemoteDomWidget,
    WidgetToolConfig,
    WidgetType,
    parse_widget_definition,
)
from widgetkit.output import widget_response
from widgetkit.registration import register_widget
from widgetkit.server import WidgetServer
from widgetkit.settings import WidgetServerSettings

__version__ = "0.1.0"

__all__ = [
    "AppsSdkWidget",
    "CSPConfig",
    "ExternalUrlWidget",
    "InvalidWidgetType",
    "McpAppsMetadata",
    "McpAppsWidget",
    "RawHtmlWidget",
    "RemoteDomWidget",
    "ResourceNotFound",
    "ToolNotFound",
    "WidgetKitError",
    "WidgetServer",
    "WidgetServerSettings",
    "WidgetToolConfig",
    "WidgetType",
    "parse_widget_definition",
    "register_widget",
    "widget_response",
]
