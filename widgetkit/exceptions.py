"""Exception hierarchy for widgetkit."""

from __future__ import annotations


class WidgetKitError(Exception):
    """Base exception for widget registration and dispatch."""


class InvalidWidgetType(WidgetKitError):
    """Raised when a widget definition carries an unrecognized ``type`` tag."""

    def __init__(self, widget_type: object):
        self.widget_type = widget_type
        super().__init__(
            f"Unsupported UI resource type {widget_type!r}. Must be one of: "
            "externalUrl, rawHtml, remoteDom, appsSdk, mcpApps"
        )


class ToolNotFound(WidgetKitError):
    """Raised when a tool call names a tool that is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool {name} not found")


class ResourceNotFound(WidgetKitError):
    """Raised when a resource read matches neither a resource nor a template."""

    def __init__(self, uri: str):
        self.uri = uri
        super().__init__(f"Resource {uri} not found")
