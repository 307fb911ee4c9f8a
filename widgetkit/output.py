"""Tool call results for widget tools."""

from __future__ import annotations

import inspect
from collections.abc import Mapping
from typing import Any

import mcp.types as types
from pydantic import BaseModel

from widgetkit.models import BaseWidget, WidgetType
from widgetkit.resources import create_widget_ui_resource
from widgetkit.settings import WidgetServerSettings


async def _resolve(value: Any, params: Mapping[str, Any]) -> Any:
    if callable(value):
        value = value(dict(params))
    if inspect.isawaitable(value):
        value = await value
    return value


async def generate_tool_output(
    definition: BaseWidget, params: Mapping[str, Any]
) -> dict[str, Any]:
    output: dict[str, Any] = {
        "content": [types.TextContent(type="text", text=definition.display_name)]
    }
    if definition.structured_content:
        output["structuredContent"] = await _resolve(definition.structured_content, params)
    return output


async def build_tool_result(
    definition: BaseWidget,
    params: Mapping[str, Any],
    settings: WidgetServerSettings,
    uri: str | None = None,
) -> types.CallToolResult:
    """Result of invoking a widget's tool.

    Apps SDK / MCP Apps results carry data only; hosts fetch the widget body
    separately through the tool's output template. ``tool_output`` may give a
    ``CallToolResult``, a mapping with ``content``/``structuredContent``, or a
    pydantic model used as the structured content. Legacy MCP-UI results embed
    the resource at ``uri`` directly.
    """
    if definition.type in (WidgetType.APPS_SDK, WidgetType.MCP_APPS):
        if definition.tool_output:
            output = await _resolve(definition.tool_output, params)
        else:
            output = await generate_tool_output(definition, params)

        if isinstance(output, types.CallToolResult):
            return output
        if isinstance(output, BaseModel):
            output = {"structuredContent": output.model_dump(mode="json", by_alias=True)}
        elif output is None:
            output = {}
        elif not isinstance(output, Mapping):
            raise TypeError(
                f"Tool output of widget {definition.name} must be a mapping, "
                f"CallToolResult or pydantic model, got {type(output).__name__}"
            )

        content = output.get("content") or [
            types.TextContent(type="text", text=definition.display_name)
        ]
        if not isinstance(content, list):
            content = [content]
        structured = output.get("structuredContent")
        return types.CallToolResult(
            content=content,
            structuredContent=dict(params) if structured is None else structured,
        )

    resource = await create_widget_ui_resource(definition, params, settings, uri=uri)
    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=f"Displaying {definition.display_name}"),
            resource,
        ]
    )


def widget_response(
    props: Mapping[str, Any],
    message: str | None = None,
    meta: Mapping[str, Any] | None = None,
) -> types.CallToolResult:
    """Result for a hand-written tool that renders a widget through its config."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=message or "")],
        structuredContent=dict(props),
        _meta=dict(meta) if meta else None,
        isError=False,
    )
