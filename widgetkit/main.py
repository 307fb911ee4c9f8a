"""Kitchen Sink Lite widget server implemented with widgetkit.

Serves the `assets/kitchen-sink-lite.html` widget bundle to both host
conventions. It exposes:
- `kitchen-sink-show`, an Apps SDK widget that renders the bundle and echoes
  the provided message
- `kitchen-sink-apps`, the same bundle as an MCP Apps widget, advertised with
  dual-protocol metadata and its CSP declared once
- `kitchen-sink-refresh`, a lightweight echo tool meant to be called from the
  widget via `window.openai.callTool`

All of them point at the same widget so the host can hydrate the UI with
updated structured content.
"""

from __future__ import annotations

import asyncio
from functools import lru_cache
from pathlib import Path
from typing import Any

import mcp.types as types
import uvicorn
from mcp.server.fastmcp.utilities.logging import configure_logging, get_logger
from pydantic import BaseModel, Field

from widgetkit.models import (
    AppsSdkWidget,
    CSPConfig,
    McpAppsMetadata,
    McpAppsWidget,
    WidgetToolConfig,
)
from widgetkit.output import widget_response
from widgetkit.server import WidgetServer
from widgetkit.settings import WidgetServerSettings

logger = get_logger(__name__)

ASSETS_DIR = Path(__file__).resolve().parent / "assets"


class WidgetPayload(BaseModel):
    message: str
    accentColor: str | None = Field(
        default="#2d6cdf", description="Accent color to highlight the widget."
    )
    details: str | None = Field(
        default=None,
        description="Optional detail text that appears under the headline.",
    )
    fromTool: str = Field(
        default="kitchen-sink-show", description="Tool that produced the payload."
    )


@lru_cache(maxsize=None)
def load_widget_html() -> str:
    direct = ASSETS_DIR / "kitchen-sink-lite.html"
    if direct.exists():
        return direct.read_text(encoding="utf8")

    candidates = sorted(ASSETS_DIR.glob("kitchen-sink-lite-*.html"))
    if candidates:
        return candidates[-1].read_text(encoding="utf8")

    raise FileNotFoundError(
        f"Widget HTML for kitchen-sink-lite not found in {ASSETS_DIR}; "
        "reinstall widgetkit so the packaged assets are restored."
    )


def show_output(params: dict[str, Any]) -> dict[str, Any]:
    return {
        "content": [
            types.TextContent(
                type="text", text=f"Widget ready with message: {params['message']}"
            )
        ],
        "structuredContent": params,
    }


async def kitchen_sink_refresh(arguments: dict[str, Any]) -> types.CallToolResult:
    # Simple echo tool used by the widget via window.openai.callTool.
    payload = WidgetPayload(
        message=arguments.get("message", ""),
        details="This response came from the widget via window.openai.callTool.",
        fromTool="kitchen-sink-refresh",
    )
    return widget_response(payload.model_dump(mode="json"), message=payload.message)


def build_server(settings: WidgetServerSettings | None = None) -> WidgetServer:
    server = WidgetServer(settings=settings or WidgetServerSettings(name="kitchen-sink-python"))

    # Registered before its widget; the registrar links the metadata later.
    server.tool(
        types.Tool(
            name="kitchen-sink-refresh",
            description="Echo a message back into the kitchen sink widget.",
            inputSchema={
                "type": "object",
                "properties": {
                    "message": {"type": "string", "description": "Message to echo back."}
                },
                "required": ["message"],
            },
        ),
        kitchen_sink_refresh,
        widget=WidgetToolConfig(
            name="kitchen-sink-show",
            invoking="Refreshing the kitchen sink widget",
            invoked="Widget refreshed",
            widget_accessible=True,
        ),
    )
    return server


async def register_widgets(server: WidgetServer) -> None:
    html = load_widget_html()
    await server.ui_resource(
        AppsSdkWidget(
            name="kitchen-sink-show",
            title="Kitchen sink lite widget",
            description="Render the kitchen sink widget with a message.",
            html_template=html,
            props=WidgetPayload,
            tool_output=show_output,
            apps_sdk_metadata={
                "openai/toolInvocation/invoking": "Preparing the kitchen sink widget",
                "openai/toolInvocation/invoked": "Widget rendered",
                "openai/widgetAccessible": True,
                "openai/resultCanProduceWidget": True,
                "openai/widgetCSP": {"resource_domains": [], "connect_domains": []},
            },
        )
    )
    await server.ui_resource(
        McpAppsWidget(
            name="kitchen-sink-apps",
            title="Kitchen sink lite (MCP Apps)",
            description="Render the kitchen sink widget for MCP Apps hosts.",
            html_template=html,
            props=WidgetPayload,
            tool_output=show_output,
            metadata=McpAppsMetadata(
                csp=CSPConfig(resource_domains=["https://persistent.oaistatic.com"]),
                prefers_border=True,
            ),
        )
    )


async def serve(settings: WidgetServerSettings) -> None:
    server = build_server(settings)
    await register_widgets(server)
    config = uvicorn.Config(
        server.streamable_http_app(),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    await uvicorn.Server(config).serve()


def main() -> None:
    settings = WidgetServerSettings(name="kitchen-sink-python")
    configure_logging(settings.log_level)
    asyncio.run(serve(settings))


if __name__ == "__main__":
    main()
