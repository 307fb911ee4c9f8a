"""Tests for widget registration and hot updates."""

from __future__ import annotations

import pytest
import mcp.types as types
from pydantic import BaseModel

from widgetkit.exceptions import InvalidWidgetType, ResourceNotFound
from widgetkit.models import (
    PROPS_SCHEMA_META_KEY,
    WIDGET_META_KEY,
    AppsSdkWidget,
    CSPConfig,
    ExternalUrlWidget,
    McpAppsMetadata,
    McpAppsWidget,
    RawHtmlWidget,
    WidgetToolConfig,
)
from widgetkit.registration import resolve_expose_as_tool
from widgetkit.uris import generate_unique_widget_uri

ORIGIN = "https://host:3000"


def kanban(**overrides) -> McpAppsWidget:
    fields = {
        "name": "kanban",
        "title": "Kanban",
        "description": "Task board",
        "html_template": "<div>board</div>",
    }
    fields.update(overrides)
    return McpAppsWidget(**fields)


async def _noop_tool(arguments):
    return types.CallToolResult(content=[])


class TestExposeAsTool:
    def test_defaults_to_true(self):
        assert resolve_expose_as_tool(kanban()) is True

    def test_explicit_false_wins_over_legacy_true(self):
        widget = kanban(expose_as_tool=False, _meta={WIDGET_META_KEY: {"exposeAsTool": True}})
        assert resolve_expose_as_tool(widget) is False

    def test_legacy_meta_fallback(self):
        widget = kanban(_meta={WIDGET_META_KEY: {"exposeAsTool": False}})
        assert resolve_expose_as_tool(widget) is False

    def test_legacy_meta_must_be_boolean(self):
        widget = kanban(_meta={WIDGET_META_KEY: {"exposeAsTool": "false"}})
        assert resolve_expose_as_tool(widget) is True


class TestFirstRegistration:
    @pytest.mark.asyncio
    async def test_creates_resource_template_and_tool(self, server, session, drain):
        await server.ui_resource(kanban())

        resource = server.registrations.resources["kanban"].config
        template = server.registrations.resource_templates["kanban-dynamic"].config
        tool = server.registrations.tools["kanban"].config

        assert str(resource.uri).startswith("ui://widget/kanban-")
        assert resource.mimeType == "text/html;profile=mcp-app"
        assert template.uriTemplate == "ui://widget/kanban-{id}.html"
        assert tool.meta["ui"]["resourceUri"] == str(resource.uri)
        assert tool.meta["openai/outputTemplate"] == str(resource.uri)

        assert session.resource_list_changed == 1
        await drain(server)
        assert session.tool_list_changed == 1

    @pytest.mark.asyncio
    async def test_server_origin_reaches_both_protocols(self, server):
        await server.ui_resource(kanban())

        resource = server.registrations.resources["kanban"].config
        tool = server.registrations.tools["kanban"].config
        assert resource.meta["ui"]["csp"] == {
            "connectDomains": [ORIGIN],
            "resourceDomains": [ORIGIN],
            "baseUriDomains": [ORIGIN],
        }
        assert tool.meta["openai/widgetCSP"] == {
            "connect_domains": [ORIGIN],
            "resource_domains": [ORIGIN],
            "base_uri_domains": [ORIGIN],
        }

    @pytest.mark.asyncio
    async def test_stores_minimal_bookkeeping(self, server):
        await server.ui_resource(
            kanban(metadata=McpAppsMetadata(csp=CSPConfig(frame_domains=["https://f"])))
        )
        stored = server.widget_definitions["kanban"]
        assert stored.model_dump(by_alias=True, exclude_none=True) == {
            "widget_type": "mcpApps",
            "metadata": {
                "csp": {
                    "connectDomains": [ORIGIN],
                    "resourceDomains": [ORIGIN],
                    "frameDomains": ["https://f"],
                    "baseUriDomains": [ORIGIN],
                }
            },
        }

    @pytest.mark.asyncio
    async def test_private_widget_meta_never_reaches_resource(self, server):
        await server.ui_resource(
            kanban(
                props={"message": {"type": "string"}},
                _meta={
                    WIDGET_META_KEY: {"exposeAsTool": True},
                    "ui": {"csp": {"connectDomains": ["https://sneaky"]}},
                    "custom/key": "kept",
                },
            )
        )
        meta = server.registrations.resources["kanban"].config.meta
        assert WIDGET_META_KEY not in meta
        assert meta["custom/key"] == "kept"
        assert meta[PROPS_SCHEMA_META_KEY]["properties"] == {"message": {"type": "string"}}
        assert PROPS_SCHEMA_META_KEY not in meta["ui"]
        assert "https://sneaky" not in meta["ui"]["csp"]["connectDomains"]

    @pytest.mark.asyncio
    async def test_legacy_variant_has_no_template(self, server):
        await server.ui_resource(RawHtmlWidget(name="raw", html_content="<p>hi</p>"))
        assert "raw" in server.registrations.resources
        assert server.registrations.resource_templates == {}
        assert server.registrations.tools["raw"].config.meta is None

    @pytest.mark.asyncio
    async def test_malformed_csp_entries_do_not_abort(self, server):
        await server.ui_resource(
            {
                "type": "mcpApps",
                "name": "k",
                "htmlTemplate": "<div/>",
                "metadata": {"csp": {"connectDomains": [1, "https://ok"]}},
            }
        )
        csp = server.registrations.resources["k"].config.meta["ui"]["csp"]
        assert csp["connectDomains"] == ["https://ok", ORIGIN]

    @pytest.mark.asyncio
    async def test_invalid_type_raises(self, server):
        with pytest.raises(InvalidWidgetType):
            await server.ui_resource({"type": "iframe", "name": "bad"})
        assert server.registrations.resources == {}

    @pytest.mark.asyncio
    async def test_tool_schema_from_typed_props(self, server):
        class Props(BaseModel):
            message: str

        await server.ui_resource(kanban(props=Props, tool_annotations={"readOnlyHint": True}))
        tool = server.registrations.tools["kanban"].config
        assert tool.inputSchema["required"] == ["message"]
        assert tool.annotations.readOnlyHint is True


class TestHotUpdate:
    @pytest.mark.asyncio
    async def test_register_twice_keeps_record_identity(self, server):
        await server.ui_resource(kanban())
        resource = server.registrations.resources["kanban"]
        template = server.registrations.resource_templates["kanban-dynamic"]
        tool = server.registrations.tools["kanban"]
        uri = str(resource.config.uri)

        await server.ui_resource(kanban(description="Updated board"))

        assert len(server.registrations.resources) == 1
        assert len(server.registrations.tools) == 1
        assert server.registrations.resources["kanban"] is resource
        assert server.registrations.resource_templates["kanban-dynamic"] is template
        assert server.registrations.tools["kanban"] is tool
        assert str(resource.config.uri) == uri
        assert tool.config.description == "Updated board"
        assert tool.config.meta["openai/outputTemplate"] == uri

    @pytest.mark.asyncio
    async def test_resource_only_update_notifies_resources_once(self, server, session, drain):
        await server.ui_resource(kanban(name="w", title="First", expose_as_tool=False))
        await drain(server)
        session.resource_list_changed = 0

        await server.ui_resource(kanban(name="w", title="Second", expose_as_tool=False))
        await drain(server)

        assert len(server.registrations.resources) == 1
        assert server.registrations.resources["w"].config.title == "Second"
        assert session.resource_list_changed == 1
        assert session.tool_list_changed == 0

    @pytest.mark.asyncio
    async def test_tool_update_notifies_immediately(self, server, session, drain):
        await server.ui_resource(kanban())
        await drain(server)
        assert session.tool_list_changed == 1

        await server.ui_resource(kanban(title="Kanban v2"))
        assert session.tool_list_changed == 2
        assert server.pending_notifications == set()

    @pytest.mark.asyncio
    async def test_previously_bound_handlers_see_latest_definition(self, server):
        await server.ui_resource(kanban())
        read = server.registrations.resources["kanban"].handler
        call = server.registrations.tools["kanban"].handler
        uri = str(server.registrations.resources["kanban"].config.uri)

        await server.ui_resource(
            kanban(html_template="<div>v2</div>", structured_content={"version": 2})
        )

        result = await read(uri)
        assert result.contents[0].text == "<div>v2</div>"
        called = await call({})
        assert called.structuredContent == {"version": 2}

    @pytest.mark.asyncio
    async def test_disabling_tool_keeps_existing_tool(self, server):
        await server.ui_resource(kanban())
        await server.ui_resource(kanban(expose_as_tool=False))
        assert "kanban" in server.registrations.tools


class TestNotifications:
    @pytest.mark.asyncio
    async def test_resource_only_widget_still_propagates(self, server, session, drain):
        await server.ui_resource(kanban(expose_as_tool=False))
        await drain(server)
        assert session.resource_list_changed == 1
        assert session.tool_list_changed == 0

    @pytest.mark.asyncio
    async def test_disconnected_session_does_not_block_others(
        self, server, disconnected_session, session, drain
    ):
        await server.ui_resource(kanban())
        await drain(server)
        assert session.resource_list_changed == 1
        assert session.tool_list_changed == 1


class TestDispatch:
    @pytest.mark.asyncio
    async def test_hidden_tool_not_found_but_resource_readable(self, server):
        await server.ui_resource(
            AppsSdkWidget(name="w", html_template="<div>w</div>", expose_as_tool=False)
        )

        result = await server.call_tool("w", {"message": "test"})
        assert result.isError is True
        assert "not found" in result.content[0].text

        uri = str(server.registrations.resources["w"].config.uri)
        read = await server.read_resource(uri)
        assert read.contents[0].text == "<div>w</div>"
        assert read.contents[0].mimeType == "text/html+skybridge"

    @pytest.mark.asyncio
    async def test_minted_uris_resolve_through_template(self, server):
        await server.ui_resource(kanban())
        uri = generate_unique_widget_uri("kanban")

        read = await server.read_resource(uri)
        assert str(read.contents[0].uri) == uri
        assert read.contents[0].meta["ui"]["csp"]["connectDomains"] == [ORIGIN]

    @pytest.mark.asyncio
    async def test_unknown_resource(self, server):
        with pytest.raises(ResourceNotFound):
            await server.read_resource("ui://widget/missing.html")

    @pytest.mark.asyncio
    async def test_apps_tool_returns_params_as_structured_content(self, server):
        await server.ui_resource(kanban(props={"message": {"type": "string"}}))
        result = await server.call_tool("kanban", {"message": "hi"})

        assert result.isError is False
        assert len(result.content) == 1
        assert result.content[0].text == "Kanban"
        assert result.structuredContent == {"message": "hi"}

    @pytest.mark.asyncio
    async def test_tool_output_callable(self, server):
        await server.ui_resource(
            kanban(
                tool_output=lambda params: {
                    "content": [{"type": "text", "text": f"Board for {params['team']}"}],
                    "structuredContent": {"team": params["team"], "cards": []},
                }
            )
        )
        result = await server.call_tool("kanban", {"team": "core"})
        assert result.content[0].text == "Board for core"
        assert result.structuredContent == {"team": "core", "cards": []}

    @pytest.mark.asyncio
    async def test_tool_output_call_tool_result_passes_through(self, server):
        await server.ui_resource(
            kanban(
                tool_output=lambda params: types.CallToolResult(
                    content=[types.TextContent(type="text", text="custom")],
                    structuredContent={"x": 1},
                )
            )
        )
        result = await server.call_tool("kanban", {"q": 1})
        assert result.content[0].text == "custom"
        assert result.structuredContent == {"x": 1}

    @pytest.mark.asyncio
    async def test_tool_output_model_becomes_structured_content(self, server):
        class Board(BaseModel):
            team: str

        await server.ui_resource(kanban(tool_output=lambda params: Board(team="core")))
        result = await server.call_tool("kanban", {"q": 1})
        assert result.content[0].text == "Kanban"
        assert result.structuredContent == {"team": "core"}

    @pytest.mark.asyncio
    async def test_unusable_tool_output_is_error_result(self, server):
        await server.ui_resource(kanban(tool_output=lambda params: "just text"))
        result = await server.call_tool("kanban", {})
        assert result.isError is True
        assert "must be a mapping" in result.content[0].text

    @pytest.mark.asyncio
    async def test_legacy_tool_embeds_resource(self, server):

        await server.ui_resource(RawHtmlWidget(name="raw", title="Raw", html_content="<p>hi</p>"))
        result = await server.call_tool("raw", {})

        assert result.content[0].text == "Displaying Raw"
        embedded = result.content[1]
        assert embedded.type == "resource"
        assert embedded.resource.text == "<p>hi</p>"
        assert embedded.resource.mimeType == "text/html"
        assert str(embedded.resource.uri) == str(server.registrations.resources["raw"].config.uri)

    @pytest.mark.asyncio
    async def test_external_url_reads_default_props(self, server):
        await server.ui_resource(
            ExternalUrlWidget(
                name="chart",
                widget="chart",
                props={"range": {"type": "string", "default": "7d"}},
            )
        )
        uri = str(server.registrations.resources["chart"].config.uri)
        read = await server.read_resource(uri)
        assert read.contents[0].text == "https://host:3000/widgets/chart/?range=7d"
        assert read.contents[0].mimeType == "text/uri-list"

    @pytest.mark.asyncio
    async def test_typed_validation_error_is_error_result(self, server):
        class Props(BaseModel):
            count: int

        await server.ui_resource(kanban(props=Props))
        result = await server.call_tool("kanban", {"count": "many"})
        assert result.isError is True
        assert "kanban" in result.content[0].text


class TestWidgetTools:
    @pytest.mark.asyncio
    async def test_tool_registered_before_widget_is_linked(self, server):
        server.tool(
            types.Tool(name="show-board", inputSchema={"type": "object"}),
            _noop_tool,
            widget=WidgetToolConfig(name="kanban", invoking="Custom invoking..."),
        )
        assert server.registrations.tools["show-board"].config.meta == {
            "openai/toolInvocation/invoking": "Custom invoking..."
        }

        await server.ui_resource(kanban())
        uri = str(server.registrations.resources["kanban"].config.uri)
        meta = server.registrations.tools["show-board"].config.meta
        assert meta["openai/outputTemplate"] == uri
        assert meta["ui"]["resourceUri"] == uri
        assert meta["openai/toolInvocation/invoking"] == "Custom invoking..."

    @pytest.mark.asyncio
    async def test_tool_registered_after_widget(self, server):
        await server.ui_resource(
            AppsSdkWidget(
                name="board",
                html_template="<div></div>",
                expose_as_tool=False,
                apps_sdk_metadata={"openai/widgetAccessible": True},
            )
        )
        server.tool(
            types.Tool(name="manual", inputSchema={"type": "object"}),
            _noop_tool,
            widget=WidgetToolConfig(name="board", widget_accessible=False),
        )
        meta = server.registrations.tools["manual"].config.meta
        assert meta["openai/outputTemplate"] == str(
            server.registrations.resources["board"].config.uri
        )
        assert meta["openai/widgetAccessible"] is False

    @pytest.mark.asyncio
    async def test_relinking_drops_keys_removed_by_update(self, server):
        server.tool(
            types.Tool(name="show-board", inputSchema={"type": "object"}, _meta={"mine": 1}),
            _noop_tool,
            widget=WidgetToolConfig(name="kanban"),
        )
        await server.ui_resource(kanban())
        meta = server.registrations.tools["show-board"].config.meta
        assert meta["openai/description"] == "Task board"
        assert "openai/widgetCSP" in meta

        server.settings.base_url = None
        await server.ui_resource(kanban(description=None))
        meta = server.registrations.tools["show-board"].config.meta
        assert "openai/description" not in meta
        assert "openai/widgetCSP" not in meta
        assert meta["mine"] == 1
