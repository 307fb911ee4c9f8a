"""Pydantic models for widget definitions (MCP Apps / SEP-1865 and Apps SDK)."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal, Union

from mcp.server.fastmcp.utilities.logging import get_logger
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel

from widgetkit.exceptions import InvalidWidgetType

logger = get_logger(__name__)

# Private bookkeeping block of file-based widgets. Never forwarded to hosts.
WIDGET_META_KEY = "widgetkit/widget"
# Private extension read by companion tooling from resource _meta.
PROPS_SCHEMA_META_KEY = "widgetkit/propsSchema"


class WidgetType(str, Enum):
    """Variants a widget definition can take."""

    EXTERNAL_URL = "externalUrl"
    RAW_HTML = "rawHtml"
    REMOTE_DOM = "remoteDom"
    APPS_SDK = "appsSdk"
    MCP_APPS = "mcpApps"


class WidgetModel(BaseModel):
    """Accepts both camelCase (wire) and snake_case (Python) field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class CSPConfig(WidgetModel):
    connect_domains: list[str] | None = None
    resource_domains: list[str] | None = None
    frame_domains: list[str] | None = None
    base_uri_domains: list[str] | None = None
    script_directives: list[str] | None = None
    style_directives: list[str] | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _drop_malformed(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return value
        if not isinstance(value, (list, tuple)):
            logger.warning(
                "Ignoring CSP field %s: expected a list of strings, got %s",
                info.field_name,
                type(value).__name__,
            )
            return None
        kept = [item for item in value if isinstance(item, str)]
        if len(kept) != len(value):
            logger.warning(
                "Ignoring %d non-string entries in CSP field %s",
                len(value) - len(kept),
                info.field_name,
            )
        return kept


class McpAppsMetadata(WidgetModel):
    model_config = ConfigDict(extra="allow")

    csp: CSPConfig | None = None
    prefers_border: bool | None = None
    domain: str | None = None
    permissions: Any = None
    description: str | None = None

    @field_validator("csp", mode="before")
    @classmethod
    def _drop_malformed_csp(cls, value: Any) -> Any:
        if value is None or isinstance(value, (CSPConfig, Mapping)):
            return value
        logger.warning("Ignoring CSP: expected an object, got %s", type(value).__name__)
        return None


class BaseWidget(WidgetModel):
    name: str
    title: str | None = None
    description: str | None = None
    # pydantic model class, JSON Schema dict, or legacy props map
    props: Any = None
    annotations: dict[str, Any] | None = None
    tool_annotations: dict[str, Any] | None = None
    expose_as_tool: bool | None = None
    meta: dict[str, Any] | None = Field(default=None, alias="_meta")
    # mapping, or callable taking the call params
    tool_output: Any = None
    structured_content: Any = None

    @property
    def display_name(self) -> str:
        return self.title or self.name

    @property
    def widget_meta(self) -> dict[str, Any]:
        block = (self.meta or {}).get(WIDGET_META_KEY)
        return block if isinstance(block, dict) else {}


class ExternalUrlWidget(BaseWidget):
    type: Literal["externalUrl"] = "externalUrl"
    widget: str


class RawHtmlWidget(BaseWidget):
    type: Literal["rawHtml"] = "rawHtml"
    html_content: str


class RemoteDomWidget(BaseWidget):
    type: Literal["remoteDom"] = "remoteDom"
    script: str
    framework: Literal["react", "webcomponents"] = "react"


class AppsSdkWidget(BaseWidget):
    type: Literal["appsSdk"] = "appsSdk"
    html_template: str
    apps_sdk_metadata: dict[str, Any] | None = None


class McpAppsWidget(BaseWidget):
    type: Literal["mcpApps"] = "mcpApps"
    html_template: str
    metadata: McpAppsMetadata | None = None


WidgetDefinition = Annotated[
    Union[
        ExternalUrlWidget,
        RawHtmlWidget,
        RemoteDomWidget,
        AppsSdkWidget,
        McpAppsWidget,
    ],
    Field(discriminator="type"),
]

_definition_adapter: TypeAdapter[WidgetDefinition] = TypeAdapter(WidgetDefinition)


def parse_widget_definition(data: BaseWidget | dict[str, Any]) -> BaseWidget:
    """Validate a raw (e.g. file-based) widget definition into its variant model."""
    if isinstance(data, BaseWidget):
        return data
    widget_type = data.get("type")
    if widget_type not in {t.value for t in WidgetType}:
        raise InvalidWidgetType(widget_type)
    return _definition_adapter.validate_python(data)


class WidgetToolConfig(WidgetModel):
    """Widget reference carried by a hand-written tool."""

    name: str
    invoking: str | None = None
    invoked: str | None = None
    widget_accessible: bool | None = None
    result_can_produce_widget: bool | None = None

    def tool_meta(self) -> dict[str, Any]:
        meta: dict[str, Any] = {}
        if self.invoking is not None:
            meta["openai/toolInvocation/invoking"] = self.invoking
        if self.invoked is not None:
            meta["openai/toolInvocation/invoked"] = self.invoked
        if self.widget_accessible is not None:
            meta["openai/widgetAccessible"] = self.widget_accessible
        if self.result_can_produce_widget is not None:
            meta["openai/resultCanProduceWidget"] = self.result_can_produce_widget
        return meta


class StoredWidget(BaseModel):
    """Per-name bookkeeping kept by the server.

    Only the variant tag and CSP-relevant metadata serialize; the latest full
    definition and its resolved schema source stay server-side for handlers.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    widget_type: WidgetType
    metadata: McpAppsMetadata | None = None
    definition: Any = Field(default=None, exclude=True)
    schema_source: Any = Field(default=None, exclude=True)
