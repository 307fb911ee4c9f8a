"""Widget resource URIs and MIME types."""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass

from widgetkit.exceptions import InvalidWidgetType
from widgetkit.models import WidgetType

WIDGET_URI_PREFIX = "ui://widget/"

_ID_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class ResolvedWidgetUri:
    uri: str
    mime_type: str
    extension: str
    # Only set for variants whose tools mint per-call URIs.
    uri_template: str | None = None


def build_id_part(build_id: str | None) -> str:
    return f"-{build_id}" if build_id else ""


def resolve_widget_uri(
    variant: WidgetType | str, name: str, build_id: str | None = None
) -> ResolvedWidgetUri:
    """Map a widget variant and name to its canonical URI, template and MIME type."""
    try:
        widget_type = WidgetType(variant)
    except ValueError:
        raise InvalidWidgetType(variant) from None

    match widget_type:
        case WidgetType.EXTERNAL_URL:
            mime_type, extension, templated = "text/uri-list", ".html", False
        case WidgetType.RAW_HTML:
            mime_type, extension, templated = "text/html", ".html", False
        case WidgetType.REMOTE_DOM:
            mime_type = "application/vnd.mcp-ui.remote-dom+javascript"
            extension, templated = ".js", False
        case WidgetType.APPS_SDK:
            mime_type, extension, templated = "text/html+skybridge", ".html", True
        case WidgetType.MCP_APPS:
            mime_type, extension, templated = "text/html;profile=mcp-app", ".html", True
        case _:
            raise InvalidWidgetType(variant)

    base = f"{WIDGET_URI_PREFIX}{name}{build_id_part(build_id)}"
    return ResolvedWidgetUri(
        uri=f"{base}{extension}",
        mime_type=mime_type,
        extension=extension,
        uri_template=f"{base}-{{id}}{extension}" if templated else None,
    )


def generate_unique_widget_uri(
    name: str, build_id: str | None = None, extension: str = ".html"
) -> str:
    """Mint ``ui://widget/{name}{-buildId}-{random}{ext}`` with a fresh suffix."""
    random_id = "".join(secrets.choice(_ID_ALPHABET) for _ in range(13))
    return f"{WIDGET_URI_PREFIX}{name}{build_id_part(build_id)}-{random_id}{extension}"
