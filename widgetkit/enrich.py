"""Server-origin injection into widget CSP."""

from __future__ import annotations

from widgetkit.models import BaseWidget, CSPConfig, McpAppsMetadata, McpAppsWidget


def _with_origin(values: list[str] | None, origin: str) -> list[str]:
    values = list(values or [])
    if origin not in values:
        values.append(origin)
    return values


def enrich_definition(definition: BaseWidget, server_origin: str | None) -> BaseWidget:
    """Whitelist the server's own origin in an MCP Apps widget's CSP.

    Widgets built and served by this process load scripts/styles from it
    (resourceDomains), talk back to it (connectDomains) and resolve ``<base>``
    against it (baseUriDomains). Returns a copy; the input is left untouched.
    """
    if not server_origin or not isinstance(definition, McpAppsWidget):
        return definition

    metadata = definition.metadata or McpAppsMetadata()
    csp = metadata.csp or CSPConfig()
    csp = csp.model_copy(
        update={
            "resource_domains": _with_origin(csp.resource_domains, server_origin),
            "connect_domains": _with_origin(csp.connect_domains, server_origin),
            "base_uri_domains": _with_origin(csp.base_uri_domains, server_origin),
        }
    )
    return definition.model_copy(
        update={"metadata": metadata.model_copy(update={"csp": csp})}
    )
