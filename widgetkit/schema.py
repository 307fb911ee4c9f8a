"""Tool input schema sources for widget props.

A widget's ``props`` can be a pydantic model class, a JSON Schema document
(what production builds emit) or the legacy ``{name: {type, description,
required, default}}`` map. The source is detected once, at registration.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

EMPTY_INPUT_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


def apply_default_props(props: Any) -> dict[str, Any]:
    """Default values declared in a legacy props map or JSON Schema."""
    if isinstance(props, Mapping) and isinstance(props.get("properties"), Mapping):
        props = props["properties"]
    if not isinstance(props, Mapping):
        return {}
    return {
        name: prop["default"]
        for name, prop in props.items()
        if isinstance(prop, Mapping) and "default" in prop
    }


class SchemaSource:
    kind = "none"

    def input_schema(self) -> dict[str, Any]:
        return dict(EMPTY_INPUT_SCHEMA)

    def coerce(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        return dict(arguments)


@dataclass
class TypedSchema(SchemaSource):
    model: type[BaseModel]
    kind = "typed"

    def input_schema(self) -> dict[str, Any]:
        return self.model.model_json_schema()

    def coerce(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        # raises pydantic.ValidationError on bad input
        instance = self.model.model_validate(dict(arguments))
        return instance.model_dump(mode="json", by_alias=True)


@dataclass
class JsonSchema(SchemaSource):
    schema: Mapping[str, Any]
    kind = "json"

    def input_schema(self) -> dict[str, Any]:
        properties = {}
        for name, prop in (self.schema.get("properties") or {}).items():
            prop = dict(prop) if isinstance(prop, Mapping) else {}
            prop.setdefault("type", "string")
            properties[name] = prop
        schema: dict[str, Any] = {"type": "object", "properties": properties}
        if self.schema.get("required"):
            schema["required"] = list(self.schema["required"])
        return schema

    def coerce(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        return {**apply_default_props(self.schema), **arguments}


@dataclass
class PropsSchema(SchemaSource):
    props: Mapping[str, Any] = field(default_factory=dict)
    kind = "props"

    def input_schema(self) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        required = []
        for name, prop in self.props.items():
            prop = prop if isinstance(prop, Mapping) else {}
            entry: dict[str, Any] = {"type": prop.get("type", "string")}
            if prop.get("description"):
                entry["description"] = prop["description"]
            if "default" in prop:
                entry["default"] = prop["default"]
            properties[name] = entry
            if prop.get("required"):
                required.append(name)
        schema: dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required
        return schema

    def coerce(self, arguments: Mapping[str, Any]) -> dict[str, Any]:
        return {**apply_default_props(self.props), **arguments}


def is_json_schema(value: Any) -> bool:
    if not isinstance(value, Mapping):
        return False
    return "$schema" in value or (
        value.get("type") == "object" and "properties" in value
    )


def resolve_schema_source(props_or_schema: Any) -> SchemaSource:
    """First match wins: pydantic model, JSON Schema, legacy props map."""
    if not props_or_schema:
        return SchemaSource()
    if isinstance(props_or_schema, type) and issubclass(props_or_schema, BaseModel):
        return TypedSchema(props_or_schema)
    if is_json_schema(props_or_schema):
        return JsonSchema(props_or_schema)
    if isinstance(props_or_schema, Mapping):
        return PropsSchema(props_or_schema)
    return SchemaSource()
