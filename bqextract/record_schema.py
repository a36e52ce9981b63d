"""
Pipeline record schema.

The structured-record schema the extraction commits to for output. A user
may pin one in configuration as Avro-style JSON:

    {
      "type": "record",
      "name": "output",
      "fields": [
        {"name": "id", "type": "long"},
        {"name": "ts", "type": ["null", {"type": "long", "logicalType": "timestamp-micros"}]}
      ]
    }

A union with "null" marks a field nullable. Logical types map onto the
date/time/timestamp/datetime/decimal field types.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Union


class FieldType(str, Enum):
    """Field types of the pipeline schema."""
    BOOLEAN = "boolean"
    INT = "int"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    STRING = "string"
    BYTES = "bytes"
    DECIMAL = "decimal"
    DATE = "date"
    TIME = "time"
    TIMESTAMP = "timestamp"
    DATETIME = "datetime"
    RECORD = "record"
    ARRAY = "array"


PRIMITIVE_TYPES = {
    "boolean": FieldType.BOOLEAN,
    "int": FieldType.INT,
    "long": FieldType.LONG,
    "float": FieldType.FLOAT,
    "double": FieldType.DOUBLE,
    "string": FieldType.STRING,
    "bytes": FieldType.BYTES,
}

LOGICAL_TYPES = {
    "date": FieldType.DATE,
    "time-micros": FieldType.TIME,
    "time-millis": FieldType.TIME,
    "timestamp-micros": FieldType.TIMESTAMP,
    "timestamp-millis": FieldType.TIMESTAMP,
    "datetime": FieldType.DATETIME,
    "decimal": FieldType.DECIMAL,
}

# Physical Avro type written for each logical field type
_LOGICAL_OUTPUT = {
    FieldType.DATE: ("int", "date"),
    FieldType.TIME: ("long", "time-micros"),
    FieldType.TIMESTAMP: ("long", "timestamp-micros"),
    FieldType.DATETIME: ("string", "datetime"),
    FieldType.DECIMAL: ("bytes", "decimal"),
}


@dataclass(frozen=True)
class Field:
    """A named field of a record schema."""
    name: str
    schema: "Schema"


@dataclass(frozen=True)
class Schema:
    """
    A pipeline schema node.

    Attributes:
        type: Field type of this node
        nullable: Whether null is an allowed value
        fields: Record fields (RECORD only)
        component: Element schema (ARRAY only)
        precision: Decimal precision (DECIMAL only)
        scale: Decimal scale (DECIMAL only)
        name: Record name (RECORD only)
    """
    type: FieldType
    nullable: bool = False
    fields: tuple[Field, ...] = field(default_factory=tuple)
    component: Optional["Schema"] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    name: Optional[str] = None

    def __post_init__(self):
        if self.type == FieldType.ARRAY and self.component is None:
            raise ValueError("array schema requires a component schema")
        if self.type == FieldType.DECIMAL and self.precision is None:
            raise ValueError("decimal schema requires a precision")

    # -- factories ---------------------------------------------------------

    @classmethod
    def of(cls, field_type: FieldType) -> "Schema":
        return cls(type=field_type)

    @classmethod
    def decimal_of(cls, precision: int, scale: int = 0) -> "Schema":
        return cls(type=FieldType.DECIMAL, precision=precision, scale=scale)

    @classmethod
    def array_of(cls, component: "Schema") -> "Schema":
        return cls(type=FieldType.ARRAY, component=component)

    @classmethod
    def record_of(cls, name: str, fields: list[Field] | tuple[Field, ...]) -> "Schema":
        names = [f.name for f in fields]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"record '{name}' has duplicate fields: {duplicates}")
        return cls(type=FieldType.RECORD, name=name, fields=tuple(fields))

    @staticmethod
    def nullable_of(schema: "Schema") -> "Schema":
        return replace(schema, nullable=True)

    def non_nullable(self) -> "Schema":
        return replace(self, nullable=False)

    # -- accessors ---------------------------------------------------------

    def get_field(self, name: str) -> Optional[Field]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def display_name(self) -> str:
        """Human-readable type name used in failure messages."""
        if self.type == FieldType.DECIMAL:
            return f"decimal with precision {self.precision} and scale {self.scale}"
        if self.type == FieldType.ARRAY:
            return f"array of {self.component.display_name()}"
        return self.type.value

    # -- JSON --------------------------------------------------------------

    def to_dict(self) -> Union[str, dict[str, Any], list[Any]]:
        """Serialize to the Avro-style JSON structure."""
        if self.type == FieldType.RECORD:
            body: Any = {
                "type": "record",
                "name": self.name or "record",
                "fields": [{"name": f.name, "type": f.schema.to_dict()} for f in self.fields],
            }
        elif self.type == FieldType.ARRAY:
            body = {"type": "array", "items": self.component.to_dict()}
        elif self.type in _LOGICAL_OUTPUT:
            physical, logical = _LOGICAL_OUTPUT[self.type]
            body = {"type": physical, "logicalType": logical}
            if self.type == FieldType.DECIMAL:
                body["precision"] = self.precision
                body["scale"] = self.scale
        else:
            body = self.type.value
        return [body, "null"] if self.nullable else body

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, value: Union[str, dict[str, Any]]) -> "Schema":
        """Parse an Avro-style JSON schema.

        Args:
            value: JSON text or an already decoded dict

        Returns:
            The parsed Schema

        Raises:
            ValueError: If the JSON is malformed or uses unknown types
        """
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid schema JSON: {e}") from e
        return _parse_node(value, path="")


def _parse_node(node: Any, path: str) -> Schema:
    where = f" at '{path}'" if path else ""

    if isinstance(node, list):
        branches = [b for b in node if b != "null"]
        if len(branches) != 1 or len(branches) == len(node):
            raise ValueError(f"Only unions of a single type with 'null' are supported{where}")
        return Schema.nullable_of(_parse_node(branches[0], path))

    if isinstance(node, str):
        if node in PRIMITIVE_TYPES:
            return Schema.of(PRIMITIVE_TYPES[node])
        raise ValueError(f"Unknown type '{node}'{where}")

    if not isinstance(node, dict) or "type" not in node:
        raise ValueError(f"Schema node must be a type name, union or object with 'type'{where}")

    logical = node.get("logicalType")
    if logical is not None:
        if not isinstance(logical, str) or logical not in LOGICAL_TYPES:
            raise ValueError(f"Unknown logical type '{logical}'{where}")
        field_type = LOGICAL_TYPES[logical]
        if field_type == FieldType.DECIMAL:
            if "precision" not in node:
                raise ValueError(f"Decimal requires 'precision'{where}")
            try:
                precision = int(node["precision"])
                scale = int(node.get("scale", 0))
            except (TypeError, ValueError):
                raise ValueError(f"Decimal precision and scale must be integers{where}") from None
            return Schema.decimal_of(precision, scale)
        return Schema.of(field_type)

    kind = node["type"]
    if kind == "record":
        raw_fields = node.get("fields", [])
        if not isinstance(raw_fields, list):
            raise ValueError(f"Record 'fields' must be a list{where}")
        fields = []
        for raw in raw_fields:
            if not isinstance(raw, dict) or "name" not in raw or "type" not in raw:
                raise ValueError(f"Record field must have 'name' and 'type'{where}")
            child_path = f"{path}.{raw['name']}" if path else raw["name"]
            fields.append(Field(raw["name"], _parse_node(raw["type"], child_path)))
        return Schema.record_of(node.get("name", "record"), fields)
    if kind == "array":
        if "items" not in node:
            raise ValueError(f"Array requires 'items'{where}")
        return Schema.array_of(_parse_node(node["items"], path))
    # {"type": "long"} and similar wrapped primitives or unions
    return _parse_node(kind, path)
