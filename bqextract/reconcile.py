"""
Schema reconciliation between a live BigQuery table and the output schema.

Two entry points:
- fetch_live_fields(): one remote metadata read; missing or schema-less
  tables abort immediately
- reconcile(): pure comparison of live fields against an optional pinned
  schema; every offending field is reported (one failure per field) before
  the collected failures are raised together

Type mapping (BigQuery -> pipeline):
    STRING -> string          BYTES -> bytes
    INTEGER -> long           FLOAT -> double
    NUMERIC -> decimal(38,9)  BIGNUMERIC -> decimal(76,38)
    BOOLEAN -> boolean        DATE -> date
    TIME -> time              TIMESTAMP -> timestamp
    DATETIME -> datetime      GEOGRAPHY, JSON -> string
    RECORD -> record          mode REPEATED -> array of
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from google.cloud import bigquery

from bqextract import clients
from bqextract.constants import NAME_TABLE
from bqextract.record_schema import Field, FieldType, Schema
from bqextract.schemas import TableRef, ValidationFailure
from bqextract.validation import FailureCollector

logger = logging.getLogger(__name__)


# Standard SQL names -> legacy names reported by the table metadata API
TYPE_ALIASES = {
    "INT64": "INTEGER",
    "FLOAT64": "FLOAT",
    "BOOL": "BOOLEAN",
    "STRUCT": "RECORD",
    "DECIMAL": "NUMERIC",
    "BIGDECIMAL": "BIGNUMERIC",
}

TYPE_MAPPING = {
    "STRING": FieldType.STRING,
    "BYTES": FieldType.BYTES,
    "INTEGER": FieldType.LONG,
    "FLOAT": FieldType.DOUBLE,
    "BOOLEAN": FieldType.BOOLEAN,
    "DATE": FieldType.DATE,
    "TIME": FieldType.TIME,
    "TIMESTAMP": FieldType.TIMESTAMP,
    "DATETIME": FieldType.DATETIME,
    "GEOGRAPHY": FieldType.STRING,
    "JSON": FieldType.STRING,
}

# Output types a pinned schema may declare for each BigQuery type
COMPATIBLE_TYPES = {
    "STRING": {FieldType.STRING},
    "BYTES": {FieldType.BYTES},
    "INTEGER": {FieldType.LONG},
    "FLOAT": {FieldType.DOUBLE},
    "NUMERIC": {FieldType.DECIMAL},
    "BIGNUMERIC": {FieldType.DECIMAL},
    "BOOLEAN": {FieldType.BOOLEAN},
    "DATE": {FieldType.DATE},
    "TIME": {FieldType.TIME},
    "TIMESTAMP": {FieldType.TIMESTAMP},
    "DATETIME": {FieldType.DATETIME, FieldType.STRING},
    "GEOGRAPHY": {FieldType.STRING},
    "JSON": {FieldType.STRING},
    "RECORD": {FieldType.RECORD},
}

DEFAULT_DECIMALS = {
    "NUMERIC": (38, 9),
    "BIGNUMERIC": (76, 38),
}

OUTPUT_RECORD_NAME = "output"


def normalize_type(field_type: Optional[str]) -> str:
    name = (field_type or "").upper()
    return TYPE_ALIASES.get(name, name)


def _mode(bq_field: bigquery.SchemaField) -> str:
    return (bq_field.mode or "NULLABLE").upper()


def _decimal_bounds(bq_field: bigquery.SchemaField, bq_type: str) -> tuple[int, int]:
    default_precision, default_scale = DEFAULT_DECIMALS[bq_type]
    precision = getattr(bq_field, "precision", None)
    if precision is None:
        return default_precision, default_scale
    scale = getattr(bq_field, "scale", None)
    return int(precision), int(scale or 0)


# =============================================================================
# LIVE SCHEMA
# =============================================================================


def fetch_live_fields(
    client: bigquery.Client,
    table_ref: TableRef,
    collector: FailureCollector,
) -> tuple[bigquery.Table, list[bigquery.SchemaField]]:
    """Fetch the table and its live schema.

    Raises:
        ValidationError: If the table does not exist or has no schema
    """
    table = clients.get_bigquery_table(client, table_ref, collector)
    if table is None:
        collector.fail(
            f"BigQuery table '{table_ref}' does not exist.",
            "Ensure correct table name is provided.",
            config_property=NAME_TABLE,
        )
    fields = list(table.schema or [])
    if not fields:
        collector.fail(
            f"Cannot read from table '{table_ref}' because it has no schema.",
            "Alter the table to have a schema.",
            config_property=NAME_TABLE,
        )
    logger.debug(f"Fetched {len(fields)} fields for table '{table_ref}'")
    return table, fields


def translate_field(
    bq_field: bigquery.SchemaField,
    collector: FailureCollector,
    output_field: Optional[str] = None,
) -> Optional[Schema]:
    """Translate one BigQuery column to a pipeline schema node.

    Unsupported types are recorded against `output_field` (the top-level
    field name) and yield None.
    """
    output_field = output_field or bq_field.name
    bq_type = normalize_type(bq_field.field_type)

    if bq_type == "RECORD":
        children = []
        for child in bq_field.fields:
            child_schema = translate_field(child, collector, output_field)
            if child_schema is None:
                return None
            children.append(Field(child.name, child_schema))
        base = Schema.record_of(bq_field.name, children)
    elif bq_type in DEFAULT_DECIMALS:
        base = Schema.decimal_of(*_decimal_bounds(bq_field, bq_type))
    elif bq_type in TYPE_MAPPING:
        base = Schema.of(TYPE_MAPPING[bq_type])
    else:
        collector.record(
            f"Field '{bq_field.name}' is of unsupported type '{bq_field.field_type}'.",
            f"Supported types are: {', '.join(sorted(COMPATIBLE_TYPES))}.",
            output_schema_field=output_field,
        )
        return None

    mode = _mode(bq_field)
    if mode == "REPEATED":
        return Schema.array_of(base)
    if mode == "NULLABLE":
        return Schema.nullable_of(base)
    return base


def translate_table_schema(
    fields: Sequence[bigquery.SchemaField],
    collector: FailureCollector,
) -> Schema:
    """Translate a live table schema field-for-field into an output record."""
    translated = []
    for bq_field in fields:
        schema = translate_field(bq_field, collector)
        if schema is not None:
            translated.append(Field(bq_field.name, schema))
    return Schema.record_of(OUTPUT_RECORD_NAME, translated)


# =============================================================================
# COMPATIBILITY
# =============================================================================


def validate_field_matches(
    bq_field: bigquery.SchemaField,
    field: Field,
    table_ref: TableRef,
    collector: FailureCollector,
    path: Optional[str] = None,
    output_field: Optional[str] = None,
) -> Optional[ValidationFailure]:
    """Check that an output schema field can hold a BigQuery column.

    Records at most one failure, attributed to the top-level output field,
    and returns it (None when compatible).
    """
    path = path or field.name
    output_field = output_field or field.name
    out = field.schema
    bq_type = normalize_type(bq_field.field_type)
    mode = _mode(bq_field)

    def mismatch(message: str, action: str) -> ValidationFailure:
        return collector.record(message, action, output_schema_field=output_field)

    if mode == "REPEATED":
        if out.type != FieldType.ARRAY:
            return mismatch(
                f"Field '{path}' is repeated in table '{table_ref}' but is of type "
                f"'{out.display_name()}' in the output schema.",
                f"Change field '{path}' to be an array.",
            )
        out = out.component
    else:
        if out.type == FieldType.ARRAY:
            return mismatch(
                f"Field '{path}' is not repeated in table '{table_ref}' but is an array "
                f"in the output schema.",
                f"Change field '{path}' to not be an array.",
            )
        if mode == "NULLABLE" and not out.nullable:
            return mismatch(
                f"Field '{path}' is nullable in table '{table_ref}' but not in the output schema.",
                f"Mark field '{path}' as nullable.",
            )

    allowed = COMPATIBLE_TYPES.get(bq_type)
    if allowed is None:
        return mismatch(
            f"Field '{path}' is of unsupported type '{bq_field.field_type}' in table '{table_ref}'.",
            f"Remove field '{path}' from the output schema.",
        )
    if out.type not in allowed:
        expected = " or ".join(sorted(t.value for t in allowed))
        return mismatch(
            f"Field '{path}' of type '{out.display_name()}' is incompatible with column "
            f"'{bq_field.name}' of type '{bq_field.field_type}' in table '{table_ref}'.",
            f"Change field '{path}' to be of type {expected}.",
        )

    if out.type == FieldType.DECIMAL:
        precision, scale = _decimal_bounds(bq_field, bq_type)
        if out.scale < scale or (out.precision - out.scale) < (precision - scale):
            return mismatch(
                f"Field '{path}' of type '{out.display_name()}' cannot hold column "
                f"'{bq_field.name}' with precision {precision} and scale {scale}.",
                f"Change field '{path}' to a decimal with precision {precision} and scale {scale}.",
            )

    if out.type == FieldType.RECORD:
        children = {child.name: child for child in bq_field.fields}
        for child in out.fields:
            child_path = f"{path}.{child.name}"
            bq_child = children.get(child.name)
            if bq_child is None:
                return mismatch(
                    f"Field '{child_path}' is not present in table '{table_ref}'.",
                    f"Remove field '{child_path}' from the output schema.",
                )
            failure = validate_field_matches(bq_child, child, table_ref, collector,
                                             path=child_path, output_field=output_field)
            if failure is not None:
                return failure

    return None


def reconcile(
    live_fields: Sequence[bigquery.SchemaField],
    configured_schema: Optional[Schema],
    collector: FailureCollector,
    table_ref: TableRef,
) -> Schema:
    """Reconcile the live table schema with an optional pinned output schema.

    Args:
        live_fields: The table's current schema
        configured_schema: Pinned output schema, or None to use the live schema
        collector: Receives one failure per offending field
        table_ref: Table named in failure messages

    Returns:
        The pinned schema unchanged, or the translated live schema

    Raises:
        ValidationError: If any failure was collected (including earlier ones)
    """
    if configured_schema is None:
        schema = translate_table_schema(live_fields, collector)
        collector.finalize_or_fail()
        return schema

    by_name = {bq_field.name: bq_field for bq_field in live_fields}
    for field in configured_schema.fields:
        bq_field = by_name.get(field.name)
        if bq_field is None:
            collector.record(
                f"Field '{field.name}' is not present in table '{table_ref}'.",
                f"Remove field '{field.name}' from the output schema.",
                output_schema_field=field.name,
            )
            continue
        validate_field_matches(bq_field, field, table_ref, collector)

    collector.finalize_or_fail()
    return configured_schema
