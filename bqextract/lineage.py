"""
Lineage recording for extraction runs.

The orchestrator reports one read event per prepared run, before the reader
configuration is handed off, so lineage reflects intent even when the run
later fails.

Sinks:
- InMemoryLineageSink: keeps events in a list (tests, embedding)
- BigQueryLineageSink: appends one row per event to a lineage table

Usage:
    from google.cloud import bigquery
    from bqextract.lineage import BigQueryLineageSink

    sink = BigQueryLineageSink(bigquery.Client(), dataset="ops")
    orchestrator = ExtractionOrchestrator(config, lineage=sink)
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, runtime_checkable

from google.cloud import bigquery

from bqextract.record_schema import Schema

logger = logging.getLogger(__name__)


SOURCE_TYPE_LABELS = {
    "TABLE": "table",
    "VIEW": "view",
    "MATERIALIZED_VIEW": "materialized view",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def source_type_label(table_type: Optional[str]) -> str:
    """Human-readable label for a BigQuery table type (defaults to "table")."""
    return SOURCE_TYPE_LABELS.get((table_type or "TABLE").upper(), "table")


@dataclass(frozen=True)
class ReadEvent:
    """
    A lineage read event.

    Attributes:
        reference_name: Source reference name in the pipeline
        operation: Operation name ("Read")
        description: e.g. "Read from BigQuery table 'events'."
        fields: Output field names, in schema order
        source_type: "table", "view" or "materialized view"
        run_id: Run that produced the event
        recorded_at: When the event was built
    """
    reference_name: str
    operation: str
    description: str
    fields: tuple[str, ...]
    source_type: str
    run_id: Optional[str] = None
    recorded_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "reference_name": self.reference_name,
            "operation": self.operation,
            "description": self.description,
            "fields": list(self.fields),
            "source_type": self.source_type,
            "recorded_at": self.recorded_at.isoformat(),
        }
        if self.run_id is not None:
            result["run_id"] = self.run_id
        return result


def build_read_event(
    reference_name: str,
    schema: Schema,
    table_type: Optional[str],
    table: str,
    run_id: Optional[str] = None,
) -> Optional[ReadEvent]:
    """Build the read event for a reconciled schema (None if it has no fields)."""
    if not schema.fields:
        return None
    label = source_type_label(table_type)
    return ReadEvent(
        reference_name=reference_name,
        operation="Read",
        description=f"Read from BigQuery {label} '{table}'.",
        fields=tuple(schema.field_names()),
        source_type=label,
        run_id=run_id,
    )


@runtime_checkable
class LineageSink(Protocol):
    """Receives lineage read events."""

    def record_read(self, event: ReadEvent) -> None:
        ...


class InMemoryLineageSink:
    """LineageSink that keeps events in memory."""

    def __init__(self) -> None:
        self.events: list[ReadEvent] = []

    def record_read(self, event: ReadEvent) -> None:
        self.events.append(event)


class BigQueryLineageSink:
    """LineageSink writing one row per event to a BigQuery table.

    Expected table columns: event_id, reference_name, operation,
    description, source_type, fields (JSON string), run_id, created_at.
    """

    def __init__(self, bq_client: bigquery.Client, dataset: str, table: str = "lineage_events"):
        if not dataset:
            raise ValueError("dataset must be a non-empty string")
        self.bq_client = bq_client
        self.dataset = dataset
        self.table = table

    @property
    def table_ref(self) -> str:
        return f"{self.bq_client.project}.{self.dataset}.{self.table}"

    def record_read(self, event: ReadEvent) -> None:
        """
        Append the event to the lineage table.

        Raises:
            RuntimeError: If BigQuery rejects the insert
        """
        row = {
            "event_id": str(uuid.uuid4()),
            "reference_name": event.reference_name,
            "operation": event.operation,
            "description": event.description,
            "source_type": event.source_type,
            "fields": json.dumps(list(event.fields)),
            "created_at": event.recorded_at.isoformat(),
        }
        if event.run_id:
            row["run_id"] = event.run_id

        errors = self.bq_client.insert_rows_json(self.table_ref, [row])
        if errors:
            raise RuntimeError(f"{self.table} insert failed: {errors}")
        logger.debug(f"Recorded lineage read for '{event.reference_name}' ({len(event.fields)} fields)")
