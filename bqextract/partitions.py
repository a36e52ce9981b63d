"""Partition window validation for time-partitioned source tables.

Bounds are inclusive calendar dates in yyyy-MM-dd. All checks run in one
pass so a single validation call reports every independent problem.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from bqextract.constants import NAME_PARTITION_FROM, NAME_PARTITION_TO
from bqextract.validation import FailureCollector

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

STANDARD_TABLE_TYPES = (None, "TABLE")


@dataclass(frozen=True)
class PartitionWindow:
    """Raw partition bounds as configured."""
    from_date: Optional[str] = None
    to_date: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.from_date is None and self.to_date is None


def parse_partition_date(value: Any) -> date:
    """Parse a strict yyyy-MM-dd date.

    Raises:
        ValueError: If the value is not a string holding a valid calendar date in that format
    """
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ValueError(f"'{value}' is not in yyyy-MM-dd format")
    return date.fromisoformat(value)


def is_time_partitioned(table: Any) -> bool:
    """Whether partition bounds apply to this table.

    A standard table without time partitioning ignores bounds. Views and
    materialized views carry no partitioning metadata of their own, so
    their bounds are validated.
    """
    if getattr(table, "table_type", None) in STANDARD_TABLE_TYPES:
        return getattr(table, "time_partitioning", None) is not None
    return True


def validate_partition_window(
    table: Any,
    window: PartitionWindow,
    collector: FailureCollector,
) -> tuple[Optional[date], Optional[date]]:
    """Validate partition bounds against the source table.

    Args:
        table: bigquery.Table (or None when the table could not be fetched)
        window: Configured bounds
        collector: Receives one failure per problem

    Returns:
        (from_date, to_date), each None when absent or unparsable
    """
    if table is None or not is_time_partitioned(table) or window.is_empty:
        return None, None

    from_date = None
    if window.from_date is not None:
        try:
            from_date = parse_partition_date(window.from_date)
        except ValueError:
            collector.record(
                "Invalid partition from date format.",
                "Ensure partition from date is of format 'yyyy-MM-dd'.",
                config_property=NAME_PARTITION_FROM,
            )

    to_date = None
    if window.to_date is not None:
        try:
            to_date = parse_partition_date(window.to_date)
        except ValueError:
            collector.record(
                "Invalid partition to date format.",
                "Ensure partition to date is of format 'yyyy-MM-dd'.",
                config_property=NAME_PARTITION_TO,
            )

    if from_date is not None and to_date is not None and from_date > to_date:
        collector.record(
            "'Partition From Date' must be before or equal 'Partition To Date'.",
            config_properties=(NAME_PARTITION_FROM, NAME_PARTITION_TO),
        )

    return from_date, to_date
