"""
StagingPlan schema - the staging resources owned by one extraction run.

A StagingPlan is built once during run preparation, read by the reader
configuration step, and referenced again only by cleanup. Every derived
name embeds the run id so concurrent runs sharing a configuration (for
example a fixed bucket) never collide.
"""

from dataclasses import dataclass
from typing import Any, Optional

from .table_ref import TableRef


@dataclass(frozen=True)
class StagingPlan:
    """
    Staging resources for a single run.

    Attributes:
        run_id: UUID4 string unique to this run
        bucket_name: User-supplied bucket, or run_id when the run creates one
        staging_object_path: gs://<bucket>/<run_id>, everything the run writes
        temporary_gcs_path: Directory the reader exports the table into
        temporary_table: Table the reader materializes before export
        bucket_was_created_by_run: True when no bucket was configured
        dataset_location: Location of the source dataset (bucket placement)
    """
    run_id: str
    bucket_name: str
    staging_object_path: str
    temporary_gcs_path: str
    temporary_table: TableRef
    bucket_was_created_by_run: bool
    dataset_location: Optional[str] = None

    @property
    def temporary_table_name(self) -> str:
        return self.temporary_table.table

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "run_id": self.run_id,
            "bucket_name": self.bucket_name,
            "staging_object_path": self.staging_object_path,
            "temporary_gcs_path": self.temporary_gcs_path,
            "temporary_table": self.temporary_table.qualified,
            "bucket_was_created_by_run": self.bucket_was_created_by_run,
        }
        if self.dataset_location is not None:
            result["dataset_location"] = self.dataset_location
        return result
