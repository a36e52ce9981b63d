"""
Run schemas - orchestrator states and the records produced per run.

RunState tracks the orchestrator's lifecycle:

    UNCONFIGURED -> VALIDATING -> STAGING_PREPARED -> READER_CONFIGURED
        -> RUNNING -> SUCCEEDED | FAILED

Any non-terminal state may also move straight to FAILED (a failed run may
stop anywhere). RunContext is the immutable output of run preparation;
RunOutcome is the immutable output of run completion.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from bqextract.record_schema import Schema

from .reader_configuration import ReaderConfiguration
from .staging_plan import StagingPlan


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class RunState(str, Enum):
    """Lifecycle state of an extraction run."""
    UNCONFIGURED = "unconfigured"
    VALIDATING = "validating"
    STAGING_PREPARED = "staging_prepared"
    READER_CONFIGURED = "reader_configured"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.SUCCEEDED, RunState.FAILED)


ALLOWED_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.UNCONFIGURED: frozenset({RunState.VALIDATING, RunState.FAILED}),
    RunState.VALIDATING: frozenset({RunState.STAGING_PREPARED, RunState.FAILED}),
    RunState.STAGING_PREPARED: frozenset({RunState.READER_CONFIGURED, RunState.FAILED}),
    RunState.READER_CONFIGURED: frozenset({RunState.RUNNING, RunState.SUCCEEDED, RunState.FAILED}),
    RunState.RUNNING: frozenset({RunState.SUCCEEDED, RunState.FAILED}),
    RunState.SUCCEEDED: frozenset(),
    RunState.FAILED: frozenset(),
}


@dataclass(frozen=True)
class RunContext:
    """
    Everything run preparation resolved, threaded explicitly to later phases.

    Attributes:
        run_id: Same as plan.run_id
        plan: Staging resources owned by the run
        reader_configuration: Bundle handed to the reader
        schema: Reconciled output schema
        source_type: BigQuery table type (TABLE, VIEW, MATERIALIZED_VIEW)
        project: Project billed for the run and owning a run-created bucket
        credentials: Credentials the run was prepared with (None for ADC)
        prepared_at: When preparation completed
    """
    run_id: str
    plan: StagingPlan
    reader_configuration: ReaderConfiguration
    schema: Schema
    source_type: Optional[str] = None
    project: Optional[str] = None
    credentials: Any = field(default=None, repr=False, compare=False)
    prepared_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if self.run_id != self.plan.run_id:
            raise ValueError("RunContext.run_id must match its staging plan")


@dataclass
class CleanupReport:
    """
    What cleanup removed for a run.

    Steps that found nothing to delete are reported as not deleted without
    an error; steps that failed add a message to `errors`.
    """
    run_id: str
    staging_path_deleted: bool = False
    temporary_table_deleted: bool = False
    bucket_deleted: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "run_id": self.run_id,
            "staging_path_deleted": self.staging_path_deleted,
            "temporary_table_deleted": self.temporary_table_deleted,
            "bucket_deleted": self.bucket_deleted,
        }
        if self.errors:
            result["errors"] = self.errors
        return result


@dataclass(frozen=True)
class RunOutcome:
    """
    The final result of a run.

    `succeeded` reflects the run itself; cleanup problems are visible in
    `cleanup.errors` and never flip it.
    """
    run_id: str
    succeeded: bool
    cleanup: CleanupReport
    finished_at: datetime = field(default_factory=_utcnow)
    records_read: Optional[int] = None

    @property
    def state(self) -> RunState:
        return RunState.SUCCEEDED if self.succeeded else RunState.FAILED

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "run_id": self.run_id,
            "status": self.state.value,
            "finished_at": self.finished_at.isoformat(),
            "cleanup": self.cleanup.to_dict(),
        }
        if self.records_read is not None:
            result["records_read"] = self.records_read
        return result
