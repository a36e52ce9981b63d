"""
bqextract.schemas - Record types for the extraction lifecycle.

TableRef -> StagingPlan -> ReaderConfiguration -> RunContext -> RunOutcome

Lifecycle:
1. ValidationFailure: Collected while checking configuration and schemas
2. StagingPlan: Built once per run, owns the bucket path and temporary table
3. ReaderConfiguration: Key/value bundle handed to the distributed reader
4. RunContext: Immutable result of run preparation
5. RunOutcome: Success flag plus the CleanupReport, produced exactly once
"""

from .failure import ValidationFailure
from .table_ref import TableRef
from .staging_plan import StagingPlan
from .reader_configuration import ReaderConfiguration
from .run import (
    ALLOWED_TRANSITIONS,
    CleanupReport,
    RunContext,
    RunOutcome,
    RunState,
)

__all__ = [
    "ValidationFailure",
    "TableRef",
    "StagingPlan",
    "ReaderConfiguration",
    "ALLOWED_TRANSITIONS",
    "CleanupReport",
    "RunContext",
    "RunOutcome",
    "RunState",
]
