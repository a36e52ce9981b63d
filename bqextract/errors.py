"""
Error classes for bqextract.

These error types mark the checkpoints of run preparation:
- ValidationError: Batched configuration, resolution and reconciliation failures
- ProvisioningError: A staging resource could not be created (no retry here)
- InvalidTransitionError: The orchestrator was driven out of order

Cleanup never raises; its failures are logged by the cleanup coordinator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from bqextract.schemas.failure import ValidationFailure


class BqExtractError(Exception):
    """Base exception for bqextract."""
    pass


class ValidationError(BqExtractError):
    """
    Terminal validation error carrying every collected failure.

    Raised by FailureCollector.finalize_or_fail() so a user sees every
    problem at once, each with its corrective action and attribution.
    """

    def __init__(self, failures: Iterable["ValidationFailure"]):
        self.failures = tuple(failures)
        lines = []
        for failure in self.failures:
            line = failure.message
            if failure.corrective_action:
                line = f"{line} {failure.corrective_action}"
            lines.append(line)
        count = len(self.failures)
        header = f"Errors were encountered during validation ({count} failure{'s' if count != 1 else ''})."
        super().__init__("\n".join([header] + [f"  - {line}" for line in lines]))


class ProvisioningError(BqExtractError):
    """
    A staging resource could not be provisioned.

    Examples:
    - Bucket creation rejected (name taken, permission denied)
    - Dataset location could not be looked up

    Surfaces as a run failure; not retried at this layer.
    """
    pass


class InvalidTransitionError(BqExtractError):
    """Raised when the orchestrator is asked for a transition its state forbids."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition from '{current}' to '{requested}'")
