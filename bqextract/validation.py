"""
FailureCollector - accumulates validation failures with attribution.

Two operations separate "continue collecting" from "stop now":
- record(): append a failure and keep going
- finalize_or_fail(): raise every collected failure as one ValidationError

fail() is the "collect and abort" shortcut used for resolution errors
(missing table, schema-less table) where nothing further can be checked.
"""

from __future__ import annotations

from typing import NoReturn, Optional, Sequence

from bqextract.errors import ValidationError
from bqextract.schemas.failure import ValidationFailure


class FailureCollector:
    """Collects ValidationFailures until an explicit finalize point."""

    def __init__(self) -> None:
        self._failures: list[ValidationFailure] = []

    @property
    def failures(self) -> tuple[ValidationFailure, ...]:
        return tuple(self._failures)

    @property
    def has_failures(self) -> bool:
        return bool(self._failures)

    def record(
        self,
        message: str,
        corrective_action: Optional[str] = None,
        *,
        config_property: Optional[str] = None,
        config_properties: Sequence[str] = (),
        output_schema_field: Optional[str] = None,
    ) -> ValidationFailure:
        """Record a failure and continue.

        Args:
            message: What is wrong
            corrective_action: How the user can fix it
            config_property: Single configuration property to attribute
            config_properties: Several properties sharing the failure
            output_schema_field: Output schema field to attribute

        Returns:
            The recorded ValidationFailure
        """
        properties = tuple(config_properties)
        if config_property is not None:
            properties = (config_property,) + properties
        failure = ValidationFailure(
            message=message,
            corrective_action=corrective_action,
            config_properties=properties,
            output_schema_fields=(output_schema_field,) if output_schema_field else (),
        )
        self._failures.append(failure)
        return failure

    def finalize_or_fail(self) -> None:
        """Raise ValidationError if anything was recorded."""
        if self._failures:
            raise ValidationError(self._failures)

    def fail(
        self,
        message: str,
        corrective_action: Optional[str] = None,
        **attribution,
    ) -> NoReturn:
        """Record a failure and raise immediately with everything collected so far."""
        self.record(message, corrective_action, **attribution)
        raise ValidationError(self._failures)

    def __len__(self) -> int:
        return len(self._failures)

    def __repr__(self) -> str:
        return f"FailureCollector(failures={len(self._failures)})"
