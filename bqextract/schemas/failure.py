"""
ValidationFailure schema - one attributed problem found during validation.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class ValidationFailure:
    """
    A single validation failure.

    Attributes:
        message: What is wrong
        corrective_action: How to fix it (None when obvious from the message)
        config_properties: Configuration properties the failure is attributed to
        output_schema_fields: Output schema fields the failure is attributed to
    """
    message: str
    corrective_action: Optional[str] = None
    config_properties: tuple[str, ...] = field(default_factory=tuple)
    output_schema_fields: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {"message": self.message}
        if self.corrective_action is not None:
            result["corrective_action"] = self.corrective_action
        if self.config_properties:
            result["config_properties"] = list(self.config_properties)
        if self.output_schema_fields:
            result["output_schema_fields"] = list(self.output_schema_fields)
        return result
