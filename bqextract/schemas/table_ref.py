"""
TableRef - fully resolved BigQuery table identifier.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TableRef:
    """
    A BigQuery table identifier.

    str() renders the legacy "project:dataset.table" form used in user-facing
    messages; `qualified` is the standard SQL form accepted by the client.
    """
    project: str
    dataset: str
    table: str

    def __post_init__(self):
        for name in ("project", "dataset", "table"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ValueError(f"TableRef.{name} must be a non-empty string")

    @property
    def qualified(self) -> str:
        return f"{self.project}.{self.dataset}.{self.table}"

    def __str__(self) -> str:
        return f"{self.project}:{self.dataset}.{self.table}"
