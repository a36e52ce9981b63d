"""
ReaderConfiguration schema - the key/value bundle handed to the reader.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class ReaderConfiguration:
    """
    Immutable configuration for the external distributed reader.

    Attributes:
        input_format: Name of the reader implementation expected to consume it
        properties: String key/value pairs (read-only view)
    """
    input_format: str
    properties: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        # Read-only copy; the reader sees exactly what was built
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    def get(self, key: str, default=None):
        return self.properties.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self.properties

    def to_dict(self) -> dict[str, str]:
        return dict(self.properties)
