"""
bqextract - Staged extraction of BigQuery tables into distributed pipelines

Reconciles the live table schema with the pinned output schema, stages the
table through a run-scoped GCS path and temporary table, and cleans both up
exactly once when the run finishes.
"""

__version__ = "0.1.0"


__all__ = [
    "BqExtractConfig",
    "SourceConfig",
    "load_config",
    "get_bqextract_home",
    "ExtractionOrchestrator",
]

from .config import BqExtractConfig, SourceConfig, load_config, get_bqextract_home
from .orchestrator import ExtractionOrchestrator
