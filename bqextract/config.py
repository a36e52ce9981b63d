"""
Configuration management for bqextract.

SourceConfig is the immutable user intent for one extraction: which table to
read, how to authenticate, an optional pinned output schema, and optional
partition bounds and row filter. load_config() reads it from YAML along with
logging and lineage settings.

Property values may still hold unresolved ${...} macros at pipeline design
time; validation skips those properties and the orchestrator falls back to a
schema-only pass without contacting BigQuery.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from bqextract.constants import (
    NAME_BUCKET,
    NAME_DATASET,
    NAME_DATASET_PROJECT,
    NAME_PROJECT,
    NAME_REFERENCE,
    NAME_SCHEMA,
    NAME_SERVICE_ACCOUNT_FILE_PATH,
    NAME_SERVICE_ACCOUNT_JSON,
    NAME_SERVICE_ACCOUNT_TYPE,
    NAME_TABLE,
)
from bqextract.partitions import PartitionWindow
from bqextract.record_schema import FieldType, Schema
from bqextract.validation import FailureCollector

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration file error."""
    pass


AUTO_DETECT = "auto-detect"
SERVICE_ACCOUNT_FILE_PATH = "filePath"
SERVICE_ACCOUNT_JSON = "JSON"

MACRO_PATTERN = re.compile(r"\$\{[^}]*\}")
REFERENCE_NAME_PATTERN = re.compile(r"^[$.A-Za-z0-9_-]+$")
DATASET_PATTERN = re.compile(r"^[A-Za-z0-9_]{1,1024}$")
BUCKET_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]{1,220}[a-z0-9]$")
MAX_TABLE_NAME_LENGTH = 1024


def _scalar_to_str(value: Any) -> Any:
    """YAML scalars to the strings a property expects; unquoted dates stay ISO text."""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


@dataclass(frozen=True)
class SourceConfig:
    """
    Configuration for reading one BigQuery table.

    Attributes:
        reference_name: Name the pipeline and lineage know this source by
        dataset: Dataset holding the table
        table: Table (or view) to read
        project: Project that runs jobs and is billed; auto-detected when unset
        dataset_project: Project holding the dataset; defaults to `project`
        bucket: Existing GCS bucket for staging; a run-scoped one is created when unset
        schema: Pinned output schema as Avro-style JSON
        partition_from: Inclusive lower partition date, yyyy-MM-dd
        partition_to: Inclusive upper partition date, yyyy-MM-dd
        filter: Row filter (SQL WHERE clause without the keyword)
        enable_querying_views: Allow views and materialized views as sources
        view_materialization_project: Project for materializing views
        view_materialization_dataset: Dataset for materializing views
        service_account_type: "filePath" or "JSON"
        service_file_path: Service account key path, or "auto-detect"
        service_account_json: Service account key contents
    """
    reference_name: str
    dataset: str
    table: str
    project: Optional[str] = None
    dataset_project: Optional[str] = None
    bucket: Optional[str] = None
    schema: Optional[str] = None
    partition_from: Optional[str] = None
    partition_to: Optional[str] = None
    filter: Optional[str] = None
    enable_querying_views: bool = False
    view_materialization_project: Optional[str] = None
    view_materialization_dataset: Optional[str] = None
    service_account_type: str = SERVICE_ACCOUNT_FILE_PATH
    service_file_path: Optional[str] = AUTO_DETECT
    service_account_json: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceConfig":
        """Build from a mapping of snake_case keys (the YAML `source` section)."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown source properties: {unknown}")
        missing = [k for k in ("reference_name", "dataset", "table") if not data.get(k)]
        if missing:
            raise ConfigError(f"Missing required source properties: {missing}")
        values = {k: _scalar_to_str(v) for k, v in data.items()}
        if isinstance(values.get("schema"), (dict, list)):
            values["schema"] = json.dumps(values["schema"])
        return cls(**values)

    # -- macros / connectivity ---------------------------------------------

    @staticmethod
    def contains_macro(value: Optional[str]) -> bool:
        return value is not None and bool(MACRO_PATTERN.search(value))

    def can_connect(self) -> bool:
        """True when every property needed to reach BigQuery is resolved."""
        needed = [
            self.dataset,
            self.table,
            self.project,
            self.dataset_project,
            self.service_account_type,
            self.service_account,
        ]
        return not any(self.contains_macro(v) for v in needed)

    def is_service_account_file_path(self) -> bool:
        return self.service_account_type == SERVICE_ACCOUNT_FILE_PATH

    @property
    def service_account(self) -> Optional[str]:
        """Service account reference, or None to use application default credentials."""
        if self.is_service_account_file_path():
            if self.service_file_path in (None, "", AUTO_DETECT):
                return None
            return self.service_file_path
        return self.service_account_json or None

    def try_get_project(self) -> Optional[str]:
        """Configured project, else the auto-detected one, else None."""
        if self.project and self.project != AUTO_DETECT:
            return self.project
        from bqextract import clients
        return clients.detect_project_id()

    def get_project(self) -> str:
        project = self.try_get_project()
        if not project:
            raise ValueError(
                "Could not detect Google Cloud project id from the environment. "
                "Please specify a project id."
            )
        return project

    def get_dataset_project(self) -> str:
        if self.dataset_project and self.dataset_project != AUTO_DETECT:
            return self.dataset_project
        return self.get_project()

    def get_partition_window(self) -> PartitionWindow:
        return PartitionWindow(from_date=self.partition_from, to_date=self.partition_to)

    # -- validation ----------------------------------------------------------

    def get_schema(self, collector: FailureCollector) -> Optional[Schema]:
        """Parse the pinned output schema, recording a failure if it is invalid."""
        if not self.schema or not self.schema.strip() or self.contains_macro(self.schema):
            return None
        try:
            schema = Schema.from_json(self.schema)
        except ValueError as e:
            collector.record(
                f"Invalid schema: {e}",
                "Ensure the schema is a valid Avro-style record schema.",
                config_property=NAME_SCHEMA,
            )
            return None
        if schema.type != FieldType.RECORD or not schema.fields:
            collector.record(
                "Output schema must be a record with at least one field.",
                "Ensure the schema is a record schema.",
                config_property=NAME_SCHEMA,
            )
            return None
        return schema

    def validate(self, collector: FailureCollector) -> None:
        """Record a failure for every invalid property; macros are skipped."""
        if not self.reference_name or not REFERENCE_NAME_PATTERN.match(self.reference_name):
            collector.record(
                f"Invalid reference name '{self.reference_name}'.",
                "Supported characters are: letters, numbers, and '_', '-', '.', or '$'.",
                config_property=NAME_REFERENCE,
            )

        if not self.contains_macro(self.dataset) and not DATASET_PATTERN.match(self.dataset or ""):
            collector.record(
                f"Dataset name '{self.dataset}' is invalid.",
                "Dataset name can only contain letters (uppercase or lowercase), numbers "
                "and underscores, and must be at most 1024 characters long.",
                config_property=NAME_DATASET,
            )

        if not self.contains_macro(self.table):
            if not self.table or not self.table.strip():
                collector.record("Table name must be specified.", "Provide a table name.",
                                 config_property=NAME_TABLE)
            elif len(self.table) > MAX_TABLE_NAME_LENGTH:
                collector.record(
                    f"Table name '{self.table[:32]}...' is too long.",
                    f"Table name must be at most {MAX_TABLE_NAME_LENGTH} characters long.",
                    config_property=NAME_TABLE,
                )

        if self.bucket and not self.contains_macro(self.bucket) and not BUCKET_PATTERN.match(self.bucket):
            collector.record(
                f"Bucket name '{self.bucket}' is invalid.",
                "Bucket names must be 3-222 characters of lowercase letters, numbers, dashes, "
                "underscores and dots, starting and ending with a letter or number.",
                config_property=NAME_BUCKET,
            )

        for name, value in ((NAME_PROJECT, self.project), (NAME_DATASET_PROJECT, self.dataset_project)):
            if value is not None and not value.strip():
                collector.record(f"Property '{name}' is empty.",
                                 f"Remove '{name}' or set it to a project id.", config_property=name)

        if self.contains_macro(self.service_account_type):
            return
        if self.service_account_type not in (SERVICE_ACCOUNT_FILE_PATH, SERVICE_ACCOUNT_JSON):
            collector.record(
                f"Invalid service account type '{self.service_account_type}'.",
                f"Use '{SERVICE_ACCOUNT_FILE_PATH}' or '{SERVICE_ACCOUNT_JSON}'.",
                config_property=NAME_SERVICE_ACCOUNT_TYPE,
            )
        elif self.is_service_account_file_path():
            path = self.service_account
            if path and not self.contains_macro(path) and not Path(path).expanduser().exists():
                collector.record(
                    f"Service account file '{path}' does not exist.",
                    "Ensure the service account file is available on the local filesystem.",
                    config_property=NAME_SERVICE_ACCOUNT_FILE_PATH,
                )
        elif not self.service_account_json:
            collector.record(
                "Service account JSON must be provided.",
                "Provide the service account key contents, or switch to a file path.",
                config_property=NAME_SERVICE_ACCOUNT_JSON,
            )


@dataclass(frozen=True)
class LoggingSettings:
    """Logging section of the config file."""
    level: str = "INFO"
    format: str = "structured"
    output: Optional[str] = None
    console: bool = True

    def get_log_file_path(self) -> Optional[Path]:
        """Log file path with {date} interpolation, or None for console-only."""
        if not self.output:
            return None
        return Path(self.output.replace("{date}", datetime.now().strftime("%Y-%m-%d"))).expanduser()

    def apply(self) -> logging.Logger:
        from bqextract.utils import setup_logging
        return setup_logging(
            log_file=self.get_log_file_path(),
            log_level=self.level,
            log_format=self.format,
            console_output=self.console,
        )


@dataclass(frozen=True)
class BqExtractConfig:
    """Complete bqextract configuration file."""
    source: SourceConfig
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    lineage_dataset: Optional[str] = None
    lineage_table: str = "lineage_events"


def get_bqextract_home() -> Path:
    """Directory holding config.yaml ($BQEXTRACT_HOME, default ~/.config/bqextract)."""
    home = os.environ.get("BQEXTRACT_HOME")
    if home:
        return Path(home)
    return Path("~/.config/bqextract").expanduser()


def load_config(config_path: Optional[Path] = None) -> BqExtractConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to $BQEXTRACT_HOME/config.yaml

    Returns:
        BqExtractConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigError: If the YAML is invalid or the source section is missing
    """
    if config_path is None:
        config_path = get_bqextract_home() / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"bqextract config.yaml not found at {config_path}")

    try:
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if not raw or not isinstance(raw, dict):
        raise ConfigError("Configuration file is empty")

    env_file = raw.get("env_file")
    if env_file:
        env_path = Path(env_file).expanduser()
        if env_path.exists():
            load_dotenv(env_path)
        else:
            logger.warning(f"env_file not found: {env_path}")

    source = raw.get("source")
    if not isinstance(source, dict):
        raise ConfigError("Configuration must contain a 'source' section")

    logging_section = raw.get("logging") or {}
    lineage_section = raw.get("lineage") or {}

    return BqExtractConfig(
        source=SourceConfig.from_dict(source),
        logging=LoggingSettings(
            level=str(logging_section.get("level", "INFO")).upper(),
            format=logging_section.get("format", "structured"),
            output=logging_section.get("output"),
            console=logging_section.get("console", True),
        ),
        lineage_dataset=lineage_section.get("dataset"),
        lineage_table=lineage_section.get("table", "lineage_events"),
    )
