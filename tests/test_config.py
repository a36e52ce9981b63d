import logging
from dataclasses import replace
from pathlib import Path

import pytest
import yaml
from google.cloud import bigquery

from bqextract.config import (
    BqExtractConfig,
    ConfigError,
    LoggingSettings,
    SourceConfig,
    get_bqextract_home,
    load_config,
)
from bqextract.partitions import validate_partition_window
from bqextract.validation import FailureCollector


def failures_for(config):
    collector = FailureCollector()
    config.validate(collector)
    return collector.failures


def test_get_bqextract_home_default(monkeypatch):
    monkeypatch.delenv("BQEXTRACT_HOME", raising=False)
    assert get_bqextract_home() == Path("~/.config/bqextract").expanduser()


def test_get_bqextract_home_env_var(monkeypatch, tmp_path):
    custom_home = tmp_path / "custom_home"
    monkeypatch.setenv("BQEXTRACT_HOME", str(custom_home))
    assert get_bqextract_home() == custom_home


def test_load_config_missing_file(monkeypatch, tmp_path):
    monkeypatch.setenv("BQEXTRACT_HOME", str(tmp_path))
    with pytest.raises(FileNotFoundError, match="bqextract config.yaml not found"):
        load_config()


def test_load_config_valid(monkeypatch, tmp_path):
    monkeypatch.setenv("BQEXTRACT_HOME", str(tmp_path))
    config_data = {
        "source": {
            "reference_name": "events_source",
            "project": "proj",
            "dataset": "ds",
            "table": "events",
            "partition_from": "2024-03-01",
            "schema": {"type": "record", "name": "output", "fields": [{"name": "id", "type": "long"}]},
        },
        "logging": {"level": "debug", "format": "pretty", "output": "/tmp/bqextract-{date}.log"},
        "lineage": {"dataset": "ops"},
    }
    (tmp_path / "config.yaml").write_text(yaml.dump(config_data))

    cfg = load_config()
    assert isinstance(cfg, BqExtractConfig)
    assert cfg.source.table == "events"
    assert cfg.source.partition_from == "2024-03-01"
    assert cfg.source.get_schema(FailureCollector()).field_names() == ["id"]
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.format == "pretty"
    assert cfg.lineage_dataset == "ops"
    assert cfg.lineage_table == "lineage_events"


def test_load_config_with_env_file(monkeypatch, tmp_path):
    monkeypatch.setenv("BQEXTRACT_HOME", str(tmp_path))
    monkeypatch.delenv("BQEXTRACT_TEST_VAR", raising=False)
    env_file = tmp_path / ".env.test"
    env_file.write_text("BQEXTRACT_TEST_VAR=loaded_from_env")
    config_data = {
        "env_file": str(env_file),
        "source": {"reference_name": "src", "dataset": "ds", "table": "events"},
    }
    (tmp_path / "config.yaml").write_text(yaml.dump(config_data))

    load_config()
    import os
    assert os.environ["BQEXTRACT_TEST_VAR"] == "loaded_from_env"


def test_load_config_missing_env_file_warns(monkeypatch, tmp_path, caplog):
    monkeypatch.setenv("BQEXTRACT_HOME", str(tmp_path))
    config_data = {
        "env_file": str(tmp_path / "missing.env"),
        "source": {"reference_name": "src", "dataset": "ds", "table": "events"},
    }
    (tmp_path / "config.yaml").write_text(yaml.dump(config_data))

    with caplog.at_level(logging.WARNING, logger="bqextract.config"):
        load_config()
    assert "env_file not found" in caplog.text


@pytest.mark.parametrize("content,message", [
    ("source: [unclosed", "Invalid YAML syntax"),
    ("", "empty"),
    ("logging:\n  level: INFO\n", "'source' section"),
])
def test_load_config_invalid(tmp_path, content, message):
    path = tmp_path / "config.yaml"
    path.write_text(content)
    with pytest.raises(ConfigError, match=message):
        load_config(path)


def test_from_dict_rejects_unknown_properties():
    with pytest.raises(ConfigError, match="Unknown source properties"):
        SourceConfig.from_dict({"reference_name": "src", "dataset": "ds", "table": "t", "tabel": "x"})


def test_from_dict_requires_identifiers():
    with pytest.raises(ConfigError, match="Missing required source properties"):
        SourceConfig.from_dict({"reference_name": "src", "dataset": "ds"})


def test_from_dict_stringifies_numbers():
    config = SourceConfig.from_dict({"reference_name": "src", "dataset": "ds", "table": 2024})
    assert config.table == "2024"


class TestValidate:
    """Tests for SourceConfig.validate."""

    def test_valid_config(self, source_config):
        assert failures_for(source_config) == ()

    def test_invalid_names_are_all_reported(self, source_config):
        """Every invalid property is reported, each with its attribution."""
        config = replace(source_config, reference_name="bad name!", dataset="bad-ds", bucket="B")
        properties = [f.config_properties for f in failures_for(config)]
        assert properties == [("referenceName",), ("dataset",), ("bucket",)]

    def test_empty_table(self, source_config):
        failures = failures_for(replace(source_config, table="  "))
        assert failures[0].config_properties == ("table",)

    def test_macros_are_skipped(self, source_config):
        """Properties holding macros are not validated yet."""
        config = replace(source_config, dataset="${dataset}", bucket="${bucket}")
        assert failures_for(config) == ()
        assert not config.can_connect()

    def test_missing_service_account_file(self, source_config, tmp_path):
        config = replace(source_config, service_file_path=str(tmp_path / "missing.json"))
        failures = failures_for(config)
        assert failures[0].config_properties == ("serviceFilePath",)

    def test_json_service_account_required(self, source_config):
        config = replace(source_config, service_account_type="JSON")
        failures = failures_for(config)
        assert failures[0].config_properties == ("serviceAccountJSON",)

    def test_unknown_service_account_type(self, source_config):
        failures = failures_for(replace(source_config, service_account_type="token"))
        assert failures[0].config_properties == ("serviceAccountType",)


class TestSourceConfigAccessors:
    """Tests for project, credential and schema helpers."""

    def test_dataset_project_defaults_to_project(self, source_config):
        assert source_config.get_dataset_project() == "proj"
        assert replace(source_config, dataset_project="other").get_dataset_project() == "other"

    def test_project_required(self, source_config):
        """Without a configured or detectable project, get_project raises."""
        config = replace(source_config, project=None)
        assert config.try_get_project() is None
        with pytest.raises(ValueError, match="Please specify a project id"):
            config.get_project()

    def test_service_account(self, source_config):
        """auto-detect means application default credentials."""
        assert source_config.service_account is None
        assert replace(source_config, service_file_path="/keys/sa.json").service_account == "/keys/sa.json"

    def test_invalid_schema_is_recorded(self, source_config):
        collector = FailureCollector()
        assert replace(source_config, schema="{not json").get_schema(collector) is None
        assert collector.failures[0].config_properties == ("schema",)

    def test_non_record_schema_is_recorded(self, source_config):
        collector = FailureCollector()
        assert replace(source_config, schema='"string"').get_schema(collector) is None
        assert "record" in collector.failures[0].message


class TestLoggingSettings:
    """Tests for LoggingSettings."""

    def test_log_file_date_interpolation(self):
        path = LoggingSettings(output="/tmp/logs/bqextract-{date}.log").get_log_file_path()
        assert path.name.startswith("bqextract-20")
        assert "{date}" not in str(path)

    def test_console_only(self):
        assert LoggingSettings().get_log_file_path() is None


def test_load_config_unquoted_partition_dates(tmp_path, make_table, live_fields):
    """Unquoted YAML dates load as yyyy-MM-dd strings and validate normally."""
    path = tmp_path / "config.yaml"
    path.write_text(
        "source:\n"
        "  reference_name: src\n"
        "  dataset: ds\n"
        "  table: events\n"
        "  partition_from: 2024-03-10\n"
        "  partition_to: 2024-03-01\n"
    )
    source = load_config(path).source
    assert source.partition_from == "2024-03-10"
    assert source.partition_to == "2024-03-01"

    table = make_table(live_fields, time_partitioning=bigquery.TimePartitioning(field="ts"))
    collector = FailureCollector()
    validate_partition_window(table, source.get_partition_window(), collector)
    assert [f.config_properties for f in collector.failures] == [("partitionFrom", "partitionTo")]


def test_schema_with_non_list_fields_is_recorded(source_config):
    """A structurally wrong pinned schema becomes a schema failure, not a crash."""
    collector = FailureCollector()
    config = replace(source_config, schema='{"type": "record", "name": "output", "fields": 5}')
    assert config.get_schema(collector) is None
    assert collector.failures[0].config_properties == ("schema",)
