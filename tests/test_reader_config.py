"""Tests for the reader configuration bundle."""

from dataclasses import replace

import pytest

from bqextract import constants as c
from bqextract.reader_config import build_reader_configuration
from bqextract.staging import build_staging_plan


@pytest.fixture
def plan(source_config):
    return build_staging_plan(source_config, "US", run_id="run-1")


class TestBuildReaderConfiguration:
    """Tests for build_reader_configuration."""

    def test_core_properties(self, source_config, plan):
        """Staging layout, input table and temporary table are always present."""
        configuration = build_reader_configuration(source_config, plan)
        assert configuration.input_format == c.PARTITIONED_INPUT_FORMAT
        assert configuration.get(c.FS_DEFAULT_NAME) == "gs://run-1/run-1/"
        assert configuration.get(c.BQ_PROJECT_ID) == "proj"
        assert configuration.get(c.BQ_INPUT_PROJECT_ID) == "proj"
        assert configuration.get(c.BQ_INPUT_DATASET_ID) == "ds"
        assert configuration.get(c.BQ_INPUT_TABLE_ID) == "events"
        assert configuration.get(c.BQ_TEMP_GCS_PATH) == "gs://run-1/run-1/hadoop/input/run-1"
        assert configuration.get(c.CONFIG_RUN_ID) == "run-1"
        assert configuration.get(c.CONFIG_TEMPORARY_TABLE_NAME) == plan.temporary_table_name

    def test_bucket_delete_only_for_created_bucket(self, source_config, plan):
        """The connector may delete only a bucket the run created."""
        assert build_reader_configuration(source_config, plan).get(c.FS_GS_BUCKET_DELETE_ENABLE) == "true"

        shared = replace(source_config, bucket="shared-bucket")
        configuration = build_reader_configuration(shared, build_staging_plan(shared))
        assert c.FS_GS_BUCKET_DELETE_ENABLE not in configuration

    def test_optional_properties_omitted(self, source_config, plan):
        """Unset options are not in the bundle."""
        configuration = build_reader_configuration(source_config, plan)
        for key in (c.CONFIG_PARTITION_FROM_DATE, c.CONFIG_PARTITION_TO_DATE, c.CONFIG_FILTER,
                    c.CONFIG_SERVICE_ACCOUNT, c.CONFIG_CMEK_KEY):
            assert key not in configuration

    def test_optional_properties_included(self, source_config, plan):
        """Partition bounds, filter, credentials and CMEK key are passed through."""
        config = replace(
            source_config,
            partition_from="2024-03-01",
            partition_to="2024-03-10",
            filter="region = 'eu'",
            service_account_type="JSON",
            service_account_json='{"type": "service_account"}',
        )
        configuration = build_reader_configuration(config, plan, cmek_key="key-1")
        assert configuration.get(c.CONFIG_PARTITION_FROM_DATE) == "2024-03-01"
        assert configuration.get(c.CONFIG_PARTITION_TO_DATE) == "2024-03-10"
        assert configuration.get(c.CONFIG_FILTER) == "region = 'eu'"
        assert configuration.get(c.CONFIG_SERVICE_ACCOUNT) == '{"type": "service_account"}'
        assert configuration.get(c.CONFIG_SERVICE_ACCOUNT_IS_FILE) == "false"
        assert configuration.get(c.CONFIG_CMEK_KEY) == "key-1"

    def test_is_read_only(self, source_config, plan):
        """The bundle cannot be modified after construction."""
        configuration = build_reader_configuration(source_config, plan)
        with pytest.raises(TypeError):
            configuration.properties[c.CONFIG_FILTER] = "x"
        assert configuration.to_dict()[c.CONFIG_RUN_ID] == "run-1"
