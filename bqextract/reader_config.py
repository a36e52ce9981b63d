"""Reader configuration - the bundle handed to the distributed reader.

Everything the reader needs to export the table into the staging path and
split it: the staging layout, the input table, the temporary table, the
partition bounds, the row filter and the credential reference. Keys are
defined in bqextract.constants.
"""

from __future__ import annotations

from typing import Optional

from bqextract import constants as c
from bqextract.config import SourceConfig
from bqextract.schemas import ReaderConfiguration, StagingPlan


def build_reader_configuration(
    config: SourceConfig,
    plan: StagingPlan,
    cmek_key: Optional[str] = None,
) -> ReaderConfiguration:
    """Build the reader configuration for a prepared run.

    Only properties that are set are included, so the reader can apply its
    own defaults for the rest.
    """
    properties = {
        c.FS_DEFAULT_NAME: f"gs://{plan.bucket_name}/{plan.run_id}/",
        c.FS_GS_IMPL_DISABLE_CACHE: "true",
        c.FS_GS_METADATA_CACHE_ENABLE: "false",
        c.BQ_PROJECT_ID: config.get_project(),
        c.BQ_INPUT_PROJECT_ID: config.get_dataset_project(),
        c.BQ_INPUT_DATASET_ID: config.dataset,
        c.BQ_INPUT_TABLE_ID: config.table,
        c.BQ_TEMP_GCS_PATH: plan.temporary_gcs_path,
        c.CONFIG_RUN_ID: plan.run_id,
        c.CONFIG_TEMPORARY_TABLE_PROJECT: plan.temporary_table.project,
        c.CONFIG_TEMPORARY_TABLE_DATASET: plan.temporary_table.dataset,
        c.CONFIG_TEMPORARY_TABLE_NAME: plan.temporary_table_name,
    }

    # The connector refuses to delete buckets unless told it owns them
    if plan.bucket_was_created_by_run:
        properties[c.FS_GS_BUCKET_DELETE_ENABLE] = "true"

    if config.service_account is not None:
        properties[c.CONFIG_SERVICE_ACCOUNT] = config.service_account
        properties[c.CONFIG_SERVICE_ACCOUNT_IS_FILE] = str(config.is_service_account_file_path()).lower()

    optional = {
        c.CONFIG_PARTITION_FROM_DATE: config.partition_from,
        c.CONFIG_PARTITION_TO_DATE: config.partition_to,
        c.CONFIG_FILTER: config.filter,
        c.CONFIG_VIEW_MATERIALIZATION_PROJECT: config.view_materialization_project,
        c.CONFIG_VIEW_MATERIALIZATION_DATASET: config.view_materialization_dataset,
        c.CONFIG_CMEK_KEY: cmek_key,
    }
    properties.update({key: value for key, value in optional.items() if value is not None})

    return ReaderConfiguration(input_format=c.PARTITIONED_INPUT_FORMAT, properties=properties)
