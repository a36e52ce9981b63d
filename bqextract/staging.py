"""Staging plan construction and bucket provisioning.

Every run gets a fresh UUID4 run id. It names the run-created bucket and
prefixes the staging objects and the temporary table, so runs sharing a
configuration never collide.

Layout for bucket B and run id R:
    gs://B/R/                       staging object path (deleted on cleanup)
    gs://B/R/hadoop/input/R         temporary export directory for the reader
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from google.cloud import storage
from google.cloud.exceptions import GoogleCloudError

from bqextract import clients
from bqextract.config import SourceConfig
from bqextract.errors import ProvisioningError
from bqextract.schemas import StagingPlan, TableRef

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    return str(uuid.uuid4())


def temporary_table_name(table: str) -> str:
    """Source table name plus a random suffix, e.g. `_events_3f2a..._...`."""
    return f"_{table}_{str(uuid.uuid4()).replace('-', '_')}"


def staging_root(bucket: str, run_id: str) -> str:
    return f"gs://{bucket}/{run_id}"


def temporary_gcs_path(bucket: str, run_id: str) -> str:
    return f"gs://{bucket}/{run_id}/hadoop/input/{run_id}"


def temporary_table_ref(config: SourceConfig, name: str) -> TableRef:
    """Where the reader materializes the temporary table.

    The view materialization project/dataset when configured, else the
    source table's own project and dataset.
    """
    return TableRef(
        project=config.view_materialization_project or config.get_dataset_project(),
        dataset=config.view_materialization_dataset or config.dataset,
        table=name,
    )


def build_staging_plan(
    config: SourceConfig,
    dataset_location: Optional[str] = None,
    *,
    run_id: Optional[str] = None,
) -> StagingPlan:
    """Build the staging plan for a new run.

    Args:
        config: Source configuration
        dataset_location: Source dataset location, used when a bucket is created
        run_id: Explicit run id (a fresh UUID4 by default)

    Returns:
        StagingPlan; no remote call is made
    """
    run_id = run_id or new_run_id()
    bucket = config.bucket
    created_by_run = bucket is None
    if created_by_run:
        bucket = run_id

    plan = StagingPlan(
        run_id=run_id,
        bucket_name=bucket,
        staging_object_path=staging_root(bucket, run_id),
        temporary_gcs_path=temporary_gcs_path(bucket, run_id),
        temporary_table=temporary_table_ref(config, temporary_table_name(config.table)),
        bucket_was_created_by_run=created_by_run,
        dataset_location=dataset_location,
    )
    logger.debug(f"Built staging plan {plan.to_dict()}")
    return plan


def ensure_bucket(
    plan: StagingPlan,
    storage_client: storage.Client,
    cmek_key: Optional[str] = None,
) -> None:
    """Create the run's bucket when the plan calls for one.

    Raises:
        ProvisioningError: If the bucket cannot be created
    """
    if not plan.bucket_was_created_by_run:
        return
    try:
        clients.create_bucket(storage_client, plan.bucket_name, plan.dataset_location, cmek_key)
    except GoogleCloudError as e:
        raise ProvisioningError(
            f"Failed to create bucket '{plan.bucket_name}' in location "
            f"'{plan.dataset_location}': {e}"
        ) from e
