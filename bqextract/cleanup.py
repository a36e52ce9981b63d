"""Cleanup of staging resources at run completion.

Best-effort and idempotent: each step catches and logs its own failure
(including failure to build a client, e.g. when credentials are no longer
available) and the coordinator never raises. A second cleanup of the same
plan finds nothing left and reports no errors.

Steps, in order:
1. Delete gs://<bucket>/<run_id> recursively, if anything was staged
2. Delete the temporary table (missing table is not an error)
3. Delete the bucket, only if the run created it
"""

from __future__ import annotations

import logging
from typing import Callable

from fsspec.spec import AbstractFileSystem
from google.cloud import bigquery, storage

from bqextract import clients
from bqextract.schemas import CleanupReport, StagingPlan

logger = logging.getLogger(__name__)


class CleanupCoordinator:
    """
    Deletes the staging resources of a StagingPlan.

    Clients are built lazily through the given factories so a failure to
    construct one only affects the steps that need it.

    Usage:
        coordinator = CleanupCoordinator(
            bigquery_factory=lambda: clients.get_bigquery(project),
            filesystem_factory=lambda: clients.get_filesystem(project),
            storage_factory=lambda: clients.get_storage(project),
        )
        report = coordinator.cleanup(plan)
    """

    def __init__(
        self,
        bigquery_factory: Callable[[], bigquery.Client],
        filesystem_factory: Callable[[], AbstractFileSystem],
        storage_factory: Callable[[], storage.Client],
        delete_created_bucket: bool = True,
    ):
        self._bigquery_factory = bigquery_factory
        self._filesystem_factory = filesystem_factory
        self._storage_factory = storage_factory
        self._delete_created_bucket = delete_created_bucket

    def cleanup(self, plan: StagingPlan) -> CleanupReport:
        """Delete everything the plan staged. Never raises."""
        report = CleanupReport(run_id=plan.run_id)
        self._delete_staging_path(plan, report)
        self._delete_temporary_table(plan, report)
        if plan.bucket_was_created_by_run and self._delete_created_bucket:
            self._delete_bucket(plan, report)
        if report.clean:
            logger.info(f"Cleaned up staging resources for run {plan.run_id}")
        else:
            logger.warning(f"Cleanup for run {plan.run_id} finished with {len(report.errors)} error(s)")
        return report

    def _delete_staging_path(self, plan: StagingPlan, report: CleanupReport) -> None:
        path = plan.staging_object_path
        try:
            fs = self._filesystem_factory()
            if fs.exists(path):
                fs.rm(path, recursive=True)
                report.staging_path_deleted = True
                logger.debug(f"Deleted temporary directory '{path}'")
        except Exception as e:
            report.errors.append(f"staging path {path}: {e}")
            logger.warning(f"Failed to delete temporary directory '{path}': {e}")

    def _delete_temporary_table(self, plan: StagingPlan, report: CleanupReport) -> None:
        table = plan.temporary_table.qualified
        try:
            client = self._bigquery_factory()
            client.delete_table(table, not_found_ok=True)
            report.temporary_table_deleted = True
            logger.debug(f"Deleted temporary table '{table}'")
        except Exception as e:
            report.errors.append(f"temporary table {table}: {e}")
            logger.error(f"Failed to delete temporary table '{table}': {e}", exc_info=True)

    def _delete_bucket(self, plan: StagingPlan, report: CleanupReport) -> None:
        bucket = plan.bucket_name
        try:
            report.bucket_deleted = clients.delete_bucket(self._storage_factory(), bucket)
            if report.bucket_deleted:
                logger.debug(f"Deleted bucket '{bucket}'")
        except Exception as e:
            report.errors.append(f"bucket {bucket}: {e}")
            logger.warning(f"Failed to delete bucket '{bucket}': {e}")
