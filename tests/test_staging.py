"""Tests for staging plan construction and bucket provisioning."""

import re
from dataclasses import replace

import pytest
from google.api_core.exceptions import Conflict

from bqextract.errors import ProvisioningError
from bqextract.staging import build_staging_plan, ensure_bucket, temporary_table_name


UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$")


class TestBuildStagingPlan:
    """Tests for build_staging_plan."""

    def test_scenario_no_bucket_configured(self, source_config):
        """Without a bucket the run creates one named after the run id."""
        plan = build_staging_plan(source_config, "EU")
        assert UUID_RE.match(plan.run_id)
        assert plan.bucket_was_created_by_run
        assert plan.bucket_name == plan.run_id
        assert plan.dataset_location == "EU"

    def test_layout(self, source_config):
        """Staging paths are rooted at gs://<bucket>/<run_id>."""
        config = replace(source_config, bucket="shared-bucket")
        plan = build_staging_plan(config, run_id="r1")
        assert not plan.bucket_was_created_by_run
        assert plan.bucket_name == "shared-bucket"
        assert plan.staging_object_path == "gs://shared-bucket/r1"
        assert plan.temporary_gcs_path == "gs://shared-bucket/r1/hadoop/input/r1"

    def test_temporary_table_in_source_dataset(self, source_config):
        """The temporary table lives next to the source table by default."""
        plan = build_staging_plan(source_config)
        assert plan.temporary_table.project == "proj"
        assert plan.temporary_table.dataset == "ds"
        assert plan.temporary_table_name.startswith("_events_")

    def test_temporary_table_in_materialization_dataset(self, source_config):
        """View materialization settings relocate the temporary table."""
        config = replace(
            source_config,
            view_materialization_project="mat-proj",
            view_materialization_dataset="mat_ds",
        )
        plan = build_staging_plan(config)
        assert plan.temporary_table.qualified.startswith("mat-proj.mat_ds._events_")

    def test_uniqueness(self, source_config):
        """Two runs with identical configuration share no names."""
        config = replace(source_config, bucket="shared-bucket")
        first = build_staging_plan(config)
        second = build_staging_plan(config)
        assert first.run_id != second.run_id
        assert first.staging_object_path != second.staging_object_path
        assert first.temporary_table_name != second.temporary_table_name

    def test_temporary_table_name_is_valid_identifier(self):
        """Dashes of the random suffix are replaced."""
        name = temporary_table_name("events")
        assert re.match(r"^_events_[0-9a-f_]{36}$", name)


class TestEnsureBucket:
    """Tests for ensure_bucket."""

    def test_creates_bucket_in_dataset_location(self, source_config, storage_client):
        """A run-created bucket is created in the source dataset's location."""
        plan = build_staging_plan(source_config, "US")
        ensure_bucket(plan, storage_client)
        storage_client.bucket.assert_called_once_with(plan.run_id)
        bucket = storage_client.bucket.return_value
        storage_client.create_bucket.assert_called_once_with(bucket, location="US")
        assert bucket.labels == {"bqextract-ephemeral": "true"}

    def test_applies_cmek_key(self, source_config, storage_client):
        plan = build_staging_plan(source_config, "US")
        ensure_bucket(plan, storage_client, cmek_key="projects/p/locations/us/keyRings/r/cryptoKeys/k")
        bucket = storage_client.bucket.return_value
        assert bucket.default_kms_key_name == "projects/p/locations/us/keyRings/r/cryptoKeys/k"

    def test_existing_bucket_is_untouched(self, source_config, storage_client):
        """A user-supplied bucket is never created."""
        plan = build_staging_plan(replace(source_config, bucket="shared-bucket"))
        ensure_bucket(plan, storage_client)
        storage_client.create_bucket.assert_not_called()

    def test_creation_failure_raises_provisioning_error(self, source_config, storage_client):
        """Creation failures surface as ProvisioningError."""
        storage_client.create_bucket.side_effect = Conflict("taken")
        plan = build_staging_plan(source_config, "US")
        with pytest.raises(ProvisioningError) as exc_info:
            ensure_bucket(plan, storage_client)
        assert plan.run_id in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, Conflict)
