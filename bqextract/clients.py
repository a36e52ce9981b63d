"""
Google Cloud client construction and the few SDK calls bqextract relies on.

- Credentials: service account file or JSON, else application default
- BigQuery: table and dataset metadata, temporary table deletion
- Cloud Storage: run-scoped bucket creation and deletion
- GCS filesystem (fsspec/gcsfs): staging path existence and recursive delete

Configuration via environment variables:
- GOOGLE_APPLICATION_CREDENTIALS: Default service account key
- GOOGLE_CLOUD_PROJECT / GCP_PROJECT: Default project id
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

import fsspec
import google.auth
from fsspec.spec import AbstractFileSystem
from google.auth.credentials import Credentials
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import bigquery, storage
from google.cloud.exceptions import GoogleCloudError, NotFound
from google.oauth2 import service_account as sa

from bqextract.constants import NAME_SERVICE_ACCOUNT_FILE_PATH, NAME_SERVICE_ACCOUNT_JSON, NAME_TABLE
from bqextract.schemas import TableRef
from bqextract.validation import FailureCollector

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

# Label marking buckets that bqextract created and may delete
EPHEMERAL_BUCKET_LABEL = "bqextract-ephemeral"
# Objects in a run-created bucket expire after this many days even if cleanup never runs
EPHEMERAL_OBJECT_TTL_DAYS = 7


# =============================================================================
# CREDENTIALS / PROJECT
# =============================================================================


def load_service_account_credentials(value: str, is_file_path: bool) -> Credentials:
    """Load service account credentials from a key file path or key JSON.

    Raises:
        OSError: If the key file cannot be read
        ValueError: If the key contents are not a valid service account key
    """
    if is_file_path:
        return sa.Credentials.from_service_account_file(
            str(Path(value).expanduser()), scopes=[CLOUD_PLATFORM_SCOPE]
        )
    try:
        info = json.loads(value)
    except json.JSONDecodeError as e:
        raise ValueError(f"Service account JSON is not valid JSON: {e}") from e
    return sa.Credentials.from_service_account_info(info, scopes=[CLOUD_PLATFORM_SCOPE])


def get_credentials(config: Any) -> Optional[Credentials]:
    """Credentials for a SourceConfig; None means application default credentials."""
    service_account = config.service_account
    if service_account is None:
        return None
    return load_service_account_credentials(service_account, config.is_service_account_file_path())


def default_credentials_available() -> bool:
    """Whether application default credentials can be found in this environment."""
    try:
        google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
    except DefaultCredentialsError:
        return False
    return True


def detect_project_id() -> Optional[str]:
    """Project id from the environment, then from application default credentials."""
    for var in ("GOOGLE_CLOUD_PROJECT", "GCP_PROJECT"):
        project = os.environ.get(var)
        if project:
            return project
    try:
        _, project = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
    except DefaultCredentialsError:
        return None
    return project or None


def credential_property(config: Any) -> str:
    """The config property a credential loading failure is attributed to."""
    if config.is_service_account_file_path():
        return NAME_SERVICE_ACCOUNT_FILE_PATH
    return NAME_SERVICE_ACCOUNT_JSON


# =============================================================================
# CLIENT FACTORIES
# =============================================================================


def get_bigquery(project: str, credentials: Optional[Credentials] = None) -> bigquery.Client:
    return bigquery.Client(project=project, credentials=credentials)


def get_storage(project: str, credentials: Optional[Credentials] = None) -> storage.Client:
    return storage.Client(project=project, credentials=credentials)


def get_filesystem(project: str, credentials: Optional[Credentials] = None) -> AbstractFileSystem:
    """gcsfs filesystem for gs:// paths (fsspec resolves the 'gs' protocol)."""
    token = credentials if credentials is not None else "google_default"
    return fsspec.filesystem("gs", project=project, token=token)


# =============================================================================
# BIGQUERY
# =============================================================================


def get_bigquery_table(
    client: bigquery.Client,
    table_ref: TableRef,
    collector: FailureCollector,
) -> Optional[bigquery.Table]:
    """Fetch table metadata.

    Returns:
        The table, or None when it does not exist

    Raises:
        ValidationError: If BigQuery rejects the lookup for another reason
    """
    try:
        return client.get_table(table_ref.qualified)
    except NotFound:
        return None
    except GoogleCloudError as e:
        collector.fail(
            f"Unable to get details about the BigQuery table '{table_ref}': {e}",
            "Ensure the credentials have permission to read the table.",
            config_property=NAME_TABLE,
        )


def get_dataset_location(client: bigquery.Client, project: str, dataset: str) -> Optional[str]:
    """Location of a dataset.

    Raises:
        NotFound: If the dataset does not exist
    """
    return client.get_dataset(f"{project}.{dataset}").location


# =============================================================================
# CLOUD STORAGE
# =============================================================================


def create_bucket(
    client: storage.Client,
    name: str,
    location: Optional[str],
    cmek_key: Optional[str] = None,
) -> storage.Bucket:
    """Create a run-scoped bucket, labeled ephemeral with an object TTL."""
    bucket = client.bucket(name)
    bucket.labels = {EPHEMERAL_BUCKET_LABEL: "true"}
    bucket.add_lifecycle_delete_rule(age=EPHEMERAL_OBJECT_TTL_DAYS)
    if cmek_key:
        bucket.default_kms_key_name = cmek_key
    created = client.create_bucket(bucket, location=location)
    logger.info(f"Created bucket '{name}' in location {location or 'default'}")
    return created


def delete_bucket(client: storage.Client, name: str) -> bool:
    """Delete an empty bucket.

    Returns:
        True if deleted, False if it no longer existed
    """
    try:
        client.bucket(name).delete()
    except NotFound:
        return False
    return True
