import pytest
from unittest.mock import MagicMock, patch

from google.cloud import bigquery

from bqextract.config import SourceConfig


@pytest.fixture
def source_config():
    return SourceConfig(
        reference_name="events_source",
        project="proj",
        dataset="ds",
        table="events",
    )


@pytest.fixture
def live_fields():
    return [
        bigquery.SchemaField("id", "INT64", mode="REQUIRED"),
        bigquery.SchemaField("ts", "TIMESTAMP", mode="REQUIRED"),
    ]


def _make_table(fields, table_type="TABLE", time_partitioning=None):
    table = MagicMock(spec=["schema", "table_type", "time_partitioning"])
    table.schema = list(fields)
    table.table_type = table_type
    table.time_partitioning = time_partitioning
    return table


class FakeFileSystem:
    """Stand-in for a gcsfs filesystem holding a set of object paths."""

    def __init__(self, paths=()):
        self.paths = set(paths)
        self.removed = []

    def exists(self, path):
        prefix = path.rstrip("/") + "/"
        return any(p == path or p.startswith(prefix) for p in self.paths)

    def rm(self, path, recursive=False):
        prefix = path.rstrip("/") + "/"
        self.paths = {p for p in self.paths if p != path and not p.startswith(prefix)}
        self.removed.append(path)


@pytest.fixture
def bq_client(live_fields):
    client = MagicMock()
    client.get_table.return_value = _make_table(live_fields)
    client.get_dataset.return_value = MagicMock(location="US")
    return client


@pytest.fixture
def storage_client():
    return MagicMock()


@pytest.fixture
def filesystem():
    return FakeFileSystem()


@pytest.fixture(autouse=True)
def mock_default_credentials(request):
    # Client helper tests exercise the real lookups
    if "test_clients" in request.module.__name__:
        yield
        return

    with patch("bqextract.clients.default_credentials_available", return_value=True), \
            patch("bqextract.clients.detect_project_id", return_value=None):
        yield


@pytest.fixture
def make_table():
    """Factory for bigquery.Table stand-ins: make_table(fields, table_type, time_partitioning)."""
    return _make_table
