"""
Constants shared across bqextract.

Configuration property names (used to attribute validation failures),
runtime argument names, and the keys of the reader configuration bundle.
"""

# Configuration properties
NAME_REFERENCE = "referenceName"
NAME_PROJECT = "project"
NAME_DATASET_PROJECT = "datasetProject"
NAME_DATASET = "dataset"
NAME_TABLE = "table"
NAME_BUCKET = "bucket"
NAME_SCHEMA = "schema"
NAME_PARTITION_FROM = "partitionFrom"
NAME_PARTITION_TO = "partitionTo"
NAME_FILTER = "filter"
NAME_ENABLE_QUERYING_VIEWS = "enableQueryingViews"
NAME_VIEW_MATERIALIZATION_PROJECT = "viewMaterializationProject"
NAME_VIEW_MATERIALIZATION_DATASET = "viewMaterializationDataset"
NAME_SERVICE_ACCOUNT_TYPE = "serviceAccountType"
NAME_SERVICE_ACCOUNT_FILE_PATH = "serviceFilePath"
NAME_SERVICE_ACCOUNT_JSON = "serviceAccountJSON"

# Runtime arguments
CMEK_KEY = "gcp.cmek.key.name"

# Reader configuration: GCS connector
FS_DEFAULT_NAME = "fs.default.name"
FS_GS_IMPL_DISABLE_CACHE = "fs.gs.impl.disable.cache"
FS_GS_METADATA_CACHE_ENABLE = "fs.gs.metadata.cache.enable"
FS_GS_BUCKET_DELETE_ENABLE = "fs.gs.bucket.delete.enable"

# Reader configuration: BigQuery connector
BQ_PROJECT_ID = "mapred.bq.project.id"
BQ_INPUT_PROJECT_ID = "mapred.bq.input.project.id"
BQ_INPUT_DATASET_ID = "mapred.bq.input.dataset.id"
BQ_INPUT_TABLE_ID = "mapred.bq.input.table.id"
BQ_TEMP_GCS_PATH = "mapred.bq.temp.gcs.path"

# Reader configuration: source options
CONFIG_RUN_ID = "bqextract.source.run.id"
CONFIG_SERVICE_ACCOUNT = "bqextract.source.service.account"
CONFIG_SERVICE_ACCOUNT_IS_FILE = "bqextract.source.service.account.is.file"
CONFIG_PARTITION_FROM_DATE = "bqextract.source.partition.from.date"
CONFIG_PARTITION_TO_DATE = "bqextract.source.partition.to.date"
CONFIG_FILTER = "bqextract.source.filter"
CONFIG_VIEW_MATERIALIZATION_PROJECT = "bqextract.source.view.materialization.project"
CONFIG_VIEW_MATERIALIZATION_DATASET = "bqextract.source.view.materialization.dataset"
CONFIG_TEMPORARY_TABLE_PROJECT = "bqextract.source.temporary.table.project"
CONFIG_TEMPORARY_TABLE_DATASET = "bqextract.source.temporary.table.dataset"
CONFIG_TEMPORARY_TABLE_NAME = "bqextract.source.temporary.table.name"
CONFIG_CMEK_KEY = "bqextract.source.cmek.key"

# Reader implementation the bundle is written for
PARTITIONED_INPUT_FORMAT = "bqextract.reader.PartitionedBigQueryInputFormat"
