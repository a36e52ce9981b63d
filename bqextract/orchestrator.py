"""
ExtractionOrchestrator - prepares, hands off and finishes one extraction run.

The orchestrator implements:
- Design-time schema resolution (configure_pipeline), degrading to a
  schema-only answer when the connection cannot be resolved yet
- Run preparation (prepare_run): validation, live schema reconciliation,
  partition window validation, staging plan, bucket provisioning, reader
  configuration, lineage
- Run completion (on_run_finish): cleanup exactly once, success or failure

Execution flow:
1. UNCONFIGURED -> VALIDATING: configuration checks, credentials, live table
2. VALIDATING -> STAGING_PREPARED: staging plan built, bucket ensured
3. STAGING_PREPARED -> READER_CONFIGURED: lineage recorded, reader
   configuration handed to the pipeline's inputs
4. READER_CONFIGURED -> RUNNING: the external reader consumes the staging
5. -> SUCCEEDED | FAILED: cleanup runs once; its errors are only logged

Any failure after a staging plan exists triggers cleanup before the error
propagates, so no exit path leaves staging resources behind.

Usage:
    orchestrator = ExtractionOrchestrator(config, lineage=sink)
    with orchestrator.run(arguments) as run:
        for record in reader(run.reader_configuration):
            ...
    orchestrator.outcome.succeeded
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Protocol

from google.auth.exceptions import GoogleAuthError
from google.cloud.exceptions import GoogleCloudError, NotFound

from bqextract import clients
from bqextract.cleanup import CleanupCoordinator
from bqextract.config import SourceConfig
from bqextract.constants import CMEK_KEY, NAME_DATASET, NAME_ENABLE_QUERYING_VIEWS, NAME_PROJECT
from bqextract.errors import InvalidTransitionError, ProvisioningError
from bqextract.lineage import LineageSink, build_read_event, source_type_label
from bqextract.partitions import is_time_partitioned, validate_partition_window
from bqextract.reader_config import build_reader_configuration
from bqextract.reconcile import fetch_live_fields, reconcile
from bqextract.record_schema import Schema
from bqextract.schemas import (
    ALLOWED_TRANSITIONS,
    ReaderConfiguration,
    RunContext,
    RunOutcome,
    RunState,
    StagingPlan,
    TableRef,
)
from bqextract.staging import build_staging_plan, ensure_bucket
from bqextract.validation import FailureCollector

logger = logging.getLogger(__name__)

VIEW_TYPES = ("VIEW", "MATERIALIZED_VIEW")

Reader = Callable[[ReaderConfiguration], Iterable[Any]]


class InputConfigurer(Protocol):
    """The pipeline's input-configuration mechanism."""

    def set_input(self, reference_name: str, configuration: ReaderConfiguration) -> None:
        ...


@dataclass(frozen=True)
class SchemaResolution:
    """
    Result of design-time schema resolution.

    schema_only is True when BigQuery was not contacted (unresolved macros,
    no credentials, no project); schema is then the pinned schema, if any.
    """
    schema: Optional[Schema]
    schema_only: bool = False


@dataclass(frozen=True)
class ResolvedSource:
    """The live table and the schema reconciled against it."""
    table_ref: TableRef
    table: Any
    schema: Schema
    table_type: Optional[str] = None


@dataclass(frozen=True)
class _Connection:
    project: str
    dataset_project: str
    credentials: Any = None


class ExtractionOrchestrator:
    """
    Orchestrates one staged extraction of a BigQuery table.

    An instance owns exactly one run: its staging plan is never shared and
    its cleanup fires once. Cloud clients are built through the injected
    factories, each called as factory(project, credentials).
    """

    def __init__(
        self,
        config: SourceConfig,
        *,
        bigquery_factory: Callable[..., Any] = clients.get_bigquery,
        storage_factory: Callable[..., Any] = clients.get_storage,
        filesystem_factory: Callable[..., Any] = clients.get_filesystem,
        credentials_loader: Callable[[SourceConfig], Any] = clients.get_credentials,
        lineage: Optional[LineageSink] = None,
        inputs: Optional[InputConfigurer] = None,
        delete_created_bucket: bool = True,
    ):
        self._config = config
        self._bigquery_factory = bigquery_factory
        self._storage_factory = storage_factory
        self._filesystem_factory = filesystem_factory
        self._credentials_loader = credentials_loader
        self._lineage = lineage
        self._inputs = inputs
        self._delete_created_bucket = delete_created_bucket
        self._state = RunState.UNCONFIGURED
        self._run: Optional[RunContext] = None
        self._outcome: Optional[RunOutcome] = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def outcome(self) -> Optional[RunOutcome]:
        return self._outcome

    def _log_extra(self, event: str, run_id: Optional[str] = None) -> dict[str, str]:
        extra = {"event": event, "reference_name": self._config.reference_name}
        run_id = run_id or (self._run.run_id if self._run else None)
        if run_id:
            extra["run_id"] = run_id
        return extra

    def _transition(self, target: RunState) -> None:
        if target not in ALLOWED_TRANSITIONS[self._state]:
            raise InvalidTransitionError(self._state.value, target.value)
        logger.debug(
            f"{self._config.reference_name}: {self._state.value} -> {target.value}",
            extra=self._log_extra("transition"),
        )
        self._state = target

    # =========================================================================
    # DESIGN TIME
    # =========================================================================

    def can_resolve_remotely(self) -> bool:
        """Whether BigQuery can be contacted with the configuration as it stands."""
        config = self._config
        if not config.can_connect():
            return False
        if (config.is_service_account_file_path() and config.service_account is None
                and not clients.default_credentials_available()):
            return False
        if config.try_get_project() is None and not config.dataset_project:
            return False
        return True

    def configure_pipeline(self, collector: Optional[FailureCollector] = None) -> SchemaResolution:
        """Resolve the output schema at pipeline design time.

        Does not change the run state and allocates nothing.

        Raises:
            ValidationError: If configuration or reconciliation fails
        """
        collector = collector or FailureCollector()
        self._config.validate(collector)
        configured = self._config.get_schema(collector)
        collector.finalize_or_fail()

        if not self.can_resolve_remotely():
            logger.info(
                f"{self._config.reference_name}: connection properties unresolved, "
                f"using the configured schema without contacting BigQuery"
            )
            return SchemaResolution(schema=configured, schema_only=True)

        connection = self._connect(collector)
        client = self._bigquery_factory(connection.dataset_project, connection.credentials)
        source = self._resolve_source(client, connection, configured, collector)
        return SchemaResolution(schema=source.schema)

    # =========================================================================
    # RUN PREPARATION
    # =========================================================================

    def prepare_run(
        self,
        arguments: Optional[Mapping[str, str]] = None,
        collector: Optional[FailureCollector] = None,
    ) -> RunContext:
        """Validate, stage and configure the reader for a new run.

        Args:
            arguments: Runtime arguments (gcp.cmek.key.name selects the CMEK key)
            collector: Failure collector (a fresh one by default)

        Returns:
            RunContext for the reading phase and for on_run_finish

        Raises:
            ValidationError: Configuration, resolution or reconciliation failures
            ProvisioningError: The staging bucket could not be created
        """
        arguments = dict(arguments or {})
        collector = collector or FailureCollector()
        config = self._config

        self._transition(RunState.VALIDATING)
        plan: Optional[StagingPlan] = None
        connection: Optional[_Connection] = None
        try:
            config.validate(collector)
            configured = config.get_schema(collector)
            if not config.can_connect():
                collector.record(
                    "Connection properties still contain unresolved macros.",
                    "Provide runtime arguments for every macro used by the source.",
                )
            collector.finalize_or_fail()

            connection = self._connect(collector)
            client = self._bigquery_factory(connection.dataset_project, connection.credentials)
            source = self._resolve_source(client, connection, configured, collector)

            location = None
            if config.bucket is None:
                location = self._dataset_location(client, connection, collector)
            plan = build_staging_plan(config, location)
            cmek_key = arguments.get(CMEK_KEY)
            if plan.bucket_was_created_by_run:
                ensure_bucket(plan, self._storage_factory(connection.project, connection.credentials), cmek_key)
            self._transition(RunState.STAGING_PREPARED)

            reader_configuration = build_reader_configuration(config, plan, cmek_key)
            self._record_lineage(source, plan)
            if self._inputs is not None:
                self._inputs.set_input(config.reference_name, reader_configuration)

            run = RunContext(
                run_id=plan.run_id,
                plan=plan,
                reader_configuration=reader_configuration,
                schema=source.schema,
                source_type=source.table_type,
                project=connection.project,
                credentials=connection.credentials,
            )
            self._transition(RunState.READER_CONFIGURED)
        except BaseException:
            if plan is not None:
                self._finish(plan, False, connection)
            elif not self._state.is_terminal:
                self._transition(RunState.FAILED)
            raise

        self._run = run
        logger.info(
            f"{config.reference_name}: prepared run {run.run_id} "
            f"(staging {plan.staging_object_path}, temporary table {plan.temporary_table.qualified})",
            extra=self._log_extra("prepared", run.run_id),
        )
        return run

    def _connect(self, collector: FailureCollector) -> _Connection:
        config = self._config
        try:
            credentials = self._credentials_loader(config)
        except (OSError, ValueError, GoogleAuthError) as e:
            collector.fail(
                f"Unable to load service account credentials: {e}",
                "Ensure the service account key is valid and readable.",
                config_property=clients.credential_property(config),
            )
        try:
            project = config.get_project()
            dataset_project = config.get_dataset_project()
        except ValueError as e:
            collector.fail(str(e), "Set the project property.", config_property=NAME_PROJECT)
        return _Connection(project=project, dataset_project=dataset_project, credentials=credentials)

    def _resolve_source(
        self,
        client: Any,
        connection: _Connection,
        configured: Optional[Schema],
        collector: FailureCollector,
    ) -> ResolvedSource:
        config = self._config
        table_ref = TableRef(connection.dataset_project, config.dataset, config.table)
        table, live_fields = fetch_live_fields(client, table_ref, collector)
        table_type = getattr(table, "table_type", None)

        if table_type in VIEW_TYPES and not config.enable_querying_views:
            collector.record(
                f"BigQuery {source_type_label(table_type)} '{table_ref}' cannot be read "
                f"while querying views is disabled.",
                "Enable querying views, or read from a table.",
                config_property=NAME_ENABLE_QUERYING_VIEWS,
            )

        window = config.get_partition_window()
        if not window.is_empty and not is_time_partitioned(table):
            logger.warning(
                f"Table '{table_ref}' is not time-partitioned; partition bounds "
                f"from={window.from_date} to={window.to_date} are ignored"
            )
        validate_partition_window(table, window, collector)

        schema = reconcile(live_fields, configured, collector, table_ref)
        return ResolvedSource(table_ref=table_ref, table=table, schema=schema, table_type=table_type)

    def _dataset_location(self, client: Any, connection: _Connection,
                          collector: FailureCollector) -> Optional[str]:
        dataset = self._config.dataset
        try:
            return clients.get_dataset_location(client, connection.dataset_project, dataset)
        except NotFound:
            collector.fail(
                f"Dataset '{connection.dataset_project}:{dataset}' does not exist.",
                "Ensure correct dataset name is provided.",
                config_property=NAME_DATASET,
            )
        except GoogleCloudError as e:
            raise ProvisioningError(
                f"Unable to look up the location of dataset '{connection.dataset_project}:{dataset}': {e}"
            ) from e

    def _record_lineage(self, source: ResolvedSource, plan: StagingPlan) -> None:
        if self._lineage is None:
            return
        event = build_read_event(
            self._config.reference_name,
            source.schema,
            source.table_type,
            self._config.table,
            run_id=plan.run_id,
        )
        if event is not None:
            self._lineage.record_read(event)

    # =========================================================================
    # RUN COMPLETION
    # =========================================================================

    def on_run_finish(self, run: RunContext, succeeded: bool) -> RunOutcome:
        """Finish the run: cleanup exactly once, then record the outcome.

        Cleanup errors are logged and never change `succeeded`. Calling this
        again returns the first outcome without cleaning up twice.
        """
        if self._run is None or run.run_id != self._run.run_id:
            raise ValueError(f"Run {run.run_id} does not belong to this orchestrator")
        connection = _Connection(
            project=run.project,
            dataset_project=run.plan.temporary_table.project,
            credentials=run.credentials,
        )
        return self._finish(run.plan, succeeded, connection)

    def _finish(self, plan: StagingPlan, succeeded: bool,
                connection: Optional[_Connection]) -> RunOutcome:
        if self._outcome is not None:
            logger.debug(
                f"Run {plan.run_id} already finished; skipping cleanup",
                extra=self._log_extra("finish_repeated", plan.run_id),
            )
            return self._outcome

        project = connection.project if connection else None
        credentials = connection.credentials if connection else None
        table_project = plan.temporary_table.project
        coordinator = CleanupCoordinator(
            bigquery_factory=lambda: self._bigquery_factory(table_project, credentials),
            filesystem_factory=lambda: self._filesystem_factory(project, credentials),
            storage_factory=lambda: self._storage_factory(project, credentials),
            delete_created_bucket=self._delete_created_bucket,
        )
        report = coordinator.cleanup(plan)
        self._outcome = RunOutcome(run_id=plan.run_id, succeeded=succeeded, cleanup=report)

        if not self._state.is_terminal:
            self._transition(RunState.SUCCEEDED if succeeded else RunState.FAILED)
        log = logger.info if succeeded else logger.error
        log(
            f"{self._config.reference_name}: run {plan.run_id} {self._outcome.state.value}",
            extra=self._log_extra("finished", plan.run_id),
        )
        return self._outcome

    # =========================================================================
    # CONVENIENCE
    # =========================================================================

    @contextmanager
    def run(self, arguments: Optional[Mapping[str, str]] = None) -> Iterator[RunContext]:
        """Prepare a run and guarantee its cleanup on every exit path.

        The body is the reading phase; leaving it normally marks the run
        succeeded, any exception (cancellation included) marks it failed and
        propagates after cleanup.
        """
        run = self.prepare_run(arguments)
        self._transition(RunState.RUNNING)
        succeeded = False
        try:
            yield run
            succeeded = True
        finally:
            self.on_run_finish(run, succeeded)

    def execute(
        self,
        reader: Reader,
        consumer: Optional[Callable[[Any], None]] = None,
        arguments: Optional[Mapping[str, str]] = None,
    ) -> RunOutcome:
        """Run end to end, feeding each record from the reader to the consumer.

        Raises:
            Exception: Whatever the reader or consumer raised, after cleanup
        """
        records_read = 0
        with self.run(arguments) as run:
            for record in reader(run.reader_configuration):
                if consumer is not None:
                    consumer(record)
                records_read += 1
        self._outcome = replace(self._outcome, records_read=records_read)
        return self._outcome
