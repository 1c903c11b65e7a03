# ==============================================
# MigrationRunner: Phase Orchestrator
# ==============================================
#
# PURPOSE:
#   Ties the 3 topics together into the three phases a user can
#   select. Users interact with this class only.
#
# HOW IT CONNECTS THE 3 TOPICS:
#
#   EXTRACT
#   ┌──────────────┐   rows (paged)   ┌──────────────┐
#   │ source       │ ───────────────▶ │ RowExtractor │ ──▶ flat file
#   │ cluster      │                  └──────────────┘
#   └──────────────┘
#
#   INSERT
#   flat file ──▶ FlatFileReader ──▶ RecordDeserializer ──▶
#       PreparedInsertStatement.bind ──▶ BulkInserter ──▶ target cluster
#                  (target schema from SchemaIntrospector)
#
#   END_TO_END
#   source ──▶ SchemaIntrospector ──┐
#   target ──▶ SchemaIntrospector ──┴▶ ComplianceChecker (gate)
#   source rows ──▶ bind (native values) ──▶ BulkInserter ──▶ target
#
# CLASS: MigrationRunner
# ----------------------
#   - __init__(config: AppConfig, connection_factory=ClusterConnection)
#   - run(task: TaskToPerform | None = None) -> dict
#   - extract() -> dict
#   - insert() -> dict
#   - end_to_end() -> dict
#
#   Every phase builds its own connections, disposes them in
#   `finally`, logs its elapsed time and returns a result dict with
#   "status": "success" | "non_compliant" | "error". Nothing is
#   checkpointed: a failed phase is re-run from the start.
#
# ==============================================

import logging
import time
from typing import Any, Callable, Dict, Iterator, Optional

from cqlmigrate.config import AppConfig, ClusterConfig, TaskToPerform
from cqlmigrate.errors import AggregateBatchError, MigrationError, SchemaError
from cqlmigrate.schema.compliance import ComplianceChecker
from cqlmigrate.schema.introspector import SchemaIntrospector, schema_from_result
from cqlmigrate.schema.types import TableSchema
from cqlmigrate.serialization.record_deserializer import FlatFileReader, RecordDeserializer
from cqlmigrate.serialization.row_extractor import RowExtractor
from cqlmigrate.storage.binding import PreparedInsertStatement
from cqlmigrate.storage.bulk_inserter import BulkInserter
from cqlmigrate.storage.cluster_client import ClusterConnection
from cqlmigrate.storage.retry_policy import WriteRetryPolicy
from cqlmigrate.storage.throttle import InFlightThrottle, PoolStateThrottle

logger = logging.getLogger(__name__)


class MigrationRunner:
    """
    Runs one migration phase against the configured clusters.

    The configuration is only read, never mutated.
    """

    def __init__(self, config: AppConfig,
                 connection_factory: Callable[..., ClusterConnection] = ClusterConnection):
        self._config = config
        self._connection_factory = connection_factory
        self._extractor = RowExtractor(
            null_sentinel=config.flat_file.null_sentinel,
            quote_all=config.flat_file.quote_all,
        )
        self._checker = ComplianceChecker()

    def run(self, task: Optional[TaskToPerform] = None) -> Dict[str, Any]:
        task = task or self._config.task
        if task is TaskToPerform.EXTRACT:
            result = self.extract()
        elif task is TaskToPerform.INSERT:
            result = self.insert()
        else:
            result = self.end_to_end()
        logger.info("Ending application...")
        return result

    # ------------------------------------------
    # Phases
    # ------------------------------------------

    def extract(self) -> Dict[str, Any]:
        """
        Read every row of the source table into the flat file.

        Returns:
            Result dict with "rows_written" on success.
        """
        logger.info("Starting extraction phase...")
        start_time = time.perf_counter()
        source = self._source_connection()
        try:
            source.connect()
            rows = self._select_all(source, self._config.source)
            schema = schema_from_result(self._config.source.keyspace, self._config.source.table, rows)
            written = self._extractor.write(
                rows, schema, self._config.flat_file.path, self._config.flat_file.encoding
            )
            return self._success("extract", start_time, rows_written=written, file=self._config.flat_file.path)
        except Exception as e:
            return self._failure("extract", start_time, e)
        finally:
            source.disconnect()

    def insert(self) -> Dict[str, Any]:
        """
        Load the flat file into the target table.

        Returns:
            Result dict with the InsertReport fields on success.
        """
        logger.info("Starting insertion phase...")
        start_time = time.perf_counter()
        target = self._target_connection()
        try:
            flat_file = self._config.flat_file
            with FlatFileReader(flat_file.path, flat_file.encoding, flat_file.max_field_size) as reader:
                target.connect()
                schema = SchemaIntrospector(target).get_schema(
                    self._config.target.keyspace, self._config.target.table
                )
                statement = PreparedInsertStatement.prepare(
                    target, schema, self._config.insert.write_consistency
                )
                deserializer = RecordDeserializer(schema, flat_file.null_sentinel)
                deserializer.check_header(reader.header)

                logger.info("Processing records...")
                requests = (
                    statement.bind(deserializer.deserialize(record, line))
                    for line, record in reader
                )
                report = self._build_inserter(target).insert(requests)
            return self._success("insert", start_time, **report.to_dict())
        except Exception as e:
            return self._failure("insert", start_time, e)
        finally:
            target.disconnect()

    def end_to_end(self) -> Dict[str, Any]:
        """
        Copy source rows straight into the target, gated by schema compliance.

        Returns:
            Result dict; "non_compliant" with the mismatch count when the
            schemas disagree.
        """
        logger.info("Starting end-to-end migration...")
        start_time = time.perf_counter()
        source = self._source_connection()
        target = self._target_connection()
        try:
            source.connect()
            target.connect()

            source_schema = SchemaIntrospector(source).get_schema(
                self._config.source.keyspace, self._config.source.table
            )
            target_schema = SchemaIntrospector(target).get_schema(
                self._config.target.keyspace, self._config.target.table
            )
            self._checker.check(source_schema, target_schema).raise_for_status()

            rows = self._select_all(source, self._config.source)
            row_schema = schema_from_result(self._config.source.keyspace, self._config.source.table, rows)
            # Bind in the order the source rows arrive in
            insert_schema = TableSchema(target_schema.keyspace, target_schema.table, row_schema.columns)
            statement = PreparedInsertStatement.prepare(
                target, insert_schema, self._config.insert.write_consistency
            )
            report = self._build_inserter(target).insert(self._bind_rows(statement, rows))
            return self._success("end_to_end", start_time, **report.to_dict())
        except SchemaError as e:
            return self._non_compliant(start_time, e)
        except Exception as e:
            return self._failure("end_to_end", start_time, e)
        finally:
            source.disconnect()
            target.disconnect()

    # ------------------------------------------
    # Helpers
    # ------------------------------------------

    def _source_connection(self) -> ClusterConnection:
        return self._connection_factory(self._config.source, name="source")

    def _target_connection(self) -> ClusterConnection:
        return self._connection_factory(
            self._config.target,
            name="target",
            consistency=self._config.insert.write_consistency,
            surface_timeouts=True,
            max_requests_per_connection=self._config.insert.max_requests_per_connection,
        )

    def _select_all(self, connection: ClusterConnection, cluster: ClusterConfig):
        logger.info("Retrieving rows from table %s...", cluster.qualified_table)
        return connection.execute(f"SELECT * FROM {cluster.qualified_table}", fetch_size=self._config.fetch_size)

    @staticmethod
    def _bind_rows(statement: PreparedInsertStatement, rows) -> Iterator[Any]:
        for row in rows:
            yield statement.bind(list(row))

    def _build_inserter(self, target: ClusterConnection) -> BulkInserter:
        insert_config = self._config.insert
        if insert_config.throttle_mode == "pool":
            throttle = PoolStateThrottle.for_connection(target, insert_config.poll_interval_seconds)
        else:
            throttle = InFlightThrottle(target.max_requests_per_connection())
        return BulkInserter(
            target,
            throttle,
            WriteRetryPolicy.from_config(self._config.retry),
            batch_size=insert_config.batch_size,
        )

    @staticmethod
    def _success(phase: str, start_time: float, **fields) -> Dict[str, Any]:
        elapsed = time.perf_counter() - start_time
        logger.info("✓ %s phase finished in %.2fs", phase, elapsed)
        result = {"phase": phase, "status": "success", "elapsed_seconds": round(elapsed, 3)}
        result.update(fields)
        return result

    @staticmethod
    def _non_compliant(start_time: float, error: SchemaError) -> Dict[str, Any]:
        return {
            "phase": "end_to_end",
            "status": "non_compliant",
            "mismatches": error.mismatches,
            "columns": error.details.get("columns", []),
            "error": error.message,
            "elapsed_seconds": round(time.perf_counter() - start_time, 3),
        }

    @staticmethod
    def _failure(phase: str, start_time: float, error: BaseException) -> Dict[str, Any]:
        elapsed = time.perf_counter() - start_time
        if isinstance(error, AggregateBatchError):
            for inner in error.flatten():
                logger.error("✗ %s phase, batch %s: %s: %s", phase, error.batch_number, type(inner).__name__, inner)
        elif isinstance(error, (MigrationError, OSError)):
            logger.error("✗ %s phase failed: %s: %s", phase, type(error).__name__, error)
        else:
            logger.exception("✗ %s phase failed unexpectedly", phase)
        return {
            "phase": phase,
            "status": "error",
            "error": f"{type(error).__name__}: {error}",
            "elapsed_seconds": round(elapsed, 3),
        }
