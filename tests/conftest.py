# ==============================================
# Pytest Configuration and Fixtures
# ==============================================
#
# Shared fakes for all tests. No live cluster is needed: the fakes
# implement the same narrow interface ClusterConnection exposes.
#
# FAKES:
# ------
# - FakeResult        → rows + column_names / column_types metadata
# - FakePrepared      → prepare()d statement; bind() -> FakeBound
# - FakeFuture        → execute_async() handle; add_callbacks()
# - FakeConnection    → execute / prepare / execute_async / pool state
#
# FIXTURES:
# ---------
# - all_types_schema  → one column per logical type (+ a uuid column)
# - sample_rows       → two rows matching all_types_schema
# - app_config        → AppConfig pointing at tmp_path
# ==============================================

import threading
import uuid
from datetime import datetime, timezone

import pytest
from cassandra import WriteTimeout
from cassandra.policies import WriteType

from cqlmigrate.config import AppConfig, ClusterConfig, FlatFileConfig, InsertConfig, TaskToPerform
from cqlmigrate.schema.types import ColumnDescriptor, LogicalType, TableSchema


class FakeResult:
    def __init__(self, columns, rows=()):
        self.column_names = [name for name, _ in columns]
        self.column_types = [cql for _, cql in columns]
        self._rows = list(rows)

    def __iter__(self):
        return iter(self._rows)


class FakeBound:
    def __init__(self, statement, values):
        self.statement = statement
        self.values = values
        self.consistency_level = statement.consistency_level


class FakePrepared:
    def __init__(self, query):
        self.query = query
        self.consistency_level = None

    def bind(self, values):
        return FakeBound(self, list(values))


class FakeFuture:
    """Completes synchronously, or after `delay` seconds on a timer thread."""

    def __init__(self, error=None, delay=None, on_complete=None):
        self.error = error
        self.delay = delay
        self.on_complete = on_complete

    def add_callbacks(self, callback, errback):
        def complete():
            if self.on_complete:
                self.on_complete()
            if self.error is not None:
                errback(self.error)
            else:
                callback([])

        if self.delay is None:
            complete()
        else:
            timer = threading.Timer(self.delay, complete)
            timer.daemon = True
            timer.start()


class FakeConnection:
    """
    Stand-in for ClusterConnection.

    tables: {"ks.table": [(name, cql_type), ...]}
    rows:   {"ks.table": [tuple, ...]}
    failures: callable(request, attempt) -> exception or None
    """

    def __init__(self, tables=None, rows=None, failures=None, delay=None,
                 max_requests=1024, name="fake"):
        self.tables = tables or {}
        self.rows = rows or {}
        self.failures = failures
        self.delay = delay
        self.max_requests = max_requests
        self.name = name
        self.connected = False
        self.disconnected = False
        self.queries = []
        self.prepared = []
        self.executed = []
        self.attempts = {}
        self.events = []
        self._lock = threading.Lock()
        self._in_flight = 0

    def connect(self):
        self.connected = True

    def disconnect(self):
        self.disconnected = True

    def execute(self, query, fetch_size=None):
        self.queries.append((query, fetch_size))
        table = query.split(" FROM ")[1].split()[0]
        columns = self.tables[table]
        if "LIMIT 1" in query:
            return FakeResult(columns, self.rows.get(table, [])[:1])
        return FakeResult(columns, self.rows.get(table, []))

    def prepare(self, query):
        statement = FakePrepared(query)
        self.prepared.append(statement)
        return statement

    def execute_async(self, request):
        with self._lock:
            attempt = self.attempts.get(id(request), 0)
            self.attempts[id(request)] = attempt + 1
            self._in_flight += 1
            self.events.append(("submit", request))
        error = self.failures(request, attempt) if self.failures else None
        if error is None:
            self.executed.append(request)
        return FakeFuture(error=error, delay=self.delay, on_complete=lambda: self._complete(request))

    def _complete(self, request):
        with self._lock:
            self._in_flight -= 1
            self.events.append(("complete", request))

    def in_flight_requests(self):
        return self._in_flight

    def max_requests_per_connection(self):
        return self.max_requests


def write_timeout(message="write timed out"):
    """A server-side write timeout as the driver raises it for a plain INSERT."""
    return WriteTimeout(message, write_type=WriteType.SIMPLE)


class ImmediateScheduler:
    """Runs scheduled retries at once and remembers the requested delays."""

    def __init__(self):
        self.delays = []

    def __call__(self, delay, callback):
        self.delays.append(delay)
        callback()


@pytest.fixture
def all_types_schema():
    return TableSchema("ks", "events", (
        ColumnDescriptor("id", LogicalType.INT64),
        ColumnDescriptor("count32", LogicalType.INT32),
        ColumnDescriptor("count16", LogicalType.INT16),
        ColumnDescriptor("active", LogicalType.BOOL),
        ColumnDescriptor("created_at", LogicalType.TIMESTAMP),
        ColumnDescriptor("comment", LogicalType.TEXT),
        ColumnDescriptor("session", LogicalType.OPAQUE, "uuid"),
    ))


@pytest.fixture
def sample_rows():
    return [
        (9_000_000_000, -2_000_000_000, 32_000, True,
         datetime(2024, 1, 15, 10, 30, 0, 123000),
         'He said "hi", bye', uuid.UUID("473af720-92e2-4c52-9825-db272121d36d")),
        (-1, 0, -32_768, False,
         datetime(1969, 12, 31, 23, 59, 59, 999000, tzinfo=timezone.utc),
         "plain", uuid.UUID("44cf4b1f-cfd4-42c1-a55f-62cf0c37f15b")),
    ]


@pytest.fixture
def all_types_columns():
    return [("id", "bigint"), ("count32", "int"), ("count16", "smallint"),
            ("active", "boolean"), ("created_at", "timestamp"),
            ("comment", "varchar"), ("session", "uuid")]


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        task=TaskToPerform.EXTRACT,
        source=ClusterConfig(keyspace="ks", table="events"),
        target=ClusterConfig(keyspace="ks2", table="events"),
        insert=InsertConfig(batch_size=2, max_requests_per_connection=10),
        flat_file=FlatFileConfig(path=str(tmp_path / "out" / "events.csv")),
    )
