# ==============================================
# Tests for MigrationRunner (phases)
# ==============================================
#
# TEST CASES:
# -----------
#
# class TestExtract:
#     source rows -> flat file; connection disposed
#
# class TestInsert:
#     flat file -> typed, bound, written into the target;
#     collections through the file; unsupported column types
#
# class TestEndToEnd:
#     compliance gate; direct copy in source column order
#
# ==============================================

import dataclasses
import uuid

import pytest
from cassandra import ConsistencyLevel, Unavailable
from cassandra.util import OrderedMap, SortedSet

from cqlmigrate.config import TaskToPerform
from cqlmigrate.migration import MigrationRunner

from conftest import FakeConnection


def factory_for(source, target):
    def factory(config, name="source", **kwargs):
        connection = source if name == "source" else target
        connection.config = config
        connection.kwargs = kwargs
        return connection
    return factory


@pytest.fixture
def source(all_types_columns, sample_rows):
    return FakeConnection(tables={"ks.events": all_types_columns},
                          rows={"ks.events": sample_rows}, name="source")


@pytest.fixture
def target(all_types_columns):
    return FakeConnection(tables={"ks2.events": all_types_columns}, name="target")


class TestExtract:
    def test_writes_flat_file(self, app_config, source, target):
        result = MigrationRunner(app_config, factory_for(source, target)).extract()

        assert result["status"] == "success"
        assert result["rows_written"] == 2
        assert source.queries[-1] == ("SELECT * FROM ks.events", app_config.fetch_size)
        assert source.connected and source.disconnected
        with open(app_config.flat_file.path, encoding="utf-8") as fh:
            lines = fh.read().splitlines()
        assert lines[0] == "id,count32,count16,active,created_at,comment,session"
        assert lines[1].startswith("9000000000,-2000000000,32000,True,1705314600123,")

    def test_connect_failure_reported(self, app_config, source, target):
        def broken_connect():
            raise OSError("refused")

        source.connect = broken_connect
        result = MigrationRunner(app_config, factory_for(source, target)).extract()
        assert result["status"] == "error"
        assert "refused" in result["error"]
        assert source.disconnected


class TestInsert:
    def test_loads_file_into_target(self, app_config, source, target, sample_rows):
        runner = MigrationRunner(app_config, factory_for(source, target))
        runner.extract()
        result = runner.insert()

        assert result["status"] == "success"
        assert result["records_submitted"] == 2
        assert result["batch_sizes"] == [2]
        assert target.kwargs["surface_timeouts"] is True
        assert target.kwargs["consistency"] == "LOCAL_ONE"

        first = target.executed[0]
        assert first.values == [9_000_000_000, -2_000_000_000, 32_000, True, 1705314600123,
                                'He said "hi", bye', sample_rows[0][6]]
        assert first.consistency_level == ConsistencyLevel.LOCAL_ONE
        assert target.prepared[0].query.startswith("INSERT INTO ks2.events (id,count32,")
        assert target.disconnected

    def test_missing_file(self, app_config, source, target):
        result = MigrationRunner(app_config, factory_for(source, target)).insert()
        assert result["status"] == "error"
        assert result["error"].startswith("FileNotFoundError")
        assert not target.connected

    def test_parse_error_aborts(self, app_config, source, target, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text(
            "id,count32,count16,active,created_at,comment,session\n"
            "1,2,3,maybe,0,\"x\",473af720-92e2-4c52-9825-db272121d36d\n",
            encoding="utf-8",
        )
        config = dataclasses.replace(
            app_config, flat_file=dataclasses.replace(app_config.flat_file, path=str(path))
        )
        result = MigrationRunner(config, factory_for(source, target)).insert()
        assert result["status"] == "error"
        assert "ParseError" in result["error"]
        assert target.executed == []

    def test_collections_survive_the_flat_file(self, app_config):
        columns = [("id", "int"), ("tags", "set<text>"), ("scores", "frozen<map<text, int>>")]
        source = FakeConnection(tables={"ks.events": columns},
                                rows={"ks.events": [(1, SortedSet(["b", "a"]), OrderedMap([("x", 3)]))]})
        target = FakeConnection(tables={"ks2.events": columns})
        runner = MigrationRunner(app_config, factory_for(source, target))

        assert runner.extract()["status"] == "success"
        assert runner.insert()["status"] == "success"
        assert target.executed[0].values == [1, {"a", "b"}, {"x": 3}]

    def test_extract_rejects_user_defined_type(self, app_config):
        source = FakeConnection(tables={"ks.events": [("id", "int"), ("home", "frozen<address>")]},
                                rows={"ks.events": [(1, ("street", 5))]})
        result = MigrationRunner(app_config, factory_for(source, FakeConnection())).extract()
        assert result["status"] == "error"
        assert result["error"].startswith("SchemaError")
        assert "home" in result["error"]

    def test_pool_throttle_mode(self, app_config, source, target):
        config = dataclasses.replace(
            app_config, insert=dataclasses.replace(app_config.insert, throttle_mode="pool")
        )
        runner = MigrationRunner(config, factory_for(source, target))
        runner.extract()
        assert runner.insert()["records_submitted"] == 2


class TestEndToEnd:
    def test_copies_rows_in_source_order(self, app_config, source, all_types_columns, sample_rows):
        target = FakeConnection(tables={"ks2.events": list(reversed(all_types_columns))})
        result = MigrationRunner(app_config, factory_for(source, target)).end_to_end()

        assert result["status"] == "success"
        assert result["records_submitted"] == 2
        assert target.prepared[0].query == (
            "INSERT INTO ks2.events (id,count32,count16,active,created_at,comment,session) "
            "VALUES (?,?,?,?,?,?,?)"
        )
        assert target.executed[1].values == list(sample_rows[1])
        assert source.disconnected and target.disconnected

    def test_non_compliant_target(self, app_config, source, all_types_columns):
        columns = [(n, "int" if n == "count16" else t) for n, t in all_types_columns]
        target = FakeConnection(tables={"ks2.events": columns})
        result = MigrationRunner(app_config, factory_for(source, target)).end_to_end()

        assert result["status"] == "non_compliant"
        assert result["mismatches"] == 1
        assert result["columns"] == ["count16"]
        assert target.prepared == []
        assert "not compliant" in result["error"]

    def test_unhandled_timeout_is_fatal(self, app_config, source, all_types_columns, caplog):
        target = FakeConnection(tables={"ks2.events": all_types_columns},
                                failures=lambda request, attempt: Unavailable("down"))
        with caplog.at_level("ERROR"):
            result = MigrationRunner(app_config, factory_for(source, target)).end_to_end()

        assert result["status"] == "error"
        assert result["error"].startswith("AggregateBatchError")
        assert "batch 1: UnhandledTimeoutError" in caplog.text
        assert target.disconnected

    def test_run_dispatches_on_task(self, app_config, source, target):
        config = dataclasses.replace(app_config, task=TaskToPerform.END_TO_END)
        result = MigrationRunner(config, factory_for(source, target)).run()
        assert result["phase"] == "end_to_end"
        assert isinstance(target.executed[0].values[6], uuid.UUID)
