# ==============================================
# Tests for Schema Topic
# ==============================================
#
# TEST CASES:
# -----------
#
# class TestLogicalType:
#     CQL names map onto the closed set of logical types
#
# class TestFieldValue:
#     Construction rejects values outside the logical type
#
# class TestTableSchema:
#     Ordering, type maps, duplicate handling
#
# class TestSchemaIntrospector:
#     Column metadata read from a bounded query
#
# class TestComplianceChecker:
#     Count mismatch / type mismatch / compliant
#
# ==============================================

from datetime import datetime

import pytest

from cqlmigrate.errors import ConnectivityError, SchemaError
from cqlmigrate.schema import (
    ColumnDescriptor,
    ComplianceChecker,
    FieldValue,
    LogicalType,
    SchemaIntrospector,
    TableSchema,
    schema_from_result,
)
from cqlmigrate.schema.introspector import cql_type_name

from conftest import FakeConnection, FakeResult


class TestLogicalType:
    @pytest.mark.parametrize("cql_type, expected", [
        ("bigint", LogicalType.INT64),
        ("counter", LogicalType.INT64),
        ("int", LogicalType.INT32),
        ("smallint", LogicalType.INT16),
        ("boolean", LogicalType.BOOL),
        ("timestamp", LogicalType.TIMESTAMP),
        ("text", LogicalType.TEXT),
        ("varchar", LogicalType.TEXT),
        ("ascii", LogicalType.TEXT),
        ("uuid", LogicalType.OPAQUE),
        ("list<int>", LogicalType.OPAQUE),
        ("decimal", LogicalType.OPAQUE),
    ])
    def test_from_cql(self, cql_type, expected):
        assert LogicalType.from_cql(cql_type) is expected

    def test_is_integer(self):
        assert LogicalType.INT16.is_integer
        assert not LogicalType.TIMESTAMP.is_integer
        assert not LogicalType.BOOL.is_integer


class TestFieldValue:
    def test_accepts_matching_values(self):
        FieldValue("a", LogicalType.INT64, 2 ** 63 - 1)
        FieldValue("b", LogicalType.BOOL, False)
        FieldValue("c", LogicalType.TIMESTAMP, datetime(2020, 1, 1))
        FieldValue("d", LogicalType.TEXT, "")
        FieldValue("e", LogicalType.OPAQUE, object())

    def test_none_allowed_for_every_type(self):
        for logical_type in LogicalType:
            assert FieldValue("x", logical_type, None).raw_value is None

    def test_rejects_bool_for_integer(self):
        with pytest.raises(TypeError):
            FieldValue("a", LogicalType.INT32, True)

    def test_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            FieldValue("a", LogicalType.INT16, 32_768)

    def test_rejects_wrong_python_type(self):
        with pytest.raises(TypeError):
            FieldValue("a", LogicalType.TEXT, 5)
        with pytest.raises(TypeError):
            FieldValue("a", LogicalType.TIMESTAMP, 1700000000000)


class TestTableSchema:
    def test_preserves_order(self):
        schema = TableSchema.of("ks", "t", [("b", LogicalType.TEXT), ("a", LogicalType.INT64)])
        assert schema.column_names == ["b", "a"]
        assert schema[1].cql_type == "bigint"
        assert schema.qualified_name == "ks.t"

    def test_varchar_normalized(self):
        assert ColumnDescriptor.from_cql("name", "varchar").cql_type == "text"

    def test_type_map_first_occurrence_wins(self):
        schema = TableSchema("ks", "t", (
            ColumnDescriptor("a", LogicalType.INT64),
            ColumnDescriptor("a", LogicalType.TEXT),
        ))
        assert schema.type_map() == {"a": "bigint"}


class TestSchemaIntrospector:
    def test_get_schema_reads_column_metadata(self, all_types_columns):
        connection = FakeConnection(tables={"ks.events": all_types_columns})
        schema = SchemaIntrospector(connection).get_schema("ks", "events")

        assert connection.queries == [("SELECT * FROM ks.events LIMIT 1", None)]
        assert schema.column_names == [n for n, _ in all_types_columns]
        assert schema[0].logical_type is LogicalType.INT64
        assert schema[5].cql_type == "text"
        assert schema[6].logical_type is LogicalType.OPAQUE

    def test_empty_table_still_has_metadata(self):
        connection = FakeConnection(tables={"ks.empty": [("id", "int")]}, rows={})
        schema = SchemaIntrospector(connection).get_schema("ks", "empty")
        assert len(schema) == 1

    def test_incomplete_metadata_raises(self):
        result = FakeResult([("a", "int")])
        result.column_types = []
        with pytest.raises(ConnectivityError):
            schema_from_result("ks", "t", result)

    def test_cql_type_name_from_driver_type(self):
        class ListType:
            @staticmethod
            def cql_parameterized_type():
                return "list<int>"

        class Int32Type:
            typename = "int"

        assert cql_type_name(ListType) == "list<int>"
        assert cql_type_name(Int32Type) == "int"
        assert cql_type_name("bigint") == "bigint"


class TestComplianceChecker:
    def test_divergent_column_count(self):
        source = TableSchema.of("ks", "a", [("id", LogicalType.INT64), ("name", LogicalType.TEXT)])
        target = TableSchema.of("ks", "b", [("id", LogicalType.INT64), ("name", LogicalType.TEXT),
                                            ("age", LogicalType.INT32)])
        result = ComplianceChecker().check(source, target)
        assert not result.compliant
        assert result.mismatches >= 1
        assert "divergent number of columns" in result.reason

    def test_single_type_mismatch(self):
        source = TableSchema.of("ks", "a", [("id", LogicalType.INT64), ("name", LogicalType.TEXT)])
        target = TableSchema.of("ks", "b", [("id", LogicalType.INT32), ("name", LogicalType.TEXT)])
        result = ComplianceChecker().check(source, target)
        assert not result.compliant
        assert result.mismatches == 1
        assert result.mismatched_columns == ["id"]

    def test_compliant_regardless_of_order(self, caplog):
        source = TableSchema.of("ks", "a", [("id", LogicalType.INT64), ("name", LogicalType.TEXT)])
        target = TableSchema.of("ks", "b", [("name", LogicalType.TEXT), ("id", LogicalType.INT64)])
        with caplog.at_level("INFO"):
            result = ComplianceChecker().check(source, target)
        assert result.compliant
        assert result.mismatches == 0
        assert "Tables are compliant with each other." in caplog.text

    def test_opaque_columns_compared_by_cql_type(self):
        source = TableSchema("ks", "a", (ColumnDescriptor.from_cql("k", "uuid"),))
        target = TableSchema("ks", "b", (ColumnDescriptor.from_cql("k", "timeuuid"),))
        assert not ComplianceChecker().check(source, target).compliant

    def test_raise_for_status(self):
        source = TableSchema.of("ks", "a", [("id", LogicalType.INT64)])
        target = TableSchema.of("ks", "b", [("id", LogicalType.TEXT)])
        result = ComplianceChecker().check(source, target)
        with pytest.raises(SchemaError) as excinfo:
            result.raise_for_status()
        assert excinfo.value.mismatches == 1
