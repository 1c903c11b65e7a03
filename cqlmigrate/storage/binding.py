# ==============================================
# Binding
# ==============================================
#
# PURPOSE:
#   Build and prepare the parameterized INSERT for a target table,
#   and bind ordered values to it.
#
#   INSERT INTO <keyspace>.<table> (<c1>,...,<cN>) VALUES (?,...,?)
#
#   Placeholders are positional in the schema's column order.
#
# OPAQUE VALUES:
#   The deserializer hands opaque columns over as text. Binding
#   turns that text into the Python value the driver serializes
#   for the column's CQL type (see serialization/cql_values.py):
#   uuid, blob, decimal, date, ... and JSON-encoded collections.
#
#   A value the driver refuses to serialize for its column is
#   reported as a ParseError, like any other unreadable field.
#
# ==============================================

from typing import Any, Optional, Sequence

from cqlmigrate.errors import ParseError, SchemaError
from cqlmigrate.schema.types import LogicalType, TableSchema
from cqlmigrate.serialization.cql_values import from_text
from cqlmigrate.storage.cluster_client import consistency_level


def interpret_opaque(cql_type: str, text: str, column: str = "") -> Any:
    return from_text(text, cql_type, column)


def build_insert_query(schema: TableSchema) -> str:
    names = schema.column_names
    if len(set(names)) != len(names):
        raise SchemaError(f"Duplicate column names in {schema.qualified_name}: {names}")
    columns = ",".join(names)
    placeholders = ",".join("?" for _ in names)
    return f"INSERT INTO {schema.qualified_name} ({columns}) VALUES ({placeholders})"


class PreparedInsertStatement:
    """A prepared INSERT with one positional placeholder per schema column."""

    def __init__(self, statement, schema: TableSchema, query: str):
        self.statement = statement
        self.schema = schema
        self.query = query

    @classmethod
    def prepare(cls, connection, schema: TableSchema,
                consistency: Optional[str] = None) -> "PreparedInsertStatement":
        query = build_insert_query(schema)
        statement = connection.prepare(query)
        level = consistency_level(consistency)
        if level is not None:
            statement.consistency_level = level
        return cls(statement, schema, query)

    def bind(self, values: Sequence[Any]):
        if len(values) != len(self.schema):
            raise ParseError(f"Expected {len(self.schema)} values for {self.schema.qualified_name}, got {len(values)}")
        prepared = []
        for column, value in zip(self.schema, values):
            if column.logical_type is LogicalType.OPAQUE and isinstance(value, str):
                value = interpret_opaque(column.cql_type, value, column.name)
            prepared.append(value)
        try:
            return self.statement.bind(prepared)
        except (TypeError, ValueError) as e:
            raise ParseError(f"Cannot bind values for {self.schema.qualified_name}: {e}") from e
