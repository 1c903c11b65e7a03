# ==============================================
# SchemaIntrospector
# ==============================================
#
# PURPOSE:
#   Fetch the ordered column name / type descriptors of a table.
#
# HOW:
#   Issues a bounded read (SELECT * ... LIMIT 1) and reads the
#   column metadata the driver attaches to every result, even an
#   empty one. The order of that metadata is the order used for
#   positional binding everywhere else.
#
# CLASS: SchemaIntrospector
# -------------------------
#   Stateless apart from the connection it is given. No caching;
#   call it once per schema need.
#
#   - get_schema(keyspace, table) -> TableSchema
#   - schema_from_result(keyspace, table, result) -> TableSchema
#       Build a schema from any result set's column metadata
#       (the extractor uses it on the full-table cursor).
#
# ==============================================

import logging
from typing import Any

from cqlmigrate.errors import ConnectivityError
from cqlmigrate.schema.types import ColumnDescriptor, TableSchema

logger = logging.getLogger(__name__)


def cql_type_name(column_type: Any) -> str:
    """Driver type class (or plain name) -> CQL type name."""
    if isinstance(column_type, str):
        return column_type
    parameterized = getattr(column_type, "cql_parameterized_type", None)
    if callable(parameterized):
        return parameterized()
    return getattr(column_type, "typename", str(column_type))


def schema_from_result(keyspace: str, table: str, result: Any) -> TableSchema:
    names = list(result.column_names or [])
    types = list(result.column_types or [])
    if len(names) != len(types):
        raise ConnectivityError(
            f"Column metadata for {keyspace}.{table} is incomplete "
            f"({len(names)} names, {len(types)} types)"
        )
    columns = tuple(
        ColumnDescriptor.from_cql(name, cql_type_name(column_type))
        for name, column_type in zip(names, types)
    )
    return TableSchema(keyspace=keyspace, table=table, columns=columns)


class SchemaIntrospector:
    def __init__(self, connection):
        self.connection = connection

    def get_schema(self, keyspace: str, table: str) -> TableSchema:
        logger.info("Getting columns info: [table] %s [keyspace] %s", table, keyspace)
        result = self.connection.execute(f"SELECT * FROM {keyspace}.{table} LIMIT 1")
        schema = schema_from_result(keyspace, table, result)
        logger.debug("Introspected %s: %s", schema.qualified_name,
                     ", ".join(f"{c.name}:{c.cql_type}" for c in schema))
        return schema
