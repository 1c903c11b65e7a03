# ==============================================
# TOPIC 1: SCHEMA
# ==============================================
#
# Everything about a table's shape.
#
# Modules:
# --------
# - types.py         → LogicalType, ColumnDescriptor, TableSchema, FieldValue
# - introspector.py  → Read column descriptors from a cluster
# - compliance.py    → Compare source and target schemas
#
# ==============================================

from .types import LogicalType, ColumnDescriptor, TableSchema, FieldValue
from .introspector import SchemaIntrospector, schema_from_result
from .compliance import ComplianceChecker, ComplianceResult

__all__ = [
    "LogicalType",
    "ColumnDescriptor",
    "TableSchema",
    "FieldValue",
    "SchemaIntrospector",
    "schema_from_result",
    "ComplianceChecker",
    "ComplianceResult",
]
