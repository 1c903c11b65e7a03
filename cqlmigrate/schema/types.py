# ==============================================
# Schema Types (Data Classes)
# ==============================================
#
# PURPOSE:
#   Data classes that describe a table's shape and the values
#   flowing through one row. Used by every other topic: the
#   introspector produces them, the compliance checker compares
#   them, the serializers encode/decode against them and the
#   storage layer binds positionally in their column order.
#
# ENUMS:
# ------
# - LogicalType(Enum): INT64, INT32, INT16, BOOL, TIMESTAMP, TEXT, OPAQUE
#     The closed set of semantic types the migration understands.
#     Any CQL type outside the named ones is OPAQUE.
#
# CLASSES:
# --------
# - ColumnDescriptor (frozen dataclass)
#     name, logical_type, cql_type (driver type name, e.g. "bigint")
#
# - TableSchema (frozen dataclass)
#     keyspace, table, columns (ordered tuple of ColumnDescriptor)
#     The order is the positional binding order. Never re-sort it.
#
# - FieldValue (frozen dataclass)
#     column_name, logical_type, raw_value
#     Validates raw_value against logical_type at construction.
#
# ==============================================

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple


class LogicalType(Enum):
    """
    Semantic type of a column's values.

    - INT64 / INT32 / INT16: signed integers of that width
    - BOOL: boolean
    - TIMESTAMP: instant, converted to epoch milliseconds in the flat file
    - TEXT: character data, quoted in the flat file
    - OPAQUE: everything else (uuid, blob, decimal, collections, ...)
    """
    INT64 = "int64"
    INT32 = "int32"
    INT16 = "int16"
    BOOL = "bool"
    TIMESTAMP = "timestamp"
    TEXT = "text"
    OPAQUE = "opaque"

    @property
    def is_integer(self) -> bool:
        return self in (LogicalType.INT64, LogicalType.INT32, LogicalType.INT16)

    @classmethod
    def from_cql(cls, cql_type: str) -> "LogicalType":
        """Map a driver type name ("bigint", "varchar", "list<int>", ...) to a LogicalType."""
        return _CQL_TO_LOGICAL.get(normalize_cql_type(cql_type), cls.OPAQUE)


_CQL_TO_LOGICAL: Dict[str, LogicalType] = {
    "bigint": LogicalType.INT64,
    "counter": LogicalType.INT64,
    "int": LogicalType.INT32,
    "smallint": LogicalType.INT16,
    "boolean": LogicalType.BOOL,
    "timestamp": LogicalType.TIMESTAMP,
    "text": LogicalType.TEXT,
    "ascii": LogicalType.TEXT,
}

_DEFAULT_CQL: Dict[LogicalType, str] = {
    LogicalType.INT64: "bigint",
    LogicalType.INT32: "int",
    LogicalType.INT16: "smallint",
    LogicalType.BOOL: "boolean",
    LogicalType.TIMESTAMP: "timestamp",
    LogicalType.TEXT: "text",
    LogicalType.OPAQUE: "blob",
}

_INTEGER_BITS = {
    LogicalType.INT64: 64,
    LogicalType.INT32: 32,
    LogicalType.INT16: 16,
}


def normalize_cql_type(cql_type: str) -> str:
    # varchar is an alias of text in CQL
    name = cql_type.strip().lower()
    return "text" if name == "varchar" else name


def integer_bounds(logical_type: LogicalType) -> Tuple[int, int]:
    bits = _INTEGER_BITS[logical_type]
    return -(1 << (bits - 1)), (1 << (bits - 1)) - 1


@dataclass(frozen=True)
class ColumnDescriptor:
    """
    Name and type of one column, as read from the store.

    cql_type refines logical_type for OPAQUE columns (uuid vs blob vs
    decimal); when omitted it defaults to the canonical CQL type of the
    logical type.
    """
    name: str
    logical_type: LogicalType
    cql_type: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.logical_type, LogicalType):
            raise TypeError(f"Unsupported logical type for column '{self.name}': {self.logical_type!r}")
        cql = self.cql_type or _DEFAULT_CQL[self.logical_type]
        object.__setattr__(self, "cql_type", normalize_cql_type(cql))

    @classmethod
    def from_cql(cls, name: str, cql_type: str) -> "ColumnDescriptor":
        return cls(name=name, logical_type=LogicalType.from_cql(cql_type), cql_type=cql_type)

    @property
    def type_key(self) -> str:
        """Type identity used when comparing two schemas."""
        return self.cql_type


@dataclass(frozen=True)
class TableSchema:
    """Ordered columns of a (keyspace, table) pair."""
    keyspace: str
    table: str
    columns: Tuple[ColumnDescriptor, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "columns", tuple(self.columns))

    def __len__(self) -> int:
        return len(self.columns)

    def __iter__(self) -> Iterator[ColumnDescriptor]:
        return iter(self.columns)

    def __getitem__(self, index: int) -> ColumnDescriptor:
        return self.columns[index]

    @property
    def qualified_name(self) -> str:
        return f"{self.keyspace}.{self.table}"

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def type_map(self) -> Dict[str, str]:
        """name -> type key. A duplicated name is counted once (first occurrence wins)."""
        mapping: Dict[str, str] = {}
        for column in self.columns:
            mapping.setdefault(column.name, column.type_key)
        return mapping

    @classmethod
    def of(cls, keyspace: str, table: str, columns: Sequence[Tuple[str, LogicalType]]) -> "TableSchema":
        """Shorthand: TableSchema.of("ks", "t", [("a", LogicalType.INT64)])."""
        return cls(keyspace, table, tuple(ColumnDescriptor(n, t) for n, t in columns))


@dataclass(frozen=True)
class FieldValue:
    """
    One value of one row, tagged with its logical type.

    Construction rejects values whose Python type does not belong to
    the logical type, so nothing downstream inspects types at runtime.
    None is accepted for every logical type.
    """
    column_name: str
    logical_type: LogicalType
    raw_value: Any

    def __post_init__(self):
        if not isinstance(self.logical_type, LogicalType):
            raise TypeError(f"Unsupported logical type: {self.logical_type!r}")
        value = self.raw_value
        if value is None or self.logical_type is LogicalType.OPAQUE:
            return
        if self.logical_type.is_integer:
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{self.column_name}: expected integer, got {type(value).__name__}")
            low, high = integer_bounds(self.logical_type)
            if not low <= value <= high:
                raise ValueError(f"{self.column_name}: {value} out of range for {self.logical_type.value}")
        elif self.logical_type is LogicalType.BOOL:
            if not isinstance(value, bool):
                raise TypeError(f"{self.column_name}: expected bool, got {type(value).__name__}")
        elif self.logical_type is LogicalType.TIMESTAMP:
            if not isinstance(value, datetime):
                raise TypeError(f"{self.column_name}: expected datetime, got {type(value).__name__}")
        elif self.logical_type is LogicalType.TEXT:
            if not isinstance(value, str):
                raise TypeError(f"{self.column_name}: expected str, got {type(value).__name__}")


# One row as extracted, in source schema order
ExtractedRow = Tuple[FieldValue, ...]

# One line of the flat file, split into fields
SerializedRecord = List[str]
