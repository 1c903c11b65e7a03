# ==============================================
# CQL Values
# ==============================================
#
# PURPOSE:
#   Text forms of values whose column type the flat file has no
#   logical type for (uuid, blob, decimal, collections, ...), and
#   the way back from that text to what the driver binds.
#
# SCALARS:
#   Written with str() (bytes as 0x<hex>) and parsed back by CQL type:
#     uuid / timeuuid  → uuid.UUID
#     float / double   → float
#     decimal          → Decimal
#     varint / tinyint → int
#     blob             → bytes (from the 0x<hex> form)
#     date / time      → cassandra.util.Date / Time
#     inet             → text, bound as is
#
# COLLECTIONS:
#   list / set / map / tuple (frozen or not, nested) are written as
#   one JSON document:
#     list, set, tuple → JSON array
#     map              → JSON array of [key, value] pairs
#   Elements use their scalar text form, except numbers and booleans
#   which stay JSON numbers / booleans and timestamps which become
#   epoch milliseconds.
#
# UNSUPPORTED:
#   User-defined types, duration, vector and custom types have no
#   text form here. check_supported() raises SchemaError for them.
#
# ==============================================

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Any, Callable, Dict, List, Tuple

from cassandra.util import Date, OrderedMap, SortedSet, Time

from cqlmigrate.errors import ParseError, SchemaError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def epoch_millis(value: datetime) -> int:
    """Milliseconds since the Unix epoch. Naive datetimes are taken as UTC (the driver returns them so)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // _ONE_MS


def _parse_blob(text: str) -> bytes:
    if not text.lower().startswith("0x"):
        raise ValueError("blob text must start with 0x")
    return bytes.fromhex(text[2:])


def _parse_decimal(text: str) -> Decimal:
    try:
        return Decimal(text)
    except InvalidOperation:
        raise ValueError(f"invalid decimal {text!r}")


_SCALAR_PARSERS: Dict[str, Callable[[str], Any]] = {
    "uuid": uuid.UUID,
    "timeuuid": uuid.UUID,
    "float": float,
    "double": float,
    "decimal": _parse_decimal,
    "varint": int,
    "tinyint": int,
    "blob": _parse_blob,
    "date": Date,
    "time": Time,
}

_PLAIN_SCALARS = {
    "text", "ascii", "varchar", "bigint", "counter", "int", "smallint",
    "boolean", "timestamp", "inet",
}

_COLLECTION_ARITY = {"list": 1, "set": 1, "map": 2}


@dataclass(frozen=True)
class CqlType:
    """A parsed CQL type: its name and, for collections, its element types."""
    name: str
    params: Tuple["CqlType", ...] = ()

    @property
    def is_collection(self) -> bool:
        return self.name in _COLLECTION_ARITY or self.name == "tuple"

    def __str__(self) -> str:
        if not self.params:
            return self.name
        return f"{self.name}<{', '.join(str(p) for p in self.params)}>"


def _split_params(text: str) -> List[str]:
    parts, depth, start = [], 0, 0
    for i, char in enumerate(text):
        if char == "<":
            depth += 1
        elif char == ">":
            depth -= 1
        elif char == "," and depth == 0:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return [p.strip() for p in parts]


@lru_cache(maxsize=256)
def parse_cql_type(text: str) -> CqlType:
    """
    Parse a driver type name ("frozen<map<text, list<int>>>") into a CqlType.

    frozen<> is dropped; it changes storage, not values.
    """
    text = text.strip()
    opening = text.find("<")
    if opening < 0 or text.startswith("'"):
        name = text.lower()
        return CqlType("text" if name == "varchar" else name)
    if not text.endswith(">"):
        raise ValueError(f"unbalanced type {text!r}")
    name = text[:opening].strip().lower()
    params = tuple(parse_cql_type(p) for p in _split_params(text[opening + 1:-1]))
    if name == "frozen":
        if len(params) != 1:
            raise ValueError(f"frozen takes one type, got {text!r}")
        return params[0]
    return CqlType(name, params)


def _is_supported(cql_type: CqlType) -> bool:
    if cql_type.name in _COLLECTION_ARITY:
        if len(cql_type.params) != _COLLECTION_ARITY[cql_type.name]:
            return False
        return all(_is_supported(p) for p in cql_type.params)
    if cql_type.name == "tuple":
        return bool(cql_type.params) and all(_is_supported(p) for p in cql_type.params)
    if cql_type.params:
        return False
    return cql_type.name in _PLAIN_SCALARS or cql_type.name in _SCALAR_PARSERS


def check_supported(cql_type: str, column: str = "") -> CqlType:
    try:
        parsed = parse_cql_type(cql_type)
    except ValueError as e:
        raise SchemaError(f"Column '{column}': cannot read type {cql_type!r}: {e}",
                          details={"column": column, "cql_type": cql_type}) from e
    if not _is_supported(parsed):
        raise SchemaError(
            f"Column '{column}' has type {cql_type}, which cannot be written to a flat file",
            details={"column": column, "cql_type": cql_type},
        )
    return parsed


# ------------------------------------------
# Values -> text
# ------------------------------------------

def _to_json(value: Any, cql_type: CqlType) -> Any:
    if value is None:
        return None
    if cql_type.name in ("list", "set"):
        return [_to_json(v, cql_type.params[0]) for v in value]
    if cql_type.name == "map":
        key_type, value_type = cql_type.params
        return [[_to_json(k, key_type), _to_json(v, value_type)] for k, v in value.items()]
    if cql_type.name == "tuple":
        return [_to_json(v, t) for v, t in zip(value, cql_type.params)]
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, datetime):
        return epoch_millis(value)
    if isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def to_text(value: Any, cql_type: str) -> str:
    """Flat-file text of one non-null opaque value."""
    parsed = parse_cql_type(cql_type)
    if parsed.is_collection:
        return json.dumps(_to_json(value, parsed), ensure_ascii=False)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


# ------------------------------------------
# Text -> values
# ------------------------------------------

def _from_json(data: Any, cql_type: CqlType) -> Any:
    if data is None:
        return None
    name = cql_type.name
    if name in ("list", "set", "map", "tuple") and not isinstance(data, list):
        raise ValueError(f"expected a JSON array for {cql_type}, got {type(data).__name__}")
    if name == "list":
        return [_from_json(v, cql_type.params[0]) for v in data]
    if name == "set":
        return SortedSet(_from_json(v, cql_type.params[0]) for v in data)
    if name == "map":
        key_type, value_type = cql_type.params
        pairs = []
        for pair in data:
            if not isinstance(pair, list) or len(pair) != 2:
                raise ValueError(f"map entry {pair!r} is not a [key, value] pair")
            pairs.append((_from_json(pair[0], key_type), _from_json(pair[1], value_type)))
        return OrderedMap(pairs)
    if name == "tuple":
        if len(data) != len(cql_type.params):
            raise ValueError(f"tuple has {len(data)} elements, {cql_type} expects {len(cql_type.params)}")
        return tuple(_from_json(v, t) for v, t in zip(data, cql_type.params))
    parser = _SCALAR_PARSERS.get(name)
    if parser is not None and isinstance(data, str):
        return parser(data)
    return data


def from_text(text: str, cql_type: str, column: str = "") -> Any:
    """
    Value the driver binds for the flat-file text of an opaque column.

    Raises:
        ParseError: If the text does not read as the column's type.
    """
    try:
        parsed = parse_cql_type(cql_type)
        if parsed.is_collection:
            return _from_json(json.loads(text), parsed)
        parser = _SCALAR_PARSERS.get(parsed.name)
        return parser(text) if parser is not None else text
    except (ValueError, TypeError) as e:
        raise ParseError(f"Column '{column}': cannot read {text!r} as {cql_type}: {e}",
                         column=column, value=text) from e
