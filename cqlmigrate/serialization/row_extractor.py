# ==============================================
# RowExtractor
# ==============================================
#
# PURPOSE:
#   Turn source rows into flat-file lines, one row per line,
#   after a header line of comma-joined column names.
#
# PER-FIELD RULES:
#   - timestamp → signed 64-bit epoch milliseconds (UTC), re-tagged
#     as int64 so the file never carries locale-dependent dates
#   - opaque    → its text form from cql_values (collections as JSON)
#   - anything else keeps its native value and logical type
#
# TEXT FORM:
#   - None        → "" (or the configured null sentinel, unquoted)
#   - bytes       → 0x<hex>
#   - other       → str(value)
#   - a value spelled as the sentinel repeated k times is written
#     with it repeated k + 1 times, so it never reads back as null
#   - non-empty text (every non-empty field when quote_all is set)
#     is wrapped in double quotes with inner quotes doubled; so is
#     opaque text holding a comma, quote or line break
#   Fields are joined with bare commas. A row that would be a blank
#   line (one empty field) is written as "".
#
# CLASS: RowExtractor
# -------------------
#   - check_schema(schema)                        (SchemaError if a
#                                                  column has no text form)
#   - extract_row(row, schema) -> ExtractedRow
#   - serialize_row(fields) -> str
#   - iter_lines(rows, schema) -> Iterator[str]   (header first)
#   - write(rows, schema, path) -> int            (rows written)
#
#   Rows are consumed lazily, so a paged driver cursor is never
#   materialized in memory.
#
# ==============================================

import logging
import re
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Sequence

from cqlmigrate.schema.types import ExtractedRow, FieldValue, LogicalType, TableSchema
from cqlmigrate.serialization.cql_values import check_supported, epoch_millis, to_text

logger = logging.getLogger(__name__)

_NEEDS_QUOTES = re.compile(r'[,"\r\n]')


def quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def sentinel_repeats(text: str, sentinel: Optional[str]) -> int:
    """k when text is the sentinel repeated k >= 1 times, else 0."""
    if not sentinel or not text or len(text) % len(sentinel):
        return 0
    count = len(text) // len(sentinel)
    return count if text == sentinel * count else 0


class RowExtractor:
    def __init__(self, null_sentinel: Optional[str] = None, quote_all: bool = False):
        self.null_sentinel = null_sentinel
        self.quote_all = quote_all

    def check_schema(self, schema: TableSchema) -> None:
        for column in schema:
            if column.logical_type is LogicalType.OPAQUE:
                check_supported(column.cql_type, column.name)

    def extract_row(self, row: Sequence[Any], schema: TableSchema) -> ExtractedRow:
        if len(row) != len(schema):
            raise ValueError(f"Row has {len(row)} fields, schema {schema.qualified_name} has {len(schema)}")
        fields = []
        for column, value in zip(schema, row):
            if column.logical_type is LogicalType.TIMESTAMP:
                converted = epoch_millis(value) if value is not None else None
                fields.append(FieldValue(column.name, LogicalType.INT64, converted))
            elif column.logical_type is LogicalType.OPAQUE and value is not None:
                fields.append(FieldValue(column.name, LogicalType.OPAQUE, to_text(value, column.cql_type)))
            else:
                fields.append(FieldValue(column.name, column.logical_type, value))
        return tuple(fields)

    def format_field(self, field: FieldValue) -> str:
        value = field.raw_value
        if value is None:
            return self.null_sentinel or ""
        if isinstance(value, (bytes, bytearray)):
            text = "0x" + bytes(value).hex()
        else:
            text = str(value)
        repeats = sentinel_repeats(text, self.null_sentinel)
        if repeats:
            text = self.null_sentinel * (repeats + 1)
        if not text:
            return text
        if field.logical_type is LogicalType.TEXT or self.quote_all:
            return quote(text)
        if field.logical_type is LogicalType.OPAQUE and _NEEDS_QUOTES.search(text):
            return quote(text)
        return text

    def serialize_row(self, fields: ExtractedRow) -> str:
        line = ",".join(self.format_field(f) for f in fields)
        # a blank line is skipped on read
        return line or '""'

    def header(self, schema: TableSchema) -> str:
        return ",".join(schema.column_names)

    def iter_lines(self, rows: Iterable[Sequence[Any]], schema: TableSchema) -> Iterator[str]:
        self.check_schema(schema)
        yield self.header(schema)
        for row in rows:
            yield self.serialize_row(self.extract_row(row, schema))

    def write(self, rows: Iterable[Sequence[Any]], schema: TableSchema,
              path: str, encoding: str = "utf-8") -> int:
        """
        Write the header and every row to path, creating parent directories.

        Returns:
            Number of data rows written (header excluded).

        Raises:
            SchemaError: If a column type has no flat-file text form.
        """
        self.check_schema(schema)
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Processing rows into %s...", target)

        written = 0
        with open(target, "w", encoding=encoding, newline="") as fh:
            lines = self.iter_lines(rows, schema)
            fh.write(next(lines))
            fh.write("\n")
            for line in lines:
                fh.write(line)
                fh.write("\n")
                written += 1
                if written % 100_000 == 0:
                    logger.info("→ Extracted %d rows...", written)
        logger.info("✓ Wrote %d rows from %s", written, schema.qualified_name)
        return written
