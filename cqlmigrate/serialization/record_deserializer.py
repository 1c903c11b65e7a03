# ==============================================
# RecordDeserializer + FlatFileReader
# ==============================================
#
# PURPOSE:
#   Read flat-file records back and type each field according to
#   the TARGET schema, positionally.
#
# MAPPING (by target column logical type):
#   - int64 / int32 / int16 → signed integer of that width
#                            (also recovers converted timestamps)
#   - timestamp             → epoch-millisecond integer, which the
#                            driver binds natively
#   - bool                  → case-insensitive true / false
#   - text / opaque         → raw text, interpreted by the binding layer
#
#   An empty field is null for every non-text column and "" for a
#   text column. A field equal to the configured null sentinel is
#   null for every column; the sentinel repeated m >= 2 times is
#   the escaped form of it repeated m - 1 times.
#
#   Fields may be as long as max_field_size characters (large blobs
#   and text); the csv module limit is raised to it on open.
#
#   A malformed numeric / boolean field raises ParseError. There is
#   no per-row isolation: the error aborts the batch being built.
#
# ==============================================

import csv
import logging
import re
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple

from cqlmigrate.errors import ParseError
from cqlmigrate.schema.types import LogicalType, SerializedRecord, TableSchema, integer_bounds
from cqlmigrate.serialization.row_extractor import sentinel_repeats

logger = logging.getLogger(__name__)

_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")

DEFAULT_MAX_FIELD_SIZE = 2**31 - 1


class FlatFileReader:
    """
    Quote-aware reader over the flat file.

    Usage:
        with FlatFileReader(path) as reader:
            print(reader.header)
            for line_number, record in reader:
                ...
    """

    def __init__(self, path: str, encoding: str = "utf-8", max_field_size: int = DEFAULT_MAX_FIELD_SIZE):
        self.path = Path(path)
        self.encoding = encoding
        self.max_field_size = max_field_size
        self.header: List[str] = []
        self._fh = None
        self._reader = None

    def open(self) -> None:
        if not self.path.is_file():
            raise FileNotFoundError(
                f"The file {self.path} either does not exist or there is a lack of "
                f"permissions to read it. Check the path provided."
            )
        if csv.field_size_limit() < self.max_field_size:
            csv.field_size_limit(self.max_field_size)
        logger.info("Reading data from file %s...", self.path)
        self._fh = open(self.path, "r", encoding=self.encoding, newline="")
        self._reader = csv.reader(self._fh, delimiter=",", quotechar='"', doublequote=True, strict=True)
        self.header = next(self._reader, [])

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._reader = None

    def __iter__(self) -> Iterator[Tuple[int, SerializedRecord]]:
        if self._reader is None:
            raise RuntimeError("FlatFileReader is not open")
        while True:
            try:
                record = next(self._reader)
            except StopIteration:
                return
            except csv.Error as e:
                raise ParseError(f"Malformed record: {e}", line=self._reader.line_num)
            if not record:
                continue
            yield self._reader.line_num, record

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class RecordDeserializer:
    def __init__(self, schema: TableSchema, null_sentinel: Optional[str] = None):
        self.schema = schema
        self.null_sentinel = null_sentinel

    def check_header(self, header: List[str]) -> None:
        """Binding is positional; warn when the file's header disagrees with the target order."""
        if len(header) != len(self.schema):
            raise ParseError(
                f"File has {len(header)} columns but {self.schema.qualified_name} has {len(self.schema)}",
                line=1,
            )
        if header != self.schema.column_names:
            logger.warning(
                "File header %s differs from target column order %s; values are bound by position",
                header, self.schema.column_names,
            )

    def deserialize(self, record: SerializedRecord, line: Optional[int] = None) -> List[Any]:
        if len(record) != len(self.schema):
            raise ParseError(
                f"Record has {len(record)} fields, expected {len(self.schema)}",
                line=line,
            )
        return [
            self.convert(text, column.name, column.logical_type, line)
            for text, column in zip(record, self.schema)
        ]

    def convert(self, text: str, column: str, logical_type: LogicalType, line: Optional[int] = None) -> Any:
        repeats = sentinel_repeats(text, self.null_sentinel)
        if repeats == 1:
            return None
        if repeats:
            text = self.null_sentinel * (repeats - 1)

        if logical_type is LogicalType.TEXT:
            return text
        if text == "":
            return None

        if logical_type.is_integer:
            return self._parse_integer(text, column, logical_type, line)
        if logical_type is LogicalType.TIMESTAMP:
            return self._parse_integer(text, column, LogicalType.INT64, line)
        if logical_type is LogicalType.BOOL:
            lowered = text.strip().lower()
            if lowered == "true":
                return True
            if lowered == "false":
                return False
            raise ParseError(f"Column '{column}': {text!r} is not a boolean", line=line, column=column, value=text)

        return text

    @staticmethod
    def _parse_integer(text: str, column: str, logical_type: LogicalType, line: Optional[int]) -> int:
        stripped = text.strip()
        if not _INTEGER_PATTERN.match(stripped):
            raise ParseError(f"Column '{column}': {text!r} is not an integer", line=line, column=column, value=text)
        value = int(stripped)
        low, high = integer_bounds(logical_type)
        if not low <= value <= high:
            raise ParseError(
                f"Column '{column}': {value} out of range for {logical_type.value}",
                line=line, column=column, value=text,
            )
        return value
